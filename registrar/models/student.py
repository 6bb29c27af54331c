# registrar/models/student.py - Student records consulted for prerequisites
from __future__ import annotations
import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy import String, Numeric, DateTime, ForeignKey, Uuid, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from registrar.models.base import Base, utcnow

PASSED = "Passed"


class Student(Base):
    __tablename__ = "students"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, unique=True)
    student_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(64), nullable=False)
    last_name: Mapped[str] = mapped_column(String(64), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))
    program: Mapped[str] = mapped_column(String(64), nullable=False)
    year_level: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="ACTIVE")

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    academic_records: Mapped[list["AcademicRecord"]] = relationship(
        "AcademicRecord", back_populates="student", cascade="all, delete-orphan"
    )
    enrollments: Mapped[list["Enrollment"]] = relationship("Enrollment", back_populates="student")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class AcademicRecord(Base):
    """One line of a student's academic history."""
    __tablename__ = "academic_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    subject_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("subjects.id", ondelete="RESTRICT"), nullable=False)
    school_year: Mapped[str] = mapped_column(String(16), nullable=False)
    semester: Mapped[str] = mapped_column(String(8), nullable=False)
    grade: Mapped[Decimal | None] = mapped_column(Numeric(3, 2))
    remarks: Mapped[str] = mapped_column(String(16), nullable=False, default="In Progress")

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    student: Mapped["Student"] = relationship("Student", back_populates="academic_records")

    __table_args__ = (
        CheckConstraint(
            "remarks IN ('Passed','Failed','Dropped','Incomplete','In Progress')",
            name="ck_academic_record_remarks",
        ),
        Index("ix_academic_records_student_subject", "student_id", "subject_id"),
    )
