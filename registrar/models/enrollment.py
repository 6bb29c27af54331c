# registrar/models/enrollment.py - Term enrollments, their subject entries and status history
from __future__ import annotations
import uuid
from datetime import datetime
from typing import Literal
from sqlalchemy import String, Integer, Boolean, DateTime, ForeignKey, Uuid, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from registrar.models.base import Base, utcnow

EnrollmentStatus = Literal["PENDING", "APPROVED", "REJECTED", "COMPLETED"]
SubjectStatus = Literal["ENROLLED", "DROPPED", "COMPLETED"]
PaymentPlan = Literal["FULL", "INSTALLMENT"]
EnrollmentType = Literal["SELF", "ADMIN"]

PENDING = "PENDING"
APPROVED = "APPROVED"
REJECTED = "REJECTED"
COMPLETED = "COMPLETED"

ENROLLED = "ENROLLED"
DROPPED = "DROPPED"

FULL_PAYMENT = "FULL"
INSTALLMENT = "INSTALLMENT"

# Transitions allowed for the enrollment as a whole
TRANSITIONS = {
    PENDING: {APPROVED, REJECTED},
    APPROVED: {COMPLETED},
    REJECTED: set(),
    COMPLETED: set(),
}
DROPPABLE_STATES = {PENDING, APPROVED}


class Enrollment(Base):
    """
    One student's registration for one term.
    Approval is where invoicing is triggered.
    """
    __tablename__ = "enrollments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("students.id", ondelete="RESTRICT"), nullable=False, index=True)
    school_year: Mapped[str] = mapped_column(String(16), nullable=False)
    semester: Mapped[str] = mapped_column(String(8), nullable=False)

    total_units: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payment_plan: Mapped[str] = mapped_column(String(16), nullable=False, default=FULL_PAYMENT)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=PENDING)
    enrollment_type: Mapped[str] = mapped_column(String(8), nullable=False, default="SELF")
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    approved_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    remarks: Mapped[str | None] = mapped_column(String(512), nullable=True)

    enrolled_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    student: Mapped["Student"] = relationship("Student", back_populates="enrollments")
    subjects: Mapped[list["EnrolledSubject"]] = relationship(
        "EnrolledSubject",
        back_populates="enrollment",
        cascade="all, delete-orphan",
        order_by="EnrolledSubject.position",
    )
    status_events: Mapped[list["EnrollmentStatusEvent"]] = relationship(
        "EnrollmentStatusEvent",
        back_populates="enrollment",
        cascade="all, delete-orphan",
        order_by="EnrollmentStatusEvent.created_at",
    )

    @property
    def term_label(self) -> str:
        return f"{self.school_year} {self.semester}"

    def entry_for(self, subject_id: uuid.UUID) -> "EnrolledSubject | None":
        for entry in self.subjects:
            if entry.subject_id == subject_id:
                return entry
        return None

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in TRANSITIONS.get(self.status, set())

    __table_args__ = (
        # One enrollment per student per term
        Index("uq_enrollment_student_term", "student_id", "school_year", "semester", unique=True),
        CheckConstraint("status IN ('PENDING','APPROVED','REJECTED','COMPLETED')", name="ck_enrollment_status"),
        CheckConstraint("payment_plan IN ('FULL','INSTALLMENT')", name="ck_enrollment_payment_plan"),
        CheckConstraint("enrollment_type IN ('SELF','ADMIN')", name="ck_enrollment_type"),
        CheckConstraint("semester IN ('1st','2nd','Summer')", name="ck_enrollment_semester"),
        CheckConstraint("total_units >= 0", name="ck_enrollment_total_units"),
    )


class EnrolledSubject(Base):
    __tablename__ = "enrolled_subjects"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    enrollment_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("enrollments.id", ondelete="CASCADE"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    subject_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("subjects.id", ondelete="RESTRICT"), nullable=False)
    offering_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("offerings.id", ondelete="RESTRICT"), nullable=False, index=True)
    units: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=ENROLLED)
    # True while this entry is counted in the offering's occupied seats
    holds_seat: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    enrolled_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    dropped_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    enrollment: Mapped["Enrollment"] = relationship("Enrollment", back_populates="subjects")
    subject: Mapped["Subject"] = relationship("Subject")
    offering: Mapped["Offering"] = relationship("Offering")

    __table_args__ = (
        CheckConstraint("status IN ('ENROLLED','DROPPED','COMPLETED')", name="ck_enrolled_subject_status"),
        Index("uq_enrolled_subject_per_enrollment", "enrollment_id", "subject_id", unique=True),
    )


class EnrollmentStatusEvent(Base):
    __tablename__ = "enrollment_status_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    enrollment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("enrollments.id", ondelete="CASCADE"),
        index=True,
        nullable=False
    )
    prev_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    new_status: Mapped[str] = mapped_column(String(16), nullable=False)
    reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    enrollment: Mapped["Enrollment"] = relationship("Enrollment", back_populates="status_events")

    __table_args__ = (
        CheckConstraint(
            "new_status IN ('PENDING','APPROVED','REJECTED','COMPLETED','DROPPED')",
            name="ck_enrollment_event_status",
        ),
    )
