# registrar/models/catalog.py - Subjects, their offerings and offering schedules
from __future__ import annotations
import uuid
from datetime import datetime, time
from sqlalchemy import (
    String, Integer, Boolean, Time, DateTime, ForeignKey, Table, Column, Uuid,
    CheckConstraint, Index, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from registrar.models.base import Base, utcnow

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

subject_prerequisites = Table(
    "subject_prerequisites",
    Base.metadata,
    Column("subject_id", Uuid, ForeignKey("subjects.id", ondelete="CASCADE"), primary_key=True),
    Column("prerequisite_id", Uuid, ForeignKey("subjects.id", ondelete="RESTRICT"), primary_key=True),
    CheckConstraint("subject_id <> prerequisite_id", name="ck_subject_prerequisite_not_self"),
)


class Subject(Base):
    __tablename__ = "subjects"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    units: Mapped[int] = mapped_column(Integer, nullable=False)
    has_lab: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    prerequisites: Mapped[list["Subject"]] = relationship(
        "Subject",
        secondary=subject_prerequisites,
        primaryjoin=lambda: Subject.id == subject_prerequisites.c.subject_id,
        secondaryjoin=lambda: Subject.id == subject_prerequisites.c.prerequisite_id,
    )
    offerings: Mapped[list["Offering"]] = relationship("Offering", back_populates="subject", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("units >= 1 AND units <= 6", name="ck_subject_units_range"),
    )


class Offering(Base):
    """One scheduled section of a subject in a term.

    ``occupied`` is owned by the seat ledger; nothing else writes it.
    """
    __tablename__ = "offerings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    subject_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False, index=True)
    school_year: Mapped[str] = mapped_column(String(16), nullable=False)  # "2025-2026"
    semester: Mapped[str] = mapped_column(String(8), nullable=False)  # 1st|2nd|Summer
    instructor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    room: Mapped[str | None] = mapped_column(String(64), nullable=True)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=40)
    occupied: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_open: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    subject: Mapped["Subject"] = relationship("Subject", back_populates="offerings")
    slots: Mapped[list["ScheduleSlot"]] = relationship(
        "ScheduleSlot",
        back_populates="offering",
        cascade="all, delete-orphan",
        order_by="ScheduleSlot.position",
    )

    @property
    def available_seats(self) -> int:
        return max(0, self.capacity - self.occupied)

    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_offering_capacity_positive"),
        CheckConstraint("occupied >= 0 AND occupied <= capacity", name="ck_offering_occupied_range"),
        CheckConstraint("semester IN ('1st','2nd','Summer')", name="ck_offering_semester"),
        Index("ix_offerings_subject_term", "subject_id", "school_year", "semester"),
    )


class ScheduleSlot(Base):
    __tablename__ = "offering_slots"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    offering_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("offerings.id", ondelete="CASCADE"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    day: Mapped[str] = mapped_column(String(16), nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)

    offering: Mapped["Offering"] = relationship("Offering", back_populates="slots")

    def __repr__(self) -> str:
        return f"<ScheduleSlot {self.day} {self.start_time:%H:%M}-{self.end_time:%H:%M}>"

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_offering_slot_time_order"),
        CheckConstraint(
            "day IN ('Monday','Tuesday','Wednesday','Thursday','Friday','Saturday','Sunday')",
            name="ck_offering_slot_day",
        ),
        UniqueConstraint("offering_id", "position", name="uq_offering_slot_position"),
    )
