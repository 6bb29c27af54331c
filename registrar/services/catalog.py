# registrar/services/catalog.py - Read-only lookups into catalog and student records
import uuid
from typing import Set

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from registrar.core.errors import NotFoundError
from registrar.models.catalog import Subject, Offering
from registrar.models.student import Student, AcademicRecord, PASSED


class CatalogLookup:
    """Catalog and student-record queries used during validation.

    Catalog maintenance lives in another service; this side only reads.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_student(self, student_id: uuid.UUID) -> Student:
        student = self.db.get(Student, student_id)
        if not student:
            raise NotFoundError("Student not found", student_id=student_id)
        return student

    def get_subject(self, subject_id: uuid.UUID) -> Subject:
        subject = self.db.execute(
            select(Subject)
            .where(Subject.id == subject_id)
            .options(selectinload(Subject.prerequisites))
        ).scalar_one_or_none()
        if not subject:
            raise NotFoundError(f"Subject not found: {subject_id}", subject_id=subject_id)
        return subject

    def get_offering(self, subject: Subject, offering_id: uuid.UUID) -> Offering:
        offering = self.db.execute(
            select(Offering)
            .where(Offering.id == offering_id, Offering.subject_id == subject.id)
            .options(selectinload(Offering.slots))
        ).scalar_one_or_none()
        if not offering:
            raise NotFoundError(
                f"Offering not found for subject: {subject.code}",
                subject_code=subject.code,
                offering_id=offering_id,
            )
        return offering

    def passed_subject_ids(self, student_id: uuid.UUID) -> Set[uuid.UUID]:
        """Subjects the student has a 'Passed' remark for."""
        rows = self.db.execute(
            select(AcademicRecord.subject_id).where(
                AcademicRecord.student_id == student_id,
                AcademicRecord.remarks == PASSED,
            )
        ).scalars().all()
        return set(rows)

    def get_student_for_user(self, user_id: uuid.UUID) -> Student:
        student = self.db.execute(
            select(Student).where(Student.user_id == user_id)
        ).scalar_one_or_none()
        if not student:
            raise NotFoundError("No student record linked to this account", user_id=user_id)
        return student
