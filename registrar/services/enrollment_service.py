# registrar/services/enrollment_service.py - Enrollment lifecycle and registration cards
import logging
import uuid
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from registrar.core.errors import (
    RegistrarError,
    NotFoundError,
    DuplicateEnrollmentError,
    InvalidStateTransitionError,
)
from registrar.models.base import utcnow
from registrar.models.catalog import Offering
from registrar.models.enrollment import (
    Enrollment,
    EnrolledSubject,
    EnrollmentStatusEvent,
    PENDING,
    APPROVED,
    REJECTED,
    COMPLETED,
    ENROLLED,
    DROPPED,
    DROPPABLE_STATES,
)
from registrar.services.catalog import CatalogLookup
from registrar.services.eligibility import EligibilityValidator, UnitLoadPolicy
from registrar.services.ledger import OfferingLedger
from registrar.services.tuition_service import TuitionService

logger = logging.getLogger(__name__)

# (subject_id, offering_id) pairs in request order
SubjectRequest = Tuple[uuid.UUID, uuid.UUID]


def _is_duplicate_term(error: IntegrityError) -> bool:
    message = str(error.orig)
    return "uq_enrollment_student_term" in message or "enrollments.student_id" in message


class EnrollmentService:
    """Service class for term enrollments"""

    def __init__(
        self,
        db: Session,
        tuition: Optional[TuitionService] = None,
        unit_policy: Optional[UnitLoadPolicy] = None,
        clock: Optional[Callable[[], date]] = None,
    ):
        self.db = db
        self.clock = clock or date.today
        self.ledger = OfferingLedger(db)
        self.catalog = CatalogLookup(db)
        self.validator = EligibilityValidator(db, self.ledger, self.catalog, unit_policy)
        self.tuition = tuition or TuitionService(db, clock=self.clock)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_enrollment(
        self,
        student_id: uuid.UUID,
        school_year: str,
        semester: str,
        subjects: Sequence[SubjectRequest],
        payment_plan: str,
        created_by: Optional[uuid.UUID] = None,
        as_admin: bool = False,
    ) -> Enrollment:
        """
        Register a student for a term

        Args:
            student_id: Student being enrolled
            school_year: e.g. "2024-2025"
            semester: "1st", "2nd" or "Summer"
            subjects: (subject_id, offering_id) pairs, validated in order
            payment_plan: "FULL" or "INSTALLMENT"
            created_by: Actor creating the enrollment
            as_admin: Admin-created enrollments are approved and billed immediately

        Returns:
            The persisted enrollment

        Raises:
            NotFoundError, DuplicateEnrollmentError, PrerequisiteNotMetError,
            ScheduleConflictError, OfferingClosedError, CapacityExceededError,
            UnitLoadInvalidError
        """
        try:
            self.catalog.get_student(student_id)

            existing = self.db.execute(
                select(Enrollment.id).where(
                    Enrollment.student_id == student_id,
                    Enrollment.school_year == school_year,
                    Enrollment.semester == semester,
                )
            ).scalar_one_or_none()
            if existing:
                raise DuplicateEnrollmentError(
                    "Student is already enrolled for this academic period",
                    student_id=student_id,
                    school_year=school_year,
                    semester=semester,
                )

            draft = self.validator.start_draft(student_id, school_year, semester)
            for subject_id, offering_id in subjects:
                self.validator.add_subject(draft, subject_id, offering_id)
            self.validator.check_unit_load(draft)

            now = utcnow()
            enrollment = Enrollment(
                student_id=student_id,
                school_year=school_year,
                semester=semester,
                total_units=draft.total_units,
                payment_plan=payment_plan,
                status=APPROVED if as_admin else PENDING,
                enrollment_type="ADMIN" if as_admin else "SELF",
                created_by=created_by,
                enrolled_at=now,
            )
            for position, accepted in enumerate(draft.accepted, start=1):
                enrollment.subjects.append(EnrolledSubject(
                    position=position,
                    subject_id=accepted.subject.id,
                    offering_id=accepted.offering.id,
                    units=accepted.subject.units,
                    status=ENROLLED,
                    holds_seat=True,
                    enrolled_at=now,
                ))
            enrollment.status_events.append(EnrollmentStatusEvent(
                prev_status=None, new_status=PENDING, actor_id=created_by
            ))

            if as_admin:
                enrollment.approved_by = created_by
                enrollment.approved_at = now
                enrollment.status_events.append(EnrollmentStatusEvent(
                    prev_status=PENDING, new_status=APPROVED, actor_id=created_by
                ))

            self.db.add(enrollment)
            self.db.flush()

            if as_admin:
                self.tuition.ensure_invoice(enrollment)

            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if not _is_duplicate_term(e):
                logger.error(f"Enrollment failed for student {student_id}", exc_info=True)
                raise
            # Concurrent request for the same (student, term) won the race
            logger.warning(f"Duplicate enrollment race for student {student_id} in {school_year} {semester}")
            raise DuplicateEnrollmentError(
                "Student is already enrolled for this academic period",
                student_id=student_id,
                school_year=school_year,
                semester=semester,
            )
        except RegistrarError as e:
            self.db.rollback()
            logger.warning(f"Enrollment rejected for student {student_id}: {e.message}")
            raise
        except Exception:
            self.db.rollback()
            logger.error(f"Enrollment failed for student {student_id}", exc_info=True)
            raise

        self.db.refresh(enrollment)
        logger.info(
            f"Enrollment {enrollment.id} created for student {student_id} "
            f"({enrollment.term_label}, {enrollment.total_units} units, {enrollment.status})"
        )
        return enrollment

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def approve_enrollment(self, enrollment_id: uuid.UUID, approver_id: Optional[uuid.UUID] = None) -> Enrollment:
        """PENDING -> APPROVED and bill it. Re-approving only makes sure the invoice exists."""
        try:
            enrollment = self._lock(enrollment_id)

            if enrollment.status == APPROVED:
                self.tuition.ensure_invoice(enrollment)
                self.db.commit()
                logger.info(f"Enrollment {enrollment_id} already approved; invoice ensured")
                return enrollment

            self._transition(enrollment, APPROVED, actor_id=approver_id)
            enrollment.approved_by = approver_id
            enrollment.approved_at = utcnow()
            self.db.flush()

            self.tuition.ensure_invoice(enrollment)
            self.db.commit()
        except RegistrarError as e:
            self.db.rollback()
            logger.warning(f"Approval rejected for enrollment {enrollment_id}: {e.message}")
            raise
        except Exception:
            self.db.rollback()
            logger.error(f"Approval failed for enrollment {enrollment_id}", exc_info=True)
            raise

        logger.info(f"Enrollment {enrollment_id} approved by {approver_id}")
        return enrollment

    def reject_enrollment(
        self, enrollment_id: uuid.UUID, reason: Optional[str] = None, actor_id: Optional[uuid.UUID] = None
    ) -> Enrollment:
        """PENDING -> REJECTED, giving back every seat the enrollment still holds."""
        try:
            enrollment = self._lock(enrollment_id)
            self._transition(enrollment, REJECTED, actor_id=actor_id, reason=reason)
            enrollment.remarks = reason
            released = self._release_seats(enrollment.subjects)
            self.db.commit()
        except RegistrarError as e:
            self.db.rollback()
            logger.warning(f"Rejection refused for enrollment {enrollment_id}: {e.message}")
            raise
        except Exception:
            self.db.rollback()
            logger.error(f"Rejection failed for enrollment {enrollment_id}", exc_info=True)
            raise

        logger.info(f"Enrollment {enrollment_id} rejected; {released} seats released")
        return enrollment

    def complete_enrollment(self, enrollment_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> Enrollment:
        """APPROVED -> COMPLETED. Seats stay counted for the finished term."""
        try:
            enrollment = self._lock(enrollment_id)
            self._transition(enrollment, COMPLETED, actor_id=actor_id)
            for entry in enrollment.subjects:
                if entry.status == ENROLLED:
                    entry.status = COMPLETED
            self.db.commit()
        except RegistrarError as e:
            self.db.rollback()
            logger.warning(f"Completion refused for enrollment {enrollment_id}: {e.message}")
            raise
        except Exception:
            self.db.rollback()
            logger.error(f"Completion failed for enrollment {enrollment_id}", exc_info=True)
            raise

        logger.info(f"Enrollment {enrollment_id} completed")
        return enrollment

    def drop_subject(
        self, enrollment_id: uuid.UUID, subject_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None
    ) -> Enrollment:
        """
        Drop one subject from a pending or approved enrollment

        Releases the subject's seat and removes its units from the total.
        The enrollment status and any existing invoice are left unchanged.
        """
        try:
            enrollment = self._lock(enrollment_id)
            if enrollment.status not in DROPPABLE_STATES:
                raise InvalidStateTransitionError(
                    "Cannot drop subjects from this enrollment",
                    current=enrollment.status,
                    enrollment_id=enrollment_id,
                )

            entry = enrollment.entry_for(subject_id)
            if entry is None:
                raise NotFoundError(
                    "Subject not found in enrollment",
                    enrollment_id=enrollment_id,
                    subject_id=subject_id,
                )
            if entry.status != ENROLLED:
                raise InvalidStateTransitionError(
                    "Subject is not currently enrolled",
                    current=entry.status,
                    enrollment_id=enrollment_id,
                    subject_id=subject_id,
                )

            entry.status = DROPPED
            entry.dropped_at = utcnow()
            self._release_seats([entry])
            enrollment.total_units = enrollment.total_units - entry.units
            enrollment.status_events.append(EnrollmentStatusEvent(
                prev_status=enrollment.status,
                new_status=DROPPED,
                reason=f"Dropped subject {entry.subject.code}",
                actor_id=actor_id,
            ))
            self.db.commit()
        except RegistrarError as e:
            self.db.rollback()
            logger.warning(f"Drop refused for enrollment {enrollment_id}: {e.message}")
            raise
        except Exception:
            self.db.rollback()
            logger.error(f"Drop failed for enrollment {enrollment_id}", exc_info=True)
            raise

        logger.info(
            f"Subject {subject_id} dropped from enrollment {enrollment_id}; "
            f"total units now {enrollment.total_units}"
        )
        return enrollment

    def delete_enrollment(self, enrollment_id: uuid.UUID) -> None:
        """Delete an enrollment, releasing any seats it still holds. Its invoice is kept."""
        try:
            enrollment = self._lock(enrollment_id)
            released = self._release_seats(enrollment.subjects)
            self.db.delete(enrollment)
            self.db.commit()
        except RegistrarError:
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            logger.error(f"Deletion failed for enrollment {enrollment_id}", exc_info=True)
            raise

        logger.info(f"Enrollment {enrollment_id} deleted; {released} seats released")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_enrollment(self, enrollment_id: uuid.UUID) -> Enrollment:
        enrollment = self.db.execute(
            select(Enrollment)
            .where(Enrollment.id == enrollment_id)
            .options(
                selectinload(Enrollment.student),
                selectinload(Enrollment.subjects).selectinload(EnrolledSubject.subject),
            )
        ).scalar_one_or_none()
        if not enrollment:
            raise NotFoundError("Enrollment not found", enrollment_id=enrollment_id)
        return enrollment

    def list_enrollments(
        self,
        school_year: Optional[str] = None,
        semester: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Enrollment], int]:
        """Paginated listing; returns the page and the total match count"""
        query = select(Enrollment)
        if school_year:
            query = query.where(Enrollment.school_year == school_year)
        if semester:
            query = query.where(Enrollment.semester == semester)
        if status:
            query = query.where(Enrollment.status == status)

        total = self.db.execute(
            select(func.count()).select_from(query.subquery())
        ).scalar_one()

        offset = (page - 1) * limit
        enrollments = self.db.execute(
            query.options(selectinload(Enrollment.student))
            .order_by(Enrollment.created_at.desc())
            .offset(offset)
            .limit(limit)
        ).scalars().all()
        return list(enrollments), total

    def list_student_enrollments(self, student_id: uuid.UUID) -> List[Enrollment]:
        enrollments = self.db.execute(
            select(Enrollment)
            .where(Enrollment.student_id == student_id)
            .options(selectinload(Enrollment.subjects).selectinload(EnrolledSubject.subject))
            .order_by(Enrollment.created_at.desc())
        ).scalars().all()
        return list(enrollments)

    def registration_card(self, enrollment_id: uuid.UUID) -> Dict[str, Any]:
        return self._build_card(self.get_enrollment(enrollment_id))

    def registration_card_for_student(self, student_id: uuid.UUID, school_year: str, semester: str) -> Dict[str, Any]:
        enrollment = self.db.execute(
            select(Enrollment).where(
                Enrollment.student_id == student_id,
                Enrollment.school_year == school_year,
                Enrollment.semester == semester,
                Enrollment.status.in_([APPROVED, COMPLETED]),
            )
        ).scalar_one_or_none()
        if not enrollment:
            raise NotFoundError(
                "No approved enrollment found for the specified period",
                student_id=student_id,
                school_year=school_year,
                semester=semester,
            )
        return self._build_card(enrollment)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lock(self, enrollment_id: uuid.UUID) -> Enrollment:
        enrollment = self.db.execute(
            select(Enrollment)
            .where(Enrollment.id == enrollment_id)
            .options(selectinload(Enrollment.subjects).selectinload(EnrolledSubject.subject))
            .with_for_update(of=Enrollment)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if not enrollment:
            raise NotFoundError("Enrollment not found", enrollment_id=enrollment_id)
        return enrollment

    def _transition(
        self,
        enrollment: Enrollment,
        new_status: str,
        actor_id: Optional[uuid.UUID] = None,
        reason: Optional[str] = None,
    ) -> None:
        if not enrollment.can_transition_to(new_status):
            raise InvalidStateTransitionError(
                f"Cannot change enrollment from {enrollment.status} to {new_status}",
                current=enrollment.status,
                enrollment_id=enrollment.id,
            )
        enrollment.status_events.append(EnrollmentStatusEvent(
            prev_status=enrollment.status,
            new_status=new_status,
            reason=reason,
            actor_id=actor_id,
        ))
        enrollment.status = new_status

    def _release_seats(self, entries: Sequence[EnrolledSubject]) -> int:
        """Release the seat of every entry still holding one; each seat is given back once."""
        released = 0
        for entry in entries:
            if not entry.holds_seat:
                continue
            self.ledger.release(entry.offering_id)
            entry.holds_seat = False
            released += 1
        return released

    def _build_card(self, enrollment: Enrollment) -> Dict[str, Any]:
        student = enrollment.student
        subjects = []
        for entry in enrollment.subjects:
            if entry.status != ENROLLED:
                continue
            offering: Offering = entry.offering
            subjects.append({
                "code": entry.subject.code,
                "name": entry.subject.name,
                "units": entry.units,
                "instructor_id": offering.instructor_id,
                "room": offering.room,
                "schedule": [
                    {
                        "day": slot.day,
                        "start_time": slot.start_time,
                        "end_time": slot.end_time,
                    }
                    for slot in offering.slots
                ],
            })

        return {
            "enrollment_id": enrollment.id,
            "student": {
                "id": student.id,
                "student_number": student.student_number,
                "name": student.full_name,
                "email": student.email,
                "program": student.program,
                "year_level": student.year_level,
            },
            "academic_period": {
                "school_year": enrollment.school_year,
                "semester": enrollment.semester,
            },
            "subjects": subjects,
            "total_units": enrollment.total_units,
            "status": enrollment.status,
            "generated_at": utcnow(),
        }
