# registrar/services/eligibility.py - Validation of requested subjects for an enrollment draft
"""Eligibility rules applied while an enrollment request is being built.

Each requested subject goes through, in order: catalog lookup, term match,
prerequisites, schedule conflicts against the subjects already accepted in
the draft, and finally a seat reservation through the ledger. The unit load
is checked once every subject has been accepted.

The validator never commits. On failure the caller rolls back its
transaction, which also undoes any seat reserved for the aborted draft.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Protocol, Set, Tuple

from sqlalchemy.orm import Session

from registrar.core.config import settings
from registrar.core.errors import (
    CapacityExceededError,
    NotFoundError,
    OfferingClosedError,
    PrerequisiteNotMetError,
    ScheduleConflictError,
    UnitLoadInvalidError,
)
from registrar.core.terms import is_summer
from registrar.models.catalog import Offering, Subject
from registrar.services.catalog import CatalogLookup
from registrar.services.ledger import OfferingLedger

logger = logging.getLogger(__name__)


class SlotLike(Protocol):
    day: str
    start_time: object
    end_time: object


def slots_conflict(a: SlotLike, b: SlotLike) -> bool:
    """Same day and overlapping open intervals; touching endpoints are fine."""
    return a.day == b.day and a.start_time < b.end_time and b.start_time < a.end_time


def find_conflict(
    schedule_a: Iterable[SlotLike], schedule_b: Iterable[SlotLike]
) -> Optional[Tuple[SlotLike, SlotLike]]:
    schedule_b = list(schedule_b)
    for a in schedule_a:
        for b in schedule_b:
            if slots_conflict(a, b):
                return a, b
    return None


@dataclass(frozen=True)
class UnitLoadPolicy:
    regular_min: int = 12
    regular_max: int = 24
    summer_max: int = 9

    @classmethod
    def from_settings(cls, config=None) -> "UnitLoadPolicy":
        config = config or settings
        return cls(
            regular_min=config.REGULAR_MIN_UNITS,
            regular_max=config.REGULAR_MAX_UNITS,
            summer_max=config.SUMMER_MAX_UNITS,
        )

    def check(self, semester: str, total_units: int) -> None:
        if is_summer(semester):
            if total_units > self.summer_max:
                raise UnitLoadInvalidError(
                    f"Total units must not exceed {self.summer_max} for summer semester",
                    total_units=total_units,
                )
        elif not self.regular_min <= total_units <= self.regular_max:
            raise UnitLoadInvalidError(
                f"Total units must be between {self.regular_min} and {self.regular_max} for regular semester",
                total_units=total_units,
            )


@dataclass
class AcceptedSubject:
    subject: Subject
    offering: Offering


@dataclass
class EnrollmentDraft:
    """Subjects accepted so far for one (student, term) request."""

    student_id: uuid.UUID
    school_year: str
    semester: str
    passed_subject_ids: Set[uuid.UUID] = field(default_factory=set)
    accepted: List[AcceptedSubject] = field(default_factory=list)

    @property
    def total_units(self) -> int:
        return sum(item.subject.units for item in self.accepted)


class EligibilityValidator:
    def __init__(
        self,
        db: Session,
        ledger: Optional[OfferingLedger] = None,
        catalog: Optional[CatalogLookup] = None,
        unit_policy: Optional[UnitLoadPolicy] = None,
    ):
        self.db = db
        self.ledger = ledger or OfferingLedger(db)
        self.catalog = catalog or CatalogLookup(db)
        self.unit_policy = unit_policy or UnitLoadPolicy.from_settings()

    def start_draft(self, student_id: uuid.UUID, school_year: str, semester: str) -> EnrollmentDraft:
        return EnrollmentDraft(
            student_id=student_id,
            school_year=school_year,
            semester=semester,
            passed_subject_ids=self.catalog.passed_subject_ids(student_id),
        )

    def add_subject(self, draft: EnrollmentDraft, subject_id: uuid.UUID, offering_id: uuid.UUID) -> AcceptedSubject:
        """Validate one requested subject and reserve its seat."""
        subject = self.catalog.get_subject(subject_id)
        offering = self.catalog.get_offering(subject, offering_id)

        if (offering.school_year, offering.semester) != (draft.school_year, draft.semester):
            raise NotFoundError(
                f"Subject {subject.code} is not offered in {draft.school_year} {draft.semester} under this offering",
                subject_code=subject.code,
                offering_id=offering_id,
            )

        self.check_prerequisites(draft, subject)
        self.check_schedule(draft, subject, offering)
        self.reserve_seat(subject, offering)

        accepted = AcceptedSubject(subject=subject, offering=offering)
        draft.accepted.append(accepted)
        logger.debug(f"Accepted {subject.code} for student {draft.student_id} ({draft.total_units} units so far)")
        return accepted

    def check_prerequisites(self, draft: EnrollmentDraft, subject: Subject) -> None:
        for prereq in subject.prerequisites:
            if prereq.id not in draft.passed_subject_ids:
                raise PrerequisiteNotMetError(
                    f"Prerequisite not met for {subject.code}: {prereq.code}",
                    subject_code=subject.code,
                    prerequisite_code=prereq.code,
                )

    def check_schedule(self, draft: EnrollmentDraft, subject: Subject, offering: Offering) -> None:
        for accepted in draft.accepted:
            clash = find_conflict(offering.slots, accepted.offering.slots)
            if clash:
                raise ScheduleConflictError(
                    f"Schedule conflict between {subject.code} and {accepted.subject.code}",
                    subject_code=subject.code,
                    conflicting_subject_code=accepted.subject.code,
                    day=clash[0].day,
                )

    def reserve_seat(self, subject: Subject, offering: Offering) -> int:
        try:
            return self.ledger.reserve(offering.id)
        except OfferingClosedError as exc:
            raise OfferingClosedError(
                f"Subject {subject.code} is not open for enrollment",
                subject_code=subject.code,
                offering_id=offering.id,
            ) from exc
        except CapacityExceededError as exc:
            raise CapacityExceededError(
                f"Subject {subject.code} is full",
                subject_code=subject.code,
                offering_id=offering.id,
            ) from exc

    def check_unit_load(self, draft: EnrollmentDraft) -> None:
        self.unit_policy.check(draft.semester, draft.total_units)
