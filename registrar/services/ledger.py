# registrar/services/ledger.py - Seat occupancy for course offerings
"""Single owner of ``Offering.occupied``.

Both operations are one conditional UPDATE, so the capacity check and the
increment happen atomically in the database: PostgreSQL serializes them
with a row lock, SQLite with its write lock. They run inside the caller's
transaction, which means a reservation is committed or rolled back together
with the enrollment entry that made it.
"""
import logging
import uuid

from sqlalchemy import update
from sqlalchemy.orm import Session

from registrar.core.errors import NotFoundError, OfferingClosedError, CapacityExceededError
from registrar.models.catalog import Offering

logger = logging.getLogger(__name__)


class OfferingLedger:
    """Atomic reserve/release of offering seats"""

    def __init__(self, db: Session):
        self.db = db

    def reserve(self, offering_id: uuid.UUID) -> int:
        """
        Take one seat in an offering.

        Returns:
            The occupied count after the reservation

        Raises:
            NotFoundError: offering does not exist
            OfferingClosedError: offering is not open for enrollment
            CapacityExceededError: every seat is taken
        """
        result = self.db.execute(
            update(Offering)
            .where(
                Offering.id == offering_id,
                Offering.is_open.is_(True),
                Offering.occupied < Offering.capacity,
            )
            .values(occupied=Offering.occupied + 1)
            .execution_options(synchronize_session=False)
        )

        offering = self._reload(offering_id)
        if result.rowcount == 1:
            logger.debug(f"Seat reserved in offering {offering_id}: {offering.occupied}/{offering.capacity}")
            return offering.occupied

        if offering is None:
            raise NotFoundError("Offering not found", offering_id=offering_id)
        if not offering.is_open:
            raise OfferingClosedError("Offering is not open for enrollment", offering_id=offering_id)
        raise CapacityExceededError(
            f"Offering is full ({offering.occupied}/{offering.capacity})",
            offering_id=offering_id,
        )

    def release(self, offering_id: uuid.UUID) -> int:
        """
        Give back one seat. Occupancy is floored at zero, so releasing an
        offering that is already empty is a no-op.

        Returns:
            The occupied count after the release
        """
        result = self.db.execute(
            update(Offering)
            .where(Offering.id == offering_id, Offering.occupied > 0)
            .values(occupied=Offering.occupied - 1)
            .execution_options(synchronize_session=False)
        )

        offering = self._reload(offering_id)
        if offering is None:
            raise NotFoundError("Offering not found", offering_id=offering_id)
        if result.rowcount == 0:
            logger.warning(f"Release on empty offering {offering_id} ignored")
        return offering.occupied

    def _reload(self, offering_id: uuid.UUID) -> Offering | None:
        # populate_existing refreshes any copy already in the identity map
        return self.db.get(Offering, offering_id, populate_existing=True)
