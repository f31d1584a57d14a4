"""Optimistic guard for booking commits.

Every committed booking bumps the trainer's ``schedule_version``. A booking
reads the version before checking availability and only commits if the
version is still the one it read, so two concurrent bookings for the same
trainer cannot both pass a stale availability check.
"""
import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fitcoach.core.exceptions import ConflictException, NotFoundException
from fitcoach.domains.users.models import User

logger = logging.getLogger(__name__)


class BookingGuard:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def read_version(self, trainer_id: uuid.UUID) -> int:
        """Current schedule version, read straight from the table."""
        result = await self.db.execute(
            select(User.schedule_version).where(User.id == trainer_id)
        )
        version = result.scalar_one_or_none()
        if version is None:
            raise NotFoundException("Trainer not found", code="trainer_not_found")
        return version

    async def claim(self, trainer_id: uuid.UUID, expected_version: int) -> None:
        """Bump the version if it still equals ``expected_version``.

        Must run in the same transaction as the booking write. Raises
        ConflictException when another booking committed first; the caller
        rolls back.
        """
        result = await self.db.execute(
            update(User)
            .where(User.id == trainer_id, User.schedule_version == expected_version)
            .values(schedule_version=expected_version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "Booking guard rejected commit for trainer %s at version %d",
                trainer_id, expected_version,
            )
            raise ConflictException(
                "Trainer schedule changed while booking, please retry",
                code="schedule_changed",
                details={"trainer_id": str(trainer_id)},
            )
