"""Tests for the schedule version guard."""
import uuid

import pytest
from sqlalchemy import func, select, update

from fitcoach.core.exceptions import ConflictException, NotFoundException
from fitcoach.domains.schedule.booking_guard import BookingGuard
from fitcoach.domains.schedule.models import TrainingSession
from fitcoach.domains.schedule.session_service import SessionService
from fitcoach.domains.users.models import User
from tests.conftest import LONDON, utc


class TestBookingGuard:
    @pytest.mark.asyncio
    async def test_read_version_starts_at_zero(self, db_session, trainer):
        assert await BookingGuard(db_session).read_version(trainer.id) == 0

    @pytest.mark.asyncio
    async def test_read_version_unknown_trainer(self, db_session):
        with pytest.raises(NotFoundException):
            await BookingGuard(db_session).read_version(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_claim_bumps_version(self, db_session, trainer):
        guard = BookingGuard(db_session)

        await guard.claim(trainer.id, 0)
        await db_session.commit()

        assert await guard.read_version(trainer.id) == 1

    @pytest.mark.asyncio
    async def test_stale_claim_is_rejected(self, db_session, trainer):
        guard = BookingGuard(db_session)
        await guard.claim(trainer.id, 0)
        await db_session.commit()

        with pytest.raises(ConflictException) as exc_info:
            await guard.claim(trainer.id, 0)

        assert exc_info.value.code == "schedule_changed"


class TestConcurrentBooking:
    """A booking that committed between check and commit wins."""

    @pytest.mark.asyncio
    async def test_interleaved_booking_is_rolled_back(self, db_session, trainer, member, add_window, monkeypatch):
        await add_window(trainer.id, 0, "09:00", "11:00")
        service = SessionService(db_session, tz=LONDON)
        real_is_available = service.availability.is_available

        async def is_available_then_race(*args, **kwargs):
            available = await real_is_available(*args, **kwargs)
            # Another request commits a booking for the same trainer
            await db_session.execute(
                update(User)
                .where(User.id == trainer.id)
                .values(schedule_version=User.schedule_version + 1)
            )
            await db_session.commit()
            return available

        monkeypatch.setattr(service.availability, "is_available", is_available_then_race)

        with pytest.raises(ConflictException):
            await service.create_session(trainer.id, member.id, utc(2030, 1, 7, 9, 30), 60)

        assert await db_session.scalar(select(func.count(TrainingSession.id))) == 0

    @pytest.mark.asyncio
    async def test_sequential_bookings_both_commit(self, db_session, trainer, member, other_member, add_window):
        await add_window(trainer.id, 0, "09:00", "11:00")
        service = SessionService(db_session, tz=LONDON)

        await service.create_session(trainer.id, member.id, utc(2030, 1, 7, 9), 60)
        await service.create_session(trainer.id, other_member.id, utc(2030, 1, 7, 10), 60)

        assert await service.guard.read_version(trainer.id) == 2
