"""Tests for the daily session reconciler."""
import pytest
from sqlalchemy.exc import OperationalError

from fitcoach.domains.schedule.models import SessionStatus
from fitcoach.domains.schedule.reconciler import SessionReconciler
from tests.conftest import LONDON, utc

# 09:00 UTC on Wednesday 9 January 2030; the cutoff is midnight that day
NOW = utc(2030, 1, 9, 9)


@pytest.fixture
def reconciler(db_session) -> SessionReconciler:
    return SessionReconciler(db_session, tz=LONDON)


class TestReconcile:
    @pytest.mark.asyncio
    async def test_settles_stale_sessions(self, reconciler, db_session, trainer, member, add_session):
        scheduled = await add_session(trainer.id, member.id, utc(2030, 1, 8, 9), duration_minutes=90)
        pending = await add_session(trainer.id, member.id, utc(2030, 1, 7, 0), status=SessionStatus.PENDING)
        requested = await add_session(trainer.id, member.id, utc(2030, 1, 8, 18), status=SessionStatus.REQUESTED)

        result = await reconciler.run(now=NOW)

        assert (result.completed, result.cancelled, result.failed) == (1, 2, 0)
        for session in (scheduled, pending, requested):
            await db_session.refresh(session)
        assert scheduled.status == SessionStatus.COMPLETED
        assert scheduled.actual_hours_spent == 1.5
        assert pending.status == SessionStatus.CANCELLED
        assert requested.status == SessionStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_today_is_left_alone(self, reconciler, db_session, trainer, member, add_session):
        """A session earlier today is not stale until tomorrow's run."""
        earlier_today = await add_session(trainer.id, member.id, utc(2030, 1, 9, 0))

        result = await reconciler.run(now=NOW)

        await db_session.refresh(earlier_today)
        assert result.completed == 0
        assert earlier_today.status == SessionStatus.SCHEDULED

    @pytest.mark.asyncio
    async def test_terminal_sessions_untouched(self, reconciler, db_session, trainer, member, add_session):
        cancelled = await add_session(trainer.id, member.id, utc(2030, 1, 8, 9), status=SessionStatus.CANCELLED)

        result = await reconciler.run(now=NOW)

        await db_session.refresh(cancelled)
        assert (result.completed, result.cancelled) == (0, 0)
        assert cancelled.status == SessionStatus.CANCELLED
        assert cancelled.actual_hours_spent == 0.0

    @pytest.mark.asyncio
    async def test_second_run_changes_nothing(self, reconciler, trainer, member, add_session):
        await add_session(trainer.id, member.id, utc(2030, 1, 8, 9))
        await add_session(trainer.id, member.id, utc(2030, 1, 8, 10), status=SessionStatus.PENDING)

        await reconciler.run(now=NOW)
        second = await reconciler.run(now=NOW)

        assert (second.completed, second.cancelled, second.failed) == (0, 0, 0)

    @pytest.mark.asyncio
    async def test_cutoff_uses_local_midnight_in_summer(self, reconciler, db_session, trainer, member, add_session):
        """23:30 UTC on 1 July is already 2 July in London."""
        late_evening = await add_session(trainer.id, member.id, utc(2030, 7, 1, 23, 30))

        result = await reconciler.run(now=utc(2030, 7, 2, 12))

        await db_session.refresh(late_evening)
        assert result.cutoff == utc(2030, 7, 1, 23)
        assert late_evening.status == SessionStatus.SCHEDULED

    @pytest.mark.asyncio
    async def test_failed_record_does_not_stop_the_rest(
        self, reconciler, db_session, trainer, member, add_session, monkeypatch,
    ):
        broken = await add_session(trainer.id, member.id, utc(2030, 1, 8, 8))
        healthy = await add_session(trainer.id, member.id, utc(2030, 1, 8, 9))
        real_transition = reconciler._transition

        async def flaky_transition(session_id, from_statuses, values):
            if session_id == broken.id:
                raise OperationalError("UPDATE training_sessions", {}, Exception("database is locked"))
            return await real_transition(session_id, from_statuses, values)

        monkeypatch.setattr(reconciler, "_transition", flaky_transition)

        result = await reconciler.run(now=NOW)

        assert (result.completed, result.failed) == (1, 1)
        await db_session.refresh(broken)
        await db_session.refresh(healthy)
        assert broken.status == SessionStatus.SCHEDULED
        assert healthy.status == SessionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_result_as_dict(self, reconciler):
        result = await reconciler.run(now=NOW)

        assert result.as_dict() == {
            "completed": 0,
            "cancelled": 0,
            "failed": 0,
            "cutoff": "2030-01-09T00:00:00+00:00",
        }
