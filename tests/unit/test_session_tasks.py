"""Tests for the session reconciliation task."""
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fitcoach.domains.schedule.models import SessionStatus
from fitcoach.tasks.sessions import SWEEP_LOCK_NAME, _reconcile_session_statuses_async
from tests.conftest import utc


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


class TestReconcileTask:
    @pytest.mark.asyncio
    async def test_runs_under_lock(self, session_factory, db_session, trainer, member, add_session):
        past = await add_session(trainer.id, member.id, utc(2020, 3, 2, 9))

        with patch("fitcoach.tasks.sessions.acquire_lock", AsyncMock(return_value="token")) as acquire, \
                patch("fitcoach.tasks.sessions.release_lock", AsyncMock()) as release:
            result = await _reconcile_session_statuses_async(session_factory=session_factory)

        assert result["skipped"] is False
        assert result["completed"] == 1
        acquire.assert_awaited_once()
        assert acquire.await_args.args[0] == SWEEP_LOCK_NAME
        release.assert_awaited_once_with(SWEEP_LOCK_NAME, "token")
        await db_session.refresh(past)
        assert past.status == SessionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_skips_when_lock_held(self):
        factory = AsyncMock()

        with patch("fitcoach.tasks.sessions.acquire_lock", AsyncMock(return_value=None)), \
                patch("fitcoach.tasks.sessions.release_lock", AsyncMock()) as release:
            result = await _reconcile_session_statuses_async(session_factory=factory)

        assert result == {"skipped": True}
        factory.assert_not_called()
        release.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_releases_lock_on_failure(self, session_factory):
        with patch("fitcoach.tasks.sessions.acquire_lock", AsyncMock(return_value="token")), \
                patch("fitcoach.tasks.sessions.release_lock", AsyncMock()) as release, \
                patch(
                    "fitcoach.tasks.sessions.SessionReconciler.run",
                    AsyncMock(side_effect=RuntimeError("boom")),
                ):
            with pytest.raises(RuntimeError):
                await _reconcile_session_statuses_async(session_factory=session_factory)

        release.assert_awaited_once_with(SWEEP_LOCK_NAME, "token")
