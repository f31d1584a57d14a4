"""Daily reconciliation of stale session statuses.

Sessions dated before the start of the current local day are settled:
scheduled ones are completed at their booked length, placeholders and
unanswered requests are cancelled.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from sqlalchemy import and_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fitcoach.config.settings import settings
from fitcoach.core.observability import capture_exception
from fitcoach.domains.schedule.intervals import ensure_utc, start_of_local_day
from fitcoach.domains.schedule.models import SessionStatus, TrainingSession

logger = logging.getLogger(__name__)

STALE_OPEN_STATUSES = (SessionStatus.PENDING, SessionStatus.REQUESTED)


@dataclass
class ReconcileResult:
    completed: int
    cancelled: int
    failed: int
    cutoff: datetime

    def as_dict(self) -> dict:
        return {
            "completed": self.completed,
            "cancelled": self.cancelled,
            "failed": self.failed,
            "cutoff": self.cutoff.isoformat(),
        }


class SessionReconciler:
    """Settles sessions whose day has passed.

    Each record is updated on its own savepoint with a status guard in the
    WHERE clause, so a record that fails is skipped without undoing the
    others and a second run changes nothing.
    """

    def __init__(self, db: AsyncSession, tz: ZoneInfo | None = None):
        self.db = db
        self.tz = tz or settings.operating_zone

    def cutoff_for(self, now: datetime) -> datetime:
        return ensure_utc(start_of_local_day(now, self.tz))

    async def run(self, now: datetime | None = None) -> ReconcileResult:
        now = now or datetime.now(timezone.utc)
        cutoff = self.cutoff_for(now)
        result = ReconcileResult(completed=0, cancelled=0, failed=0, cutoff=cutoff)

        rows = await self.db.execute(
            select(TrainingSession.id, TrainingSession.status, TrainingSession.duration_minutes)
            .where(
                and_(
                    TrainingSession.scheduled_date < cutoff,
                    TrainingSession.status.in_((SessionStatus.SCHEDULED, *STALE_OPEN_STATUSES)),
                )
            )
            .order_by(TrainingSession.scheduled_date)
        )

        for session_id, status, duration_minutes in rows.all():
            if status == SessionStatus.SCHEDULED:
                values = {
                    "status": SessionStatus.COMPLETED,
                    "actual_hours_spent": duration_minutes / 60,
                }
                from_statuses = (SessionStatus.SCHEDULED,)
            else:
                values = {"status": SessionStatus.CANCELLED}
                from_statuses = STALE_OPEN_STATUSES

            try:
                changed = await self._transition(session_id, from_statuses, values)
            except SQLAlchemyError as e:
                result.failed += 1
                logger.error("Failed to reconcile session %s: %s", session_id, e)
                capture_exception(
                    e,
                    extra={"session_id": str(session_id), "cutoff": cutoff.isoformat()},
                    tags={"job": "session_reconciler"},
                )
                continue

            if not changed:
                continue
            if values["status"] == SessionStatus.COMPLETED:
                result.completed += 1
            else:
                result.cancelled += 1

        await self.db.commit()
        logger.info(
            "Session reconciliation at cutoff %s: %d completed, %d cancelled, %d failed",
            cutoff.isoformat(), result.completed, result.cancelled, result.failed,
        )
        return result

    async def _transition(
        self,
        session_id: uuid.UUID,
        from_statuses: tuple[SessionStatus, ...],
        values: dict,
    ) -> bool:
        """Apply one guarded status change; False when the row already moved on."""
        async with self.db.begin_nested():
            updated = await self.db.execute(
                update(TrainingSession)
                .where(
                    and_(
                        TrainingSession.id == session_id,
                        TrainingSession.status.in_(from_statuses),
                    )
                )
                .values(**values, updated_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
        return updated.rowcount == 1
