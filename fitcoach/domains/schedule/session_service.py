"""Training session lifecycle operations."""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fitcoach.config.settings import settings
from fitcoach.core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ValidationFailedException,
)
from fitcoach.domains.notifications.models import NotificationType
from fitcoach.domains.notifications.service import record_event
from fitcoach.domains.schedule.availability import (
    MAX_SESSION_DURATION_MINUTES,
    MIN_SESSION_DURATION_MINUTES,
    AvailabilityService,
)
from fitcoach.domains.schedule.booking_guard import BookingGuard
from fitcoach.domains.schedule.intervals import ensure_utc, local_date_of, start_of_local_day
from fitcoach.domains.schedule.models import (
    SessionStatus,
    SessionType,
    TrainingSession,
)
from fitcoach.domains.users.models import User, UserRole
from fitcoach.domains.workouts.models import PlanStatus, WorkoutPlan

logger = logging.getLogger(__name__)

SESSION_REFERENCE = "session"

PROGRESS_PERIODS = ("week", "month", "live")


def week_number_for(plan_start, local_date) -> int:
    """1-based plan week containing ``local_date``."""
    return (local_date - plan_start).days // 7 + 1


class SessionService:
    """Service for booking and progressing training sessions.

    Bookings that commit a ``scheduled`` session (create, approve,
    reschedule) go through ``BookingGuard`` so a concurrent booking for the
    same trainer cannot slip past the availability check.
    """

    def __init__(self, db: AsyncSession, tz: ZoneInfo | None = None):
        self.db = db
        self.tz = tz or settings.operating_zone
        self.availability = AvailabilityService(db, tz=self.tz)
        self.guard = BookingGuard(db)

    # Lookups

    async def get_session(self, session_id: uuid.UUID) -> TrainingSession | None:
        """Get a session by ID."""
        result = await self.db.execute(
            select(TrainingSession).where(TrainingSession.id == session_id)
        )
        return result.scalar_one_or_none()

    async def _require_session(self, session_id: uuid.UUID) -> TrainingSession:
        session = await self.get_session(session_id)
        if session is None:
            raise NotFoundException("Session not found", code="session_not_found")
        return session

    async def _get_user(self, user_id: uuid.UUID, role: UserRole) -> User:
        result = await self.db.execute(
            select(User).where(
                and_(
                    User.id == user_id,
                    User.role == role,
                    User.is_active == True,  # noqa: E712
                )
            )
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundException(
                f"{role.value.capitalize()} not found",
                code=f"{role.value}_not_found",
            )
        return user

    async def get_active_plan(self, member_id: uuid.UUID, trainer_id: uuid.UUID) -> WorkoutPlan | None:
        result = await self.db.execute(
            select(WorkoutPlan)
            .where(
                and_(
                    WorkoutPlan.member_id == member_id,
                    WorkoutPlan.trainer_id == trainer_id,
                    WorkoutPlan.status == PlanStatus.ACTIVE,
                )
            )
            .order_by(WorkoutPlan.start_date.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _plan_link(
        self, member_id: uuid.UUID, trainer_id: uuid.UUID, start: datetime,
    ) -> tuple[uuid.UUID | None, int | None]:
        """Active plan and week for a new session, if its local day falls inside the plan."""
        plan = await self.get_active_plan(member_id, trainer_id)
        if plan is None:
            return None, None
        local_day = local_date_of(start, self.tz)
        if not plan.start_date <= local_day <= plan.end_date:
            return None, None
        return plan.id, week_number_for(plan.start_date, local_day)

    async def _require_within_plan_week(self, session: TrainingSession, start: datetime) -> None:
        if session.workout_plan_id is None or session.week_number is None:
            return
        plan = await self.db.get(WorkoutPlan, session.workout_plan_id)
        if plan is None:
            return
        week_start = plan.start_date + timedelta(weeks=session.week_number - 1)
        week_end = week_start + timedelta(days=6)
        local_day = local_date_of(start, self.tz)
        if not week_start <= local_day <= week_end:
            raise ValidationFailedException(
                f"Session on {local_day.isoformat()} falls outside week {session.week_number} "
                f"({week_start.isoformat()} to {week_end.isoformat()})",
                code="session_outside_week",
                details={"week_number": session.week_number},
            )

    async def list_trainer_sessions(
        self,
        trainer_id: uuid.UUID,
        status: SessionStatus | None = None,
    ) -> list[TrainingSession]:
        """List a trainer's sessions, soonest first."""
        query = select(TrainingSession).where(TrainingSession.trainer_id == trainer_id)
        if status is not None:
            query = query.where(TrainingSession.status == status)
        result = await self.db.execute(query.order_by(TrainingSession.scheduled_date))
        return list(result.scalars().all())

    async def list_member_sessions(
        self,
        member_id: uuid.UUID,
        statuses: list[SessionStatus] | None = None,
    ) -> list[TrainingSession]:
        """List a member's sessions, soonest first."""
        query = select(TrainingSession).where(TrainingSession.member_id == member_id)
        if statuses:
            query = query.where(TrainingSession.status.in_(statuses))
        result = await self.db.execute(query.order_by(TrainingSession.scheduled_date))
        return list(result.scalars().all())

    async def get_progress(
        self,
        member_id: uuid.UUID,
        period: str,
        now: datetime | None = None,
    ) -> dict:
        """Completed training hours for a member over a trailing period.

        ``week`` and ``month`` look back 7 and 30 days; ``live`` starts at
        local midnight today.
        """
        now = ensure_utc(now or datetime.now(timezone.utc))
        if period == "week":
            since = now - timedelta(days=7)
        elif period == "month":
            since = now - timedelta(days=30)
        elif period == "live":
            since = ensure_utc(start_of_local_day(now, self.tz))
        else:
            raise ValidationFailedException(
                f"Invalid period {period!r}, use one of {', '.join(PROGRESS_PERIODS)}",
                code="invalid_period",
            )

        result = await self.db.execute(
            select(
                func.count(TrainingSession.id),
                func.coalesce(func.sum(TrainingSession.actual_hours_spent), 0.0),
            ).where(
                and_(
                    TrainingSession.member_id == member_id,
                    TrainingSession.status == SessionStatus.COMPLETED,
                    TrainingSession.scheduled_date >= since,
                    TrainingSession.scheduled_date <= now,
                )
            )
        )
        count, hours = result.one()
        return {"period": period, "session_count": count, "total_hours": float(hours)}

    # Validation helpers

    def _validate_slot(self, start: datetime, duration_minutes: int, now: datetime | None = None) -> datetime:
        if not MIN_SESSION_DURATION_MINUTES <= duration_minutes <= MAX_SESSION_DURATION_MINUTES:
            raise ValidationFailedException(
                f"Duration must be between {MIN_SESSION_DURATION_MINUTES} and "
                f"{MAX_SESSION_DURATION_MINUTES} minutes",
                code="invalid_duration",
            )
        start = ensure_utc(start)
        if start <= ensure_utc(now or datetime.now(timezone.utc)):
            raise ValidationFailedException("Session must start in the future", code="start_in_past")
        return start

    def _validate_note(self, note: str | None) -> None:
        if note is not None and len(note) > 1000:
            raise ValidationFailedException("Note must be at most 1000 characters", code="note_too_long")

    def _require_status(self, session: TrainingSession, *allowed: SessionStatus) -> None:
        if session.status not in allowed:
            raise ValidationFailedException(
                f"Session is {session.status.value}, expected {' or '.join(s.value for s in allowed)}",
                code="invalid_status_transition",
                details={"session_id": str(session.id), "status": session.status.value},
            )

    async def _reserve(
        self,
        trainer_id: uuid.UUID,
        start: datetime,
        duration_minutes: int,
        exclude_session_id: uuid.UUID | None = None,
    ) -> int:
        """Check availability and return the schedule version it was checked at."""
        version = await self.guard.read_version(trainer_id)
        available = await self.availability.is_available(
            trainer_id, start, duration_minutes, exclude_session_id=exclude_session_id,
        )
        if not available:
            raise ConflictException(
                "Trainer is not available at this time",
                code="trainer_unavailable",
                details={"start": ensure_utc(start).isoformat(), "duration_minutes": duration_minutes},
            )
        return version

    async def _commit_booking(self, trainer_id: uuid.UUID, version: int) -> None:
        try:
            await self.guard.claim(trainer_id, version)
        except ConflictException:
            await self.db.rollback()
            raise
        await self.db.commit()

    # Lifecycle operations

    async def create_session(
        self,
        trainer_id: uuid.UUID,
        member_id: uuid.UUID,
        start: datetime,
        duration_minutes: int | None = None,
        session_type: SessionType = SessionType.TBD,
        note: str | None = None,
    ) -> TrainingSession:
        """Trainer books a session directly as ``scheduled``."""
        duration_minutes = duration_minutes or settings.DEFAULT_SESSION_DURATION_MINUTES
        start = self._validate_slot(start, duration_minutes)
        self._validate_note(note)

        await self._get_user(trainer_id, UserRole.TRAINER)
        member = await self._get_user(member_id, UserRole.MEMBER)
        if member.current_trainer_id != trainer_id:
            raise ForbiddenException("Member is not assigned to this trainer", code="member_not_assigned")

        version = await self._reserve(trainer_id, start, duration_minutes)

        plan_id, week_number = await self._plan_link(member_id, trainer_id, start)
        session = TrainingSession(
            trainer_id=trainer_id,
            member_id=member_id,
            workout_plan_id=plan_id,
            week_number=week_number,
            scheduled_date=start,
            duration_minutes=duration_minutes,
            status=SessionStatus.SCHEDULED,
            session_type=session_type,
            note=note,
        )
        self.db.add(session)
        await self.db.flush()
        record_event(
            self.db, member_id, NotificationType.SESSION_CREATED,
            SESSION_REFERENCE, session.id, sender_id=trainer_id,
            payload={"scheduled_date": start.isoformat(), "duration_minutes": duration_minutes},
        )

        await self._commit_booking(trainer_id, version)
        await self.db.refresh(session)
        logger.info("Trainer %s booked session %s at %s", trainer_id, session.id, start.isoformat())
        return session

    async def request_session(
        self,
        member_id: uuid.UUID,
        start: datetime,
        duration_minutes: int | None = None,
        session_type: SessionType = SessionType.TBD,
        note: str | None = None,
    ) -> TrainingSession:
        """Member proposes a time with their trainer.

        Requested sessions block nothing until the trainer approves them.
        """
        duration_minutes = duration_minutes or settings.DEFAULT_SESSION_DURATION_MINUTES
        start = self._validate_slot(start, duration_minutes)
        self._validate_note(note)

        member = await self._get_user(member_id, UserRole.MEMBER)
        if member.current_trainer_id is None:
            raise ValidationFailedException("You are not connected to any trainer", code="no_trainer")
        trainer_id = member.current_trainer_id

        plan_id, week_number = await self._plan_link(member_id, trainer_id, start)
        session = TrainingSession(
            trainer_id=trainer_id,
            member_id=member_id,
            workout_plan_id=plan_id,
            week_number=week_number,
            scheduled_date=start,
            duration_minutes=duration_minutes,
            status=SessionStatus.REQUESTED,
            session_type=session_type,
            note=note,
        )
        self.db.add(session)
        await self.db.flush()
        record_event(
            self.db, trainer_id, NotificationType.SESSION_REQUESTED,
            SESSION_REFERENCE, session.id, sender_id=member_id,
            payload={"scheduled_date": start.isoformat(), "duration_minutes": duration_minutes},
        )
        await self.db.commit()
        await self.db.refresh(session)
        logger.info("Member %s requested session %s", member_id, session.id)
        return session

    async def claim_session(
        self,
        member_id: uuid.UUID,
        session_id: uuid.UUID,
        start: datetime,
        duration_minutes: int | None = None,
    ) -> TrainingSession:
        """Member turns a plan placeholder into a request for a concrete time."""
        session = await self._require_session(session_id)
        if session.member_id != member_id:
            raise ForbiddenException("You are not allowed to claim this session", code="not_session_member")
        self._require_status(session, SessionStatus.PENDING)

        duration_minutes = duration_minutes or session.duration_minutes
        start = self._validate_slot(start, duration_minutes)
        await self._require_within_plan_week(session, start)

        session.scheduled_date = start
        session.duration_minutes = duration_minutes
        session.status = SessionStatus.REQUESTED
        session.needs_manual_scheduling = False
        record_event(
            self.db, session.trainer_id, NotificationType.SESSION_REQUESTED,
            SESSION_REFERENCE, session.id, sender_id=member_id,
            payload={"scheduled_date": start.isoformat(), "duration_minutes": duration_minutes},
        )
        await self.db.commit()
        await self.db.refresh(session)
        return session

    async def respond_to_request(
        self,
        trainer_id: uuid.UUID,
        session_id: uuid.UUID,
        action: str,
    ) -> TrainingSession:
        """Approve (``scheduled``) or reject (``cancelled``) a requested session."""
        session = await self._require_session(session_id)
        if session.trainer_id != trainer_id:
            raise ForbiddenException(
                "You are not authorized to respond to this session", code="not_session_trainer",
            )
        self._require_status(session, SessionStatus.REQUESTED)

        if action == "approve":
            version = await self._reserve(
                trainer_id, session.scheduled_date, session.duration_minutes,
                exclude_session_id=session.id,
            )
            session.status = SessionStatus.SCHEDULED
            record_event(
                self.db, session.member_id, NotificationType.SESSION_APPROVED,
                SESSION_REFERENCE, session.id, sender_id=trainer_id,
            )
            await self._commit_booking(trainer_id, version)
        elif action == "reject":
            session.status = SessionStatus.CANCELLED
            session.cancellation_reason = "Rejected by trainer"
            record_event(
                self.db, session.member_id, NotificationType.SESSION_REJECTED,
                SESSION_REFERENCE, session.id, sender_id=trainer_id,
            )
            await self.db.commit()
        else:
            raise ValidationFailedException(
                'Invalid action. Use "approve" or "reject".', code="invalid_action",
            )

        await self.db.refresh(session)
        logger.info("Trainer %s %sd session %s", trainer_id, action, session.id)
        return session

    async def reschedule_session(
        self,
        trainer_id: uuid.UUID,
        session_id: uuid.UUID,
        start: datetime,
        duration_minutes: int | None = None,
    ) -> TrainingSession:
        """Move a session to a new time.

        Scheduled sessions are re-checked against availability, ignoring
        their own current booking.
        """
        session = await self._require_session(session_id)
        if session.trainer_id != trainer_id:
            raise ForbiddenException("You are not authorized to edit this session", code="not_session_trainer")
        self._require_status(
            session, SessionStatus.PENDING, SessionStatus.REQUESTED, SessionStatus.SCHEDULED,
        )

        duration_minutes = duration_minutes or session.duration_minutes
        start = self._validate_slot(start, duration_minutes)

        version = None
        if session.status == SessionStatus.SCHEDULED:
            version = await self._reserve(
                trainer_id, start, duration_minutes, exclude_session_id=session.id,
            )

        previous = ensure_utc(session.scheduled_date)
        session.scheduled_date = start
        session.duration_minutes = duration_minutes
        session.needs_manual_scheduling = False
        record_event(
            self.db, session.member_id, NotificationType.SESSION_RESCHEDULED,
            SESSION_REFERENCE, session.id, sender_id=trainer_id,
            payload={
                "previous_date": previous.isoformat(),
                "scheduled_date": start.isoformat(),
                "duration_minutes": duration_minutes,
            },
        )

        if version is not None:
            await self._commit_booking(trainer_id, version)
        else:
            await self.db.commit()
        await self.db.refresh(session)
        return session

    async def complete_session(
        self,
        trainer_id: uuid.UUID,
        session_id: uuid.UUID,
        actual_hours_spent: float | None = None,
        attended: bool = True,
        note: str | None = None,
    ) -> TrainingSession:
        """Mark a scheduled session as completed."""
        session = await self._require_session(session_id)
        if session.trainer_id != trainer_id:
            raise ForbiddenException("You are not authorized to update this session", code="not_session_trainer")
        self._require_status(session, SessionStatus.SCHEDULED)
        self._validate_note(note)
        if actual_hours_spent is not None and actual_hours_spent < 0:
            raise ValidationFailedException("actual_hours_spent cannot be negative", code="invalid_hours")

        session.status = SessionStatus.COMPLETED
        session.actual_hours_spent = (
            actual_hours_spent if actual_hours_spent is not None else session.duration_minutes / 60
        )
        session.attended = attended
        if note is not None:
            session.note = note
        record_event(
            self.db, session.member_id, NotificationType.SESSION_COMPLETED,
            SESSION_REFERENCE, session.id, sender_id=trainer_id,
            payload={"actual_hours_spent": session.actual_hours_spent, "attended": attended},
        )
        await self.db.commit()
        await self.db.refresh(session)
        return session

    async def cancel_session(
        self,
        actor: User,
        session_id: uuid.UUID,
        reason: str | None = None,
    ) -> TrainingSession:
        """Cancel a session on behalf of its trainer or member.

        Trainers may cancel any non-terminal session; members may cancel
        their own requested or scheduled sessions.
        """
        session = await self._require_session(session_id)
        self._validate_note(reason)

        if actor.is_trainer and session.trainer_id == actor.id:
            self._require_status(
                session, SessionStatus.PENDING, SessionStatus.REQUESTED, SessionStatus.SCHEDULED,
            )
            recipient = session.member_id
        elif actor.is_member and session.member_id == actor.id:
            self._require_status(session, SessionStatus.REQUESTED, SessionStatus.SCHEDULED)
            recipient = session.trainer_id
        else:
            raise ForbiddenException("You are not allowed to cancel this session", code="not_session_party")

        session.status = SessionStatus.CANCELLED
        session.cancellation_reason = reason
        record_event(
            self.db, recipient, NotificationType.SESSION_CANCELLED,
            SESSION_REFERENCE, session.id, sender_id=actor.id,
            payload={"reason": reason} if reason else None,
        )
        await self.db.commit()
        await self.db.refresh(session)
        logger.info("Session %s cancelled by %s", session.id, actor.id)
        return session
