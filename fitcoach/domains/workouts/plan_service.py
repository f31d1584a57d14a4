"""Workout plan operations."""
import logging
import uuid
from dataclasses import dataclass
from datetime import date, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
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
from fitcoach.domains.schedule.availability import AvailabilityService
from fitcoach.domains.schedule.intervals import local_midnight
from fitcoach.domains.schedule.models import SessionStatus, TrainingSession
from fitcoach.domains.users.models import User, UserRole
from fitcoach.domains.workouts.models import PlanStatus, WorkoutPlan
from fitcoach.domains.workouts.plan_scheduler import (
    DAYS_PER_WEEK,
    WeekRequest,
    plan_week_count,
    schedule_plan,
)

logger = logging.getLogger(__name__)

REFERENCE_PREFIX = "WKP"
MAX_GOAL_LENGTH = 500


@dataclass
class ActivePlan:
    plan: WorkoutPlan
    completed_sessions: int


class PlanService:
    """Service for creating workout plans and their session blocks."""

    def __init__(self, db: AsyncSession, tz: ZoneInfo | None = None):
        self.db = db
        self.tz = tz or settings.operating_zone
        self.availability = AvailabilityService(db, tz=self.tz)

    async def _get_user(self, user_id: uuid.UUID, role: UserRole) -> User | None:
        result = await self.db.execute(
            select(User).where(
                and_(
                    User.id == user_id,
                    User.role == role,
                    User.is_active == True,  # noqa: E712
                )
            )
        )
        return result.scalar_one_or_none()

    async def _next_reference(self) -> str:
        count = await self.db.scalar(select(func.count(WorkoutPlan.id)))
        return f"{REFERENCE_PREFIX}-{(count or 0) + 1:03d}"

    async def create_plan(
        self,
        trainer_id: uuid.UUID,
        member_id: uuid.UUID,
        goal: str,
        start_date: date,
        end_date: date,
        weeks: list[WeekRequest],
    ) -> tuple[WorkoutPlan, list[TrainingSession]]:
        """Create a plan and every one of its sessions in one transaction.

        Sessions of auto-placed weeks start ``pending``; the ones that could
        not be fitted into the trainer's availability are flagged
        ``needs_manual_scheduling``.

        Raises:
            NotFoundException: trainer or member does not exist.
            ForbiddenException: member is not assigned to the trainer.
            ValidationFailedException: dates, goal or weekly sessions are invalid.
        """
        if await self._get_user(trainer_id, UserRole.TRAINER) is None:
            raise NotFoundException("Trainer not found", code="trainer_not_found")
        member = await self._get_user(member_id, UserRole.MEMBER)
        if member is None:
            raise NotFoundException("Member not found", code="member_not_found")
        if member.current_trainer_id != trainer_id:
            raise ForbiddenException("You are not assigned to this member", code="member_not_assigned")

        goal = (goal or "").strip()
        if not goal or len(goal) > MAX_GOAL_LENGTH:
            raise ValidationFailedException(
                f"Goal is required and must be at most {MAX_GOAL_LENGTH} characters",
                code="invalid_goal",
            )

        availability = await self.availability.load_availability(trainer_id)
        if availability is None:
            raise NotFoundException("Trainer not found", code="trainer_not_found")

        # Auto-placement may use all 7 days of the last week
        horizon_end = start_date + timedelta(days=DAYS_PER_WEEK * plan_week_count(start_date, end_date))
        booked = await self.availability.get_booked_intervals(
            trainer_id,
            local_midnight(start_date, self.tz),
            local_midnight(horizon_end, self.tz),
        )

        placements = schedule_plan(
            availability, start_date, end_date, weeks, booked, self.tz,
            granularity_minutes=settings.SLOT_GRANULARITY_MINUTES,
            duration_minutes=settings.DEFAULT_SESSION_DURATION_MINUTES,
        )

        plan = WorkoutPlan(
            id=uuid.uuid4(),
            reference=await self._next_reference(),
            trainer_id=trainer_id,
            member_id=member_id,
            goal=goal,
            start_date=start_date,
            end_date=end_date,
            weekly_sessions=[
                {"week_number": w.week_number, "session_count": w.session_count} for w in weeks
            ],
            status=PlanStatus.ACTIVE,
        )
        sessions = [
            TrainingSession(
                trainer_id=trainer_id,
                member_id=member_id,
                workout_plan_id=plan.id,
                week_number=p.week_number,
                scheduled_date=p.start,
                duration_minutes=p.duration_minutes,
                status=SessionStatus.PENDING,
                session_type=p.session_type,
                note=p.note,
                needs_manual_scheduling=p.needs_manual_scheduling,
            )
            for p in placements
        ]

        self.db.add(plan)
        self.db.add_all(sessions)
        record_event(
            self.db, member_id, NotificationType.PLAN_CREATED,
            "workout_plan", plan.id, sender_id=trainer_id,
            payload={"reference": plan.reference, "session_count": len(sessions)},
        )
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictException(
                "Another plan was created at the same time, please retry",
                code="plan_reference_taken",
            )

        manual = sum(1 for s in sessions if s.needs_manual_scheduling)
        logger.info(
            "Created plan %s for member %s: %d sessions (%d need manual scheduling)",
            plan.reference, member_id, len(sessions), manual,
        )
        return plan, sessions

    async def get_active_plan(self, member_id: uuid.UUID) -> ActivePlan:
        """The member's active plan with its count of completed sessions."""
        result = await self.db.execute(
            select(WorkoutPlan)
            .where(
                and_(
                    WorkoutPlan.member_id == member_id,
                    WorkoutPlan.status == PlanStatus.ACTIVE,
                )
            )
            .order_by(WorkoutPlan.start_date.desc())
            .limit(1)
        )
        plan = result.scalar_one_or_none()
        if plan is None:
            raise NotFoundException("No active workout plan found", code="plan_not_found")

        completed = await self.db.scalar(
            select(func.count(TrainingSession.id)).where(
                and_(
                    TrainingSession.workout_plan_id == plan.id,
                    TrainingSession.status == SessionStatus.COMPLETED,
                )
            )
        )
        return ActivePlan(plan=plan, completed_sessions=completed or 0)
