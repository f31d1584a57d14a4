"""Workout plan schemas for API validation."""
from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from fitcoach.domains.schedule.models import SessionType
from fitcoach.domains.schedule.schemas import SessionResponse

from .models import PlanStatus
from .plan_scheduler import ExplicitSession, WeekRequest


class ExplicitSessionInput(BaseModel):
    """A session the trainer pins to an exact time."""

    scheduled_date: datetime
    duration_minutes: int = Field(default=60, ge=30, le=240)
    note: str | None = Field(default=None, max_length=1000)
    session_type: SessionType = SessionType.TBD


class WeeklySessionsInput(BaseModel):
    """Session count for one plan week.

    Leave ``sessions`` out to let the scheduler place them in the trainer's
    free slots.
    """

    week_number: int = Field(..., ge=1)
    session_count: int = Field(..., ge=1, le=14)
    sessions: list[ExplicitSessionInput] | None = None

    def to_week_request(self) -> WeekRequest:
        explicit = None
        if self.sessions is not None:
            explicit = tuple(
                ExplicitSession(
                    start=s.scheduled_date,
                    duration_minutes=s.duration_minutes,
                    note=s.note,
                    session_type=s.session_type,
                )
                for s in self.sessions
            )
        return WeekRequest(
            week_number=self.week_number,
            session_count=self.session_count,
            sessions=explicit,
        )


class WorkoutPlanCreate(BaseModel):
    """Schema for creating a workout plan."""

    member_id: UUID
    goal: str = Field(..., min_length=1, max_length=500)
    start_date: date
    end_date: date
    weekly_sessions: list[WeeklySessionsInput] = Field(..., min_length=1)


class WorkoutPlanResponse(BaseModel):
    """Schema for workout plan response."""

    id: UUID
    reference: str
    trainer_id: UUID
    member_id: UUID
    goal: str
    start_date: date
    end_date: date
    weekly_sessions: list[dict]
    status: PlanStatus
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WorkoutPlanCreateResponse(BaseModel):
    plan: WorkoutPlanResponse
    sessions: list[SessionResponse]
    needs_manual_scheduling: int


class ActivePlanResponse(BaseModel):
    plan: WorkoutPlanResponse
    completed_sessions: int
