"""Schedule schemas for API validation."""
from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .intervals import TimeWindow, ensure_utc, parse_hhmm
from .models import SessionStatus, SessionType


class WindowSchema(BaseModel):
    """Wall-clock window within one day."""

    start: str = Field(..., examples=["09:00"])
    end: str = Field(..., examples=["11:00"])

    @field_validator("start", "end")
    @classmethod
    def validate_hhmm(cls, value: str) -> str:
        return parse_hhmm(value).strftime("%H:%M")

    def to_window(self) -> TimeWindow:
        return TimeWindow(start=self.start, end=self.end)


class RecurringWindowSchema(WindowSchema):
    day_of_week: int = Field(..., ge=0, le=6)  # 0=Monday


class DateOverrideSchema(BaseModel):
    """Windows for a specific date; an empty list closes the day."""

    date: date
    windows: list[WindowSchema] = []


class OverrideUpdate(BaseModel):
    windows: list[WindowSchema] = []


class AvailabilityUpdate(BaseModel):
    """Full replacement of a trainer's availability."""

    recurring: list[RecurringWindowSchema] = []
    overrides: list[DateOverrideSchema] = []

    @field_validator("overrides")
    @classmethod
    def unique_override_dates(cls, value: list[DateOverrideSchema]) -> list[DateOverrideSchema]:
        dates = [o.date for o in value]
        if len(dates) != len(set(dates)):
            raise ValueError("Each date may only have one override")
        return value


class AvailabilityResponse(BaseModel):
    trainer_id: UUID
    recurring: list[RecurringWindowSchema]
    overrides: list[DateOverrideSchema]


class ResolvedWindowsResponse(BaseModel):
    trainer_id: UUID
    date: date
    windows: list[WindowSchema]
    is_override: bool


class AvailabilityCheckResponse(BaseModel):
    trainer_id: UUID
    start: datetime
    duration_minutes: int
    available: bool


class FreeSlotsResponse(BaseModel):
    trainer_id: UUID
    date: date
    granularity_minutes: int
    slots: list[datetime]


class FreeSlotsRangeResponse(BaseModel):
    trainer_id: UUID
    start_date: date
    end_date: date
    granularity_minutes: int
    days: dict[date, list[datetime]]


# ==================== Sessions ====================

class SessionCreate(BaseModel):
    """Trainer books a session directly."""

    member_id: UUID
    scheduled_date: datetime
    duration_minutes: int | None = Field(default=None, ge=30, le=240)
    session_type: SessionType = SessionType.TBD
    note: str | None = Field(default=None, max_length=1000)


class SessionRequestCreate(BaseModel):
    """Member proposes a session time."""

    scheduled_date: datetime
    duration_minutes: int | None = Field(default=None, ge=30, le=240)
    session_type: SessionType = SessionType.TBD
    note: str | None = Field(default=None, max_length=1000)


class SessionClaim(BaseModel):
    scheduled_date: datetime
    duration_minutes: int | None = Field(default=None, ge=30, le=240)


class SessionAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class SessionRespond(BaseModel):
    action: SessionAction


class SessionReschedule(BaseModel):
    scheduled_date: datetime
    duration_minutes: int | None = Field(default=None, ge=30, le=240)


class SessionComplete(BaseModel):
    actual_hours_spent: float | None = Field(default=None, ge=0)
    attended: bool = True
    note: str | None = Field(default=None, max_length=1000)


class SessionCancel(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class SessionResponse(BaseModel):
    """Schema for training session response."""

    id: UUID
    trainer_id: UUID
    member_id: UUID
    workout_plan_id: UUID | None
    week_number: int | None
    scheduled_date: datetime
    duration_minutes: int
    status: SessionStatus
    session_type: SessionType
    note: str | None
    cancellation_reason: str | None
    actual_hours_spent: float
    attended: bool
    needs_manual_scheduling: bool
    created_at: datetime
    updated_at: datetime | None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("scheduled_date", "created_at", "updated_at")
    @classmethod
    def as_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None


class SessionProgressResponse(BaseModel):
    period: str
    session_count: int
    total_hours: float
