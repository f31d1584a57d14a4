"""Schedule models: trainer availability and training sessions."""
import enum
import uuid
from datetime import date, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fitcoach.config.database import Base
from fitcoach.core.models import TimestampMixin, UUIDMixin


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [e.value for e in enum_cls]


class SessionStatus(str, enum.Enum):
    """Training session lifecycle status."""

    PENDING = "pending"  # Placeholder, no committed time
    REQUESTED = "requested"  # Member proposed a time
    SCHEDULED = "scheduled"  # Trainer committed
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.CANCELLED})


class SessionType(str, enum.Enum):
    """Kind of training planned for the session."""

    TBD = "tbd"
    CARDIO = "cardio"
    STRENGTH = "strength"
    FLEXIBILITY = "flexibility"
    YOGA = "yoga"
    HIIT = "hiit"
    CORE = "core"
    MOBILITY = "mobility"
    SWIMMING = "swimming"
    ENDURANCE = "endurance"


class TrainerAvailability(Base, UUIDMixin, TimestampMixin):
    """Recurring weekly availability window for a trainer."""

    __tablename__ = "trainer_availability"

    trainer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    day_of_week: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )  # 0=Monday, 6=Sunday
    start_time: Mapped[str] = mapped_column(
        String(5),
        nullable=False,
    )  # HH:MM format
    end_time: Mapped[str] = mapped_column(
        String(5),
        nullable=False,
    )  # HH:MM format


class TrainerAvailabilityOverride(Base, UUIDMixin, TimestampMixin):
    """Date-specific availability that replaces the recurring pattern.

    An empty ``windows`` list marks the trainer as unavailable for the day.
    """

    __tablename__ = "trainer_availability_overrides"
    __table_args__ = (
        UniqueConstraint("trainer_id", "specific_date", name="uq_trainer_override_date"),
    )

    trainer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    specific_date: Mapped[date] = mapped_column(Date, nullable=False)
    windows: Mapped[list[dict]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )  # [{"start": "HH:MM", "end": "HH:MM"}, ...]


class TrainingSession(Base, UUIDMixin, TimestampMixin):
    """A one-to-one training session between a trainer and a member."""

    __tablename__ = "training_sessions"
    __table_args__ = (
        CheckConstraint(
            "(workout_plan_id IS NULL AND week_number IS NULL) OR "
            "(workout_plan_id IS NOT NULL AND week_number IS NOT NULL)",
            name="ck_session_plan_week_pair",
        ),
        Index("ix_training_sessions_trainer_member", "trainer_id", "member_id"),
        Index("ix_training_sessions_plan_week", "workout_plan_id", "week_number"),
        Index("ix_training_sessions_status_date", "status", "scheduled_date"),
    )

    member_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    trainer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    workout_plan_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("workout_plans.id", ondelete="SET NULL"),
        nullable=True,
    )
    week_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    scheduled_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    duration_minutes: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=60,
    )
    status: Mapped[SessionStatus] = mapped_column(
        Enum(SessionStatus, name="session_status_enum", values_callable=_enum_values),
        nullable=False,
        default=SessionStatus.PENDING,
    )
    session_type: Mapped[SessionType] = mapped_column(
        Enum(SessionType, name="session_type_enum", values_callable=_enum_values),
        nullable=False,
        default=SessionType.TBD,
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    actual_hours_spent: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    attended: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Fallback placements made outside declared availability
    needs_manual_scheduling: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false",
    )

    # Relationships
    workout_plan = relationship("WorkoutPlan", back_populates="sessions", lazy="noload")

    def __init__(self, **kwargs):
        if (kwargs.get("workout_plan_id") is None) != (kwargs.get("week_number") is None):
            raise ValueError("workout_plan_id and week_number must be set together")
        super().__init__(**kwargs)
