"""Workout plan models."""
import enum
import uuid
from datetime import date

from sqlalchemy import JSON, Date, Enum, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fitcoach.config.database import Base
from fitcoach.core.models import TimestampMixin, UUIDMixin


class PlanStatus(str, enum.Enum):
    """Workout plan status."""

    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class WorkoutPlan(Base, UUIDMixin, TimestampMixin):
    """A multi-week training block a trainer prescribes to a member."""

    __tablename__ = "workout_plans"
    __table_args__ = (
        Index("ix_workout_plans_member_status", "member_id", "status"),
    )

    reference: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        index=True,
        nullable=False,
    )  # WKP-001
    trainer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    member_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    goal: Mapped[str] = mapped_column(Text, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    weekly_sessions: Mapped[list[dict]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )  # [{"week_number": 1, "session_count": 3}, ...]
    status: Mapped[PlanStatus] = mapped_column(
        Enum(PlanStatus, name="plan_status_enum", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=PlanStatus.ACTIVE,
    )

    # Relationships
    sessions = relationship("TrainingSession", back_populates="workout_plan", lazy="noload")
