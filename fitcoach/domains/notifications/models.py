"""Notification event models."""
import enum
import uuid

from sqlalchemy import JSON, Boolean, Enum, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from fitcoach.config.database import Base
from fitcoach.core.models import TimestampMixin, UUIDMixin


class NotificationType(str, enum.Enum):
    """Scheduling events reported to the notification collaborator."""

    SESSION_CREATED = "session_created"
    SESSION_REQUESTED = "session_requested"
    SESSION_APPROVED = "session_approved"
    SESSION_REJECTED = "session_rejected"
    SESSION_RESCHEDULED = "session_rescheduled"
    SESSION_CANCELLED = "session_cancelled"
    SESSION_COMPLETED = "session_completed"
    PLAN_CREATED = "plan_created"


class Notification(Base, UUIDMixin, TimestampMixin):
    """A scheduling event addressed to a user. Delivery happens elsewhere."""

    __tablename__ = "notifications"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    notification_type: Mapped[NotificationType] = mapped_column(
        Enum(NotificationType, name="notification_type_enum", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        index=True,
    )

    # Reference to related entity
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)  # "session", "workout_plan"
    reference_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    sender_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
