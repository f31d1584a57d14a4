"""User models for the FitCoach platform."""
import enum
import uuid

from sqlalchemy import Boolean, Enum, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from fitcoach.config.database import Base
from fitcoach.core.models import TimestampMixin, UUIDMixin


class UserRole(str, enum.Enum):
    """Role of a platform user."""

    TRAINER = "trainer"
    MEMBER = "member"


class User(Base, UUIDMixin, TimestampMixin):
    """User model representing a trainer or a gym member."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role_enum", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Members only: the trainer currently coaching this member
    current_trainer_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Trainers only: bumped on every committed booking (compare-and-swap guard)
    schedule_version: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        server_default="0",
    )

    @property
    def is_trainer(self) -> bool:
        return self.role == UserRole.TRAINER

    @property
    def is_member(self) -> bool:
        return self.role == UserRole.MEMBER
