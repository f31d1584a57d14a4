"""Central import of all domain models.

This file imports all models to ensure they are registered with SQLAlchemy's
metadata before any database operations (like creating tables).
"""

# Users domain
from fitcoach.domains.users.models import (
    User,
    UserRole,
)

# Schedule domain
from fitcoach.domains.schedule.models import (
    SessionStatus,
    SessionType,
    TrainerAvailability,
    TrainerAvailabilityOverride,
    TrainingSession,
)

# Workouts domain
from fitcoach.domains.workouts.models import (
    PlanStatus,
    WorkoutPlan,
)

# Notifications domain
from fitcoach.domains.notifications.models import (
    Notification,
    NotificationType,
)

__all__ = [
    # Users
    "User",
    "UserRole",
    # Schedule
    "SessionStatus",
    "SessionType",
    "TrainerAvailability",
    "TrainerAvailabilityOverride",
    "TrainingSession",
    # Workouts
    "PlanStatus",
    "WorkoutPlan",
    # Notifications
    "Notification",
    "NotificationType",
]
