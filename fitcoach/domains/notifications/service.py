"""Record scheduling events for the notification collaborator."""
import logging
import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from fitcoach.domains.notifications.models import Notification, NotificationType

logger = logging.getLogger(__name__)


def record_event(
    db: AsyncSession,
    user_id: uuid.UUID,
    notification_type: NotificationType,
    reference_type: str,
    reference_id: uuid.UUID,
    sender_id: uuid.UUID | None = None,
    payload: dict[str, Any] | None = None,
) -> Notification:
    """Stage an event in the caller's transaction.

    Nothing is flushed here: the event commits (or rolls back) together with
    the state change it reports.
    """
    notification = Notification(
        user_id=user_id,
        notification_type=notification_type,
        reference_type=reference_type,
        reference_id=reference_id,
        sender_id=sender_id,
        payload=payload or {},
    )
    db.add(notification)
    logger.debug(
        "Staged %s event for user %s (%s %s)",
        notification_type.value, user_id, reference_type, reference_id,
    )
    return notification
