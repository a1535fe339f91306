"""Read-only preference lookup and notification record creation.

Both are collaborators owned by the notifications subsystem. The messaging
core consults preferences as a yes/no gate and hands finished notifications
to the sink; delivery of the notification itself (email, push) happens
elsewhere.
"""

import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from courier.notifications.models.notification import (
    Notification,
    NotificationCategory,
    NotificationStatus,
    NotificationType,
)
from courier.notifications.models.notification_preference import NotificationPreference

logger = logging.getLogger(__name__)


@dataclass
class NotificationDraft:
    """Everything needed to create one notification record."""

    user_id: UUID
    title: str
    message: str
    notification_type: NotificationType = NotificationType.NEW_MESSAGE
    category: NotificationCategory = NotificationCategory.SOCIAL
    action_url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class NotificationPreferenceLookup:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_preference(
        self, user_id: UUID, category: NotificationCategory
    ) -> NotificationPreference | None:
        """Return the user's preference for a category; None means no restriction."""
        result: NotificationPreference | None = (
            self.db.query(NotificationPreference)
            .filter(
                NotificationPreference.user_id == user_id,
                NotificationPreference.category == category.value,
            )
            .first()
        )
        return result


class NotificationSink:
    def __init__(self, db: Session) -> None:
        self.db = db

    def create(self, draft: NotificationDraft) -> Notification:
        notification = Notification(
            user_id=draft.user_id,
            category=draft.category.value,
            notification_type=draft.notification_type.value,
            title=draft.title,
            message=draft.message,
            action_url=draft.action_url,
            extra_data=draft.metadata or None,
            status=NotificationStatus.PENDING.value,
        )
        self.db.add(notification)
        self.db.commit()
        logger.debug("Notification %s created for user %s", notification.id, draft.user_id)
        return notification
