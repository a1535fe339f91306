"""Turns a stored message into notification records for its recipients.

Runs after the message has been committed. Nothing in here is allowed to
fail the send: every recipient is handled in its own error boundary and the
bridge reports what happened instead of raising.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from courier.auth.models.user import User
from courier.core.config import settings
from courier.core.constants import (
    DND_DEFAULT_END,
    DND_DEFAULT_START,
    NOTIFICATION_PREVIEW_MAX_LENGTH,
)
from courier.messaging.models.conversation_participant import ConversationParticipant
from courier.notifications.models.notification import NotificationCategory, NotificationType
from courier.notifications.models.notification_preference import NotificationPreference
from courier.notifications.services.notification_sink import (
    NotificationDraft,
    NotificationPreferenceLookup,
    NotificationSink,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _default_clock() -> datetime:
    return datetime.now(ZoneInfo(settings.DND_TIMEZONE))


def is_in_dnd_window(preference: NotificationPreference, now: datetime) -> bool:
    """Check whether `now` falls inside the preference's do-not-disturb window.

    Days are numbered 0 = Sunday through 6 = Saturday. The window is inclusive
    at both ends and wraps midnight when start is later than end.
    """
    if not preference.dnd_enabled:
        return False

    day = now.isoweekday() % 7
    if day not in (preference.dnd_days or []):
        return False

    current = now.strftime("%H:%M")
    start = preference.dnd_start_time or DND_DEFAULT_START
    end = preference.dnd_end_time or DND_DEFAULT_END

    if start > end:
        return current >= start or current <= end
    return start <= current <= end


def build_preview(content: str, max_length: int = NOTIFICATION_PREVIEW_MAX_LENGTH) -> str:
    if len(content) <= max_length:
        return content
    return content[:max_length] + "..."


@dataclass
class NotificationFanoutResult:
    created: list[UUID] = field(default_factory=list)
    skipped: list[UUID] = field(default_factory=list)
    failed: list[UUID] = field(default_factory=list)


class NotificationBridge:
    def __init__(
        self,
        db: Session,
        preferences: NotificationPreferenceLookup | None = None,
        sink: NotificationSink | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.db = db
        self.preferences = preferences or NotificationPreferenceLookup(db)
        self.sink = sink or NotificationSink(db)
        self.clock = clock or _default_clock

    def notify_new_message(
        self,
        recipients: Iterable[ConversationParticipant],
        sender_id: UUID,
        conversation_id: UUID,
        content: str,
        conversation_name: str | None = None,
    ) -> NotificationFanoutResult:
        result = NotificationFanoutResult()
        targets = [p for p in recipients if p.is_active and not p.is_muted and p.user_id != sender_id]
        if not targets:
            return result

        sender = self.db.get(User, sender_id)
        sender_name = sender.display_name if sender else "User"
        title = (
            f"New message in {conversation_name}"
            if conversation_name
            else f"New message from {sender_name}"
        )
        preview = build_preview(content)
        action_url = f"{settings.FRONTEND_MESSAGES_PATH}?conversation={conversation_id}"
        now = self.clock()

        for participant in targets:
            user_id = participant.user_id
            try:
                if not self._should_notify(user_id, now):
                    result.skipped.append(user_id)
                    continue

                self.sink.create(
                    NotificationDraft(
                        user_id=user_id,
                        title=title,
                        message=preview,
                        notification_type=NotificationType.NEW_MESSAGE,
                        category=NotificationCategory.SOCIAL,
                        action_url=action_url,
                        metadata={
                            "senderId": str(sender_id),
                            "conversationId": str(conversation_id),
                        },
                    )
                )
                result.created.append(user_id)
            except Exception:
                self.db.rollback()
                logger.exception(
                    "Failed to create message notification for user %s in conversation %s",
                    user_id,
                    conversation_id,
                )
                result.failed.append(user_id)

        logger.debug(
            "Notification fan-out for conversation %s: created=%d skipped=%d failed=%d",
            conversation_id,
            len(result.created),
            len(result.skipped),
            len(result.failed),
        )
        return result

    def _should_notify(self, user_id: UUID, now: datetime) -> bool:
        preference = self.preferences.get_preference(user_id, NotificationCategory.SOCIAL)
        if preference is None:
            return True
        if not preference.enabled:
            return False
        return not is_in_dnd_window(preference, now)
