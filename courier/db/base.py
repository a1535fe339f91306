"""
Database base module - imports all models for Alembic migration detection.

This module imports all SQLAlchemy models to ensure they are registered
with the declarative Base before metadata is used (create_all, Alembic
autogenerate, relationship resolution by name).
"""

from courier.auth.models.user import User
from courier.messaging.models import (
    Conversation,
    ConversationParticipant,
    Message,
    MessageStatus,
    MessagingSettings,
)
from courier.notifications.models.notification import Notification
from courier.notifications.models.notification_preference import NotificationPreference

__all__ = [
    "User",
    "Conversation",
    "ConversationParticipant",
    "Message",
    "MessageStatus",
    "MessagingSettings",
    "Notification",
    "NotificationPreference",
]
