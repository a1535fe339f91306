import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer
from sqlalchemy.orm import Mapped, mapped_column

from courier.core.constants import (
    DEFAULT_MAX_GROUP_PARTICIPANTS,
    DEFAULT_MAX_MESSAGE_LENGTH,
    DEFAULT_MESSAGE_RETENTION_DAYS,
    DEFAULT_MESSAGING_ENABLED,
)
from courier.core.datetime_utils import utcnow
from courier.db.session import Base


class MessagingSettings(Base):
    """Single-row table; created lazily with defaults by MessagingSettingsService."""

    __tablename__ = "messaging_settings"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    enabled: Mapped[bool] = mapped_column(Boolean, default=DEFAULT_MESSAGING_ENABLED)
    max_message_length: Mapped[int] = mapped_column(Integer, default=DEFAULT_MAX_MESSAGE_LENGTH)
    max_group_participants: Mapped[int] = mapped_column(
        Integer, default=DEFAULT_MAX_GROUP_PARTICIPANTS
    )
    message_retention_days: Mapped[int] = mapped_column(
        Integer, default=DEFAULT_MESSAGE_RETENTION_DAYS
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
