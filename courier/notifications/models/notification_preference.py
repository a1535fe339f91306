import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from courier.core.datetime_utils import utcnow
from courier.db.session import Base


class NotificationPreference(Base):
    """Per-user, per-category notification switch plus do-not-disturb window.

    dnd_days holds day numbers with 0 = Sunday through 6 = Saturday.
    dnd_start_time / dnd_end_time are "HH:MM" strings in the DND timezone.
    """

    __tablename__ = "notification_preferences"
    __table_args__ = (UniqueConstraint("user_id", "category", name="uq_notification_pref"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    category: Mapped[str] = mapped_column(String(50))
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    dnd_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    dnd_start_time: Mapped[str | None] = mapped_column(String(5), nullable=True, default=None)
    dnd_end_time: Mapped[str | None] = mapped_column(String(5), nullable=True, default=None)
    dnd_days: Mapped[list[int]] = mapped_column(JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
