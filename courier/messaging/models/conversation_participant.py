import uuid
from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from courier.core.datetime_utils import utcnow
from courier.db.session import Base


class ConversationParticipant(Base):
    """Membership row; leaving flips is_active, the row itself is never deleted."""

    __tablename__ = "conversation_participants"
    __table_args__ = (
        Index("ix_conv_participants_user_active", "user_id", "is_active"),
    )

    conversation_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("conversations.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_muted: Mapped[bool] = mapped_column(Boolean, default=False)

    last_read_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, default=None)
    last_read_message_id: Mapped[int | None] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        ForeignKey("messages.id", ondelete="SET NULL"),
        nullable=True,
        default=None,
    )

    joined_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    left_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, default=None)

    conversation = relationship("Conversation", back_populates="participants")
    user = relationship("User", lazy="joined")
