import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Enum, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from courier.core.datetime_utils import utcnow
from courier.db.session import Base


class MessageType(str, enum.Enum):
    TEXT = "TEXT"
    IMAGE = "IMAGE"
    FILE = "FILE"
    SYSTEM = "SYSTEM"


class MessageState(str, enum.Enum):
    ACTIVE = "ACTIVE"
    EDITED = "EDITED"
    DELETED = "DELETED"


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_conversation_created", "conversation_id", "created_at", "id"),
        Index("ix_messages_sender", "sender_id"),
    )

    # Monotonic id; tie-breaks messages sharing a created_at
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("conversations.id", ondelete="CASCADE")
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))

    content: Mapped[str] = mapped_column(Text)
    type: Mapped[MessageType] = mapped_column(
        Enum(MessageType, values_callable=lambda obj: [e.value for e in obj]),
        default=MessageType.TEXT,
    )
    extra_data: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSON, nullable=True, default=None
    )
    is_system_message: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    edited_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, default=None)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, default=None)

    conversation = relationship("Conversation", back_populates="messages")
    sender = relationship("User", lazy="joined")
    statuses = relationship(
        "MessageStatus",
        back_populates="message",
        cascade="all, delete-orphan",
    )

    @property
    def state(self) -> MessageState:
        if self.deleted_at is not None:
            return MessageState.DELETED
        if self.edited_at is not None:
            return MessageState.EDITED
        return MessageState.ACTIVE

    def can_be_modified_by(self, user_id: uuid.UUID) -> bool:
        """Edits and deletes share one rule: the author, while not deleted."""
        match self.state:
            case MessageState.DELETED:
                return False
            case MessageState.ACTIVE | MessageState.EDITED:
                return self.sender_id == user_id
        return False
