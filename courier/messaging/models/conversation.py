import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from courier.core.datetime_utils import utcnow
from courier.db.session import Base


class ConversationType(str, enum.Enum):
    DIRECT = "DIRECT"
    GROUP = "GROUP"


class ConversationState(str, enum.Enum):
    ACTIVE = "ACTIVE"
    PARTICIPANT_LEFT = "PARTICIPANT_LEFT"
    DELETED = "DELETED"


class Conversation(Base):
    __tablename__ = "conversations"
    __table_args__ = (
        Index("ix_conversations_last_message_at", "last_message_at"),
        Index("ix_conversations_type", "type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4, index=True)
    type: Mapped[ConversationType] = mapped_column(
        Enum(ConversationType, values_callable=lambda obj: [e.value for e in obj])
    )
    name: Mapped[str | None] = mapped_column(String(255), nullable=True, default=None)
    created_by_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Denormalized preview; last write wins under concurrent sends
    last_message_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, default=None)
    last_message_text: Mapped[str | None] = mapped_column(
        String(100), nullable=True, default=None
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    created_by = relationship("User", lazy="joined")
    participants = relationship(
        "ConversationParticipant",
        back_populates="conversation",
        cascade="all, delete-orphan",
    )
    messages = relationship(
        "Message",
        back_populates="conversation",
        order_by="Message.created_at",
        cascade="all, delete-orphan",
    )

    @property
    def active_participants(self) -> list["ConversationParticipant"]:  # noqa: F821
        return [p for p in self.participants if p.is_active]

    @property
    def active_user_ids(self) -> set[uuid.UUID]:
        return {p.user_id for p in self.participants if p.is_active}

    def __repr__(self) -> str:
        return f"<Conversation(id={self.id}, type={self.type.value}, name={self.name})>"
