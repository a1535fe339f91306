import enum
import uuid
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Enum, ForeignKey, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from courier.core.datetime_utils import utcnow
from courier.db.session import Base


class MessageStatusType(str, enum.Enum):
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    READ = "READ"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    def advance_to(self, target: "MessageStatusType") -> "MessageStatusType":
        """Return the later of the two statuses; status never moves backward."""
        return target if target.rank > self.rank else self


_STATUS_RANK = {
    MessageStatusType.SENT: 0,
    MessageStatusType.DELIVERED: 1,
    MessageStatusType.READ: 2,
}


class MessageStatus(Base):
    __tablename__ = "message_statuses"
    __table_args__ = (Index("ix_message_statuses_user_status", "user_id", "status"),)

    message_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        ForeignKey("messages.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    status: Mapped[MessageStatusType] = mapped_column(
        Enum(MessageStatusType, values_callable=lambda obj: [e.value for e in obj]),
        default=MessageStatusType.SENT,
    )
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    message = relationship("Message", back_populates="statuses")
