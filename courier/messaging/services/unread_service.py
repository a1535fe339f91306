import logging
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from courier.core.datetime_utils import utcnow
from courier.messaging.models.conversation_participant import ConversationParticipant
from courier.messaging.models.message import Message
from courier.messaging.models.message_status import MessageStatus, MessageStatusType
from courier.messaging.services.message_store import MessageStore

logger = logging.getLogger(__name__)


class UnreadAccounting:
    """Read cursors and unread counts.

    Counts are derived from MessageStatus rows on every call. A status is
    unread when it is not READ, its message is not deleted, the caller did
    not author it, and the caller is still an active participant.
    """

    def __init__(self, db: Session, messages: MessageStore | None = None) -> None:
        self.db = db
        self.messages = messages or MessageStore(db)

    def mark_message_as_read(self, message_id: int, user_id: UUID) -> MessageStatus:
        message = self.messages.get_message(message_id, user_id)
        now = utcnow()

        status = self.db.get(MessageStatus, (message.id, user_id))
        if status is None:
            status = MessageStatus(
                message_id=message.id,
                user_id=user_id,
                status=MessageStatusType.READ,
                timestamp=now,
            )
            self.db.add(status)
        elif status.status != MessageStatusType.READ:
            status.status = status.status.advance_to(MessageStatusType.READ)
            status.timestamp = now

        participant = self.db.get(ConversationParticipant, (message.conversation_id, user_id))
        if participant is not None and (
            participant.last_read_message_id is None
            or participant.last_read_message_id < message.id
        ):
            participant.last_read_message_id = message.id
            participant.last_read_at = now

        self.db.commit()
        return status

    def mark_conversation_as_read(self, conversation_id: UUID, user_id: UUID) -> int:
        """Mark every unread status in the conversation as READ; returns rows updated."""
        self.messages.require_membership(conversation_id, user_id)
        now = utcnow()

        unread_ids = select(Message.id).where(
            Message.conversation_id == conversation_id,
            Message.deleted_at.is_(None),
            Message.sender_id != user_id,
        )
        updated = (
            self.db.query(MessageStatus)
            .filter(
                MessageStatus.user_id == user_id,
                MessageStatus.status != MessageStatusType.READ,
                MessageStatus.message_id.in_(unread_ids),
            )
            .update(
                {MessageStatus.status: MessageStatusType.READ, MessageStatus.timestamp: now},
                synchronize_session="fetch",
            )
        )

        latest = (
            self.db.query(Message)
            .filter(Message.conversation_id == conversation_id, Message.deleted_at.is_(None))
            .order_by(Message.created_at.desc(), Message.id.desc())
            .first()
        )
        if latest is not None:
            participant = self.db.get(ConversationParticipant, (conversation_id, user_id))
            if participant is not None:
                participant.last_read_message_id = latest.id
                participant.last_read_at = now

        self.db.commit()
        logger.debug(
            "Marked %d message(s) read in conversation %s for %s", updated, conversation_id, user_id
        )
        return updated

    def get_unread_count(self, user_id: UUID) -> int:
        return self._unread_query(user_id).scalar() or 0

    def get_conversation_unread_count(self, conversation_id: UUID, user_id: UUID) -> int:
        self.messages.require_membership(conversation_id, user_id)
        return (
            self._unread_query(user_id)
            .filter(Message.conversation_id == conversation_id)
            .scalar()
            or 0
        )

    def get_unread_counts(self, user_id: UUID, conversation_ids: list[UUID]) -> dict[UUID, int]:
        """Per-conversation unread counts in one query, for list views."""
        if not conversation_ids:
            return {}
        rows = (
            self.db.query(Message.conversation_id, func.count(MessageStatus.message_id))
            .join(MessageStatus, MessageStatus.message_id == Message.id)
            .filter(*self._unread_filters(user_id))
            .filter(Message.conversation_id.in_(conversation_ids))
            .group_by(Message.conversation_id)
            .all()
        )
        return {conversation_id: count for conversation_id, count in rows}

    def _unread_query(self, user_id: UUID):  # type: ignore[no-untyped-def]
        return (
            self.db.query(func.count(MessageStatus.message_id))
            .join(Message, MessageStatus.message_id == Message.id)
            .filter(*self._unread_filters(user_id))
        )

    @staticmethod
    def _unread_filters(user_id: UUID) -> list:
        active_conversations = (
            select(ConversationParticipant.conversation_id)
            .where(
                ConversationParticipant.user_id == user_id,
                ConversationParticipant.is_active.is_(True),
            )
            .scalar_subquery()
        )
        return [
            MessageStatus.user_id == user_id,
            MessageStatus.status != MessageStatusType.READ,
            Message.deleted_at.is_(None),
            Message.sender_id != user_id,
            Message.conversation_id.in_(active_conversations),
        ]
