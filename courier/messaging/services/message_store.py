import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from courier.core.constants import (
    CONVERSATION_MESSAGES_PAGE_SIZE,
    DELETED_MESSAGE_TOMBSTONE,
    LAST_MESSAGE_PREVIEW_LENGTH,
    MESSAGE_SEARCH_LIMIT,
)
from courier.core.datetime_utils import utcnow
from courier.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from courier.messaging.models.conversation import Conversation
from courier.messaging.models.conversation_participant import ConversationParticipant
from courier.messaging.models.message import Message, MessageState, MessageType
from courier.messaging.models.message_status import MessageStatus, MessageStatusType
from courier.messaging.models.messaging_settings import MessagingSettings

logger = logging.getLogger(__name__)


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass
class MessagePage:
    messages: list[Message]
    total: int
    has_more: bool
    statuses: dict[int, MessageStatus] = field(default_factory=dict)


class MessageStore:
    """Message persistence and the per-recipient status snapshot.

    Membership checks here only look at the participant row; callers that
    need the conversation itself go through ConversationStore.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_message(
        self,
        conversation: Conversation,
        sender_id: UUID,
        content: str,
        type: MessageType = MessageType.TEXT,
        metadata: dict[str, Any] | None = None,
        *,
        is_system_message: bool = False,
        commit: bool = True,
    ) -> Message:
        """Persist a message with its preview update and status snapshot.

        The snapshot covers the participants active right now: the sender's
        row is READ, everyone else's SENT. Later joiners never get a row for
        this message.

        Args:
            commit: When False the rows are only flushed, so the caller can
                fold them into a larger transaction.
        """
        now = utcnow()
        try:
            message = Message(
                conversation_id=conversation.id,
                sender_id=sender_id,
                content=content,
                type=type,
                extra_data=metadata,
                is_system_message=is_system_message,
                created_at=now,
            )
            self.db.add(message)
            self.db.flush()

            conversation.last_message_at = now
            conversation.last_message_text = content[:LAST_MESSAGE_PREVIEW_LENGTH]

            for user_id in conversation.active_user_ids:
                self.db.add(
                    MessageStatus(
                        message_id=message.id,
                        user_id=user_id,
                        status=(
                            MessageStatusType.READ
                            if user_id == sender_id
                            else MessageStatusType.SENT
                        ),
                        timestamp=now,
                    )
                )

            if commit:
                self.db.commit()
            else:
                self.db.flush()
        except Exception:
            if commit:
                self.db.rollback()
            raise

        if commit:
            self.db.refresh(message)

        logger.debug(
            "Message %s stored in conversation %s (%d recipients)",
            message.id,
            conversation.id,
            len(conversation.active_user_ids),
        )
        return message

    def create_system_message(
        self,
        conversation: Conversation,
        actor_id: UUID,
        content: str,
        commit: bool = True,
    ) -> Message:
        return self.create_message(
            conversation,
            actor_id,
            content,
            MessageType.SYSTEM,
            is_system_message=True,
            commit=commit,
        )

    def update_message(
        self,
        message_id: int,
        user_id: UUID,
        content: str,
        settings: MessagingSettings,
    ) -> Message:
        message = self.get_message(message_id, user_id)
        self._check_modifiable(message, user_id, "edit")

        if not content.strip():
            raise ValidationError("Message content cannot be empty", field="content")
        if len(content) > settings.max_message_length:
            raise ValidationError(
                f"Message exceeds maximum length of {settings.max_message_length} characters",
                field="content",
            )

        message.content = content
        message.edited_at = utcnow()
        self.db.commit()
        self.db.refresh(message)
        return message

    def delete_message(self, message_id: int, user_id: UUID) -> Message:
        """Soft delete: the row stays, its content becomes a tombstone."""
        message = self.get_message(message_id, user_id)
        self._check_modifiable(message, user_id, "delete")

        message.deleted_at = utcnow()
        message.content = DELETED_MESSAGE_TOMBSTONE
        self.db.commit()
        self.db.refresh(message)
        logger.info("Message %s deleted by %s", message_id, user_id)
        return message

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_message(self, message_id: int, user_id: UUID) -> Message:
        message = self.db.get(Message, message_id)
        if message is None:
            raise NotFoundError("Message not found", resource="message")

        if not self._is_active_participant(message.conversation_id, user_id):
            raise ForbiddenError("You do not have access to this message")

        return message

    def get_messages(
        self,
        conversation_id: UUID,
        user_id: UUID,
        before: int | None = None,
        after: int | None = None,
        page: int = 1,
        limit: int = CONVERSATION_MESSAGES_PAGE_SIZE,
    ) -> MessagePage:
        self.require_membership(conversation_id, user_id)

        query = self.db.query(Message).filter(
            Message.conversation_id == conversation_id,
            Message.deleted_at.is_(None),
        )
        if before is not None:
            query = query.filter(Message.id < before)
        if after is not None:
            query = query.filter(Message.id > after)

        total = query.count()
        offset = (page - 1) * limit
        messages = (
            query.order_by(Message.created_at.asc(), Message.id.asc())
            .offset(offset)
            .limit(limit)
            .all()
        )

        return MessagePage(
            messages=messages,
            total=total,
            has_more=offset + len(messages) < total,
            statuses=self.statuses_for(user_id, [m.id for m in messages]),
        )

    def search_messages(
        self,
        user_id: UUID,
        query: str,
        conversation_id: UUID | None = None,
    ) -> list[Message]:
        if not query or not query.strip():
            return []

        pattern = f"%{escape_like(query.strip().lower())}%"
        q = self.db.query(Message).filter(
            Message.deleted_at.is_(None),
            func.lower(Message.content).like(pattern, escape="\\"),
            Message.conversation_id.in_(self._active_conversation_ids(user_id)),
        )
        if conversation_id is not None:
            q = q.filter(Message.conversation_id == conversation_id)

        return (
            q.order_by(Message.created_at.desc(), Message.id.desc())
            .limit(MESSAGE_SEARCH_LIMIT)
            .all()
        )

    def get_last_messages(self, conversation_ids: list[UUID]) -> dict[UUID, Message]:
        """Latest non-deleted message per conversation."""
        if not conversation_ids:
            return {}

        latest = (
            select(Message.conversation_id, func.max(Message.id).label("max_id"))
            .where(
                Message.conversation_id.in_(conversation_ids),
                Message.deleted_at.is_(None),
            )
            .group_by(Message.conversation_id)
            .subquery()
        )
        messages = self.db.query(Message).join(latest, Message.id == latest.c.max_id).all()
        return {m.conversation_id: m for m in messages}

    def statuses_for(self, user_id: UUID, message_ids: list[int]) -> dict[int, MessageStatus]:
        if not message_ids:
            return {}
        rows = (
            self.db.query(MessageStatus)
            .filter(MessageStatus.user_id == user_id, MessageStatus.message_id.in_(message_ids))
            .all()
        )
        return {row.message_id: row for row in rows}

    def require_membership(self, conversation_id: UUID, user_id: UUID) -> None:
        if self.db.get(Conversation, conversation_id) is None:
            raise NotFoundError("Conversation not found", resource="conversation")
        if not self._is_active_participant(conversation_id, user_id):
            raise ForbiddenError("You are not a participant in this conversation")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _is_active_participant(self, conversation_id: UUID, user_id: UUID) -> bool:
        participant = self.db.get(ConversationParticipant, (conversation_id, user_id))
        return participant is not None and participant.is_active

    @staticmethod
    def _active_conversation_ids(user_id: UUID):  # type: ignore[no-untyped-def]
        return (
            select(ConversationParticipant.conversation_id)
            .where(
                ConversationParticipant.user_id == user_id,
                ConversationParticipant.is_active.is_(True),
            )
            .scalar_subquery()
        )

    @staticmethod
    def _check_modifiable(message: Message, user_id: UUID, action: str) -> None:
        if message.can_be_modified_by(user_id):
            return
        if message.state == MessageState.DELETED:
            raise ValidationError("Message has already been deleted")
        raise ForbiddenError(f"You can only {action} your own messages")
