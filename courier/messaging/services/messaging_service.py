"""Messaging orchestrator.

Composes the stores into the operations the HTTP layer exposes. Writes are
committed by the stores; anything that happens afterwards (notifications,
live push) runs as a best-effort hook that can never fail the operation.
"""

import logging
from collections.abc import Awaitable, Iterable
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from courier.auth.models.user import User
from courier.core.constants import CONVERSATION_MESSAGES_PAGE_SIZE, DEFAULT_PAGE_SIZE
from courier.core.exceptions import ValidationError
from courier.core.schemas import StatusMessage
from courier.messaging import realtime
from courier.messaging.models.conversation import (
    Conversation,
    ConversationState,
    ConversationType,
)
from courier.messaging.models.message import Message
from courier.messaging.models.message_status import MessageStatus, MessageStatusType
from courier.messaging.realtime import RealtimeBroadcaster
from courier.messaging.schemas.conversation import (
    AddParticipantsResponse,
    ConversationCreate,
    ConversationListItem,
    ConversationListResponse,
    ConversationResponse,
    ConversationSearchResponse,
    ConversationUpdate,
    MessagePreview,
    ParticipantInfo,
    UserSummary,
)
from courier.messaging.schemas.message import (
    MarkReadResponse,
    MessageCreate,
    MessageListResponse,
    MessageResponse,
    MessageSearchResponse,
    MessageStatusInfo,
    UnreadCountResponse,
)
from courier.messaging.schemas.settings import (
    MessagingSettingsResponse,
    MessagingSettingsUpdate,
)
from courier.messaging.services.conversation_store import ConversationStore
from courier.messaging.services.message_store import MessageStore
from courier.messaging.services.notification_bridge import NotificationBridge
from courier.messaging.services.settings_service import MessagingSettingsService
from courier.messaging.services.unread_service import UnreadAccounting

logger = logging.getLogger(__name__)


class MessagingService:
    def __init__(
        self,
        db: Session,
        bridge: NotificationBridge | None = None,
        broadcaster: RealtimeBroadcaster | None = None,
    ) -> None:
        self.db = db
        self.settings = MessagingSettingsService(db)
        self.messages = MessageStore(db)
        self.conversations = ConversationStore(db, self.messages)
        self.unread = UnreadAccounting(db, self.messages)
        self.bridge = bridge or NotificationBridge(db)
        self.broadcaster = broadcaster or realtime.broadcaster

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    async def create_conversation(
        self, user_id: UUID, data: ConversationCreate
    ) -> ConversationResponse:
        settings = self.settings.get_settings()
        conversation, created = self.conversations.create_conversation(
            creator_id=user_id,
            type=data.type,
            participant_ids=data.participant_ids,
            settings=settings,
            name=data.name,
        )
        response = self._build_conversation_response(conversation)

        if created:
            others = [uid for uid in conversation.active_user_ids if uid != user_id]
            try:
                await self.broadcaster.broadcast_conversation_created(
                    others, response.model_dump(mode="json")
                )
            except Exception:
                logger.exception("Failed to broadcast new conversation %s", conversation.id)

        return response

    def get_user_conversations(
        self,
        user_id: UUID,
        type: ConversationType | None = None,
        is_active: bool | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> ConversationListResponse:
        conversations, total = self.conversations.list_user_conversations(
            user_id, type=type, is_active=is_active, page=page, limit=limit
        )
        return ConversationListResponse(
            conversations=self._build_list_items(conversations, user_id),
            unread_count=self.unread.get_unread_count(user_id),
            total=total,
            page=page,
            limit=limit,
        )

    def get_conversation(self, conversation_id: UUID, user_id: UUID) -> ConversationResponse:
        conversation = self.conversations.get_conversation(conversation_id, user_id)
        return self._build_conversation_response(conversation)

    def update_conversation(
        self, conversation_id: UUID, user_id: UUID, data: ConversationUpdate
    ) -> ConversationResponse:
        conversation = self.conversations.update_conversation(
            conversation_id, user_id, name=data.name, is_active=data.is_active
        )
        return self._build_conversation_response(conversation)

    def delete_conversation(self, conversation_id: UUID, user_id: UUID) -> StatusMessage:
        self.conversations.delete_conversation(conversation_id, user_id)
        return StatusMessage(message="Conversation deleted successfully")

    def leave_conversation(self, conversation_id: UUID, user_id: UUID) -> StatusMessage:
        self.conversations.leave_conversation(conversation_id, user_id)
        return StatusMessage(message="Left conversation successfully")

    def mute_conversation(
        self, conversation_id: UUID, user_id: UUID, muted: bool
    ) -> StatusMessage:
        self.conversations.mute_conversation(conversation_id, user_id, muted)
        return StatusMessage(
            message="Conversation muted" if muted else "Conversation unmuted",
            data={"muted": muted},
        )

    def add_participants(
        self, conversation_id: UUID, user_id: UUID, participant_ids: list[UUID]
    ) -> AddParticipantsResponse:
        settings = self.settings.get_settings()
        added = self.conversations.add_participants(
            conversation_id, user_id, participant_ids, settings
        )
        return AddParticipantsResponse(
            message="Participants added successfully", added_count=len(added)
        )

    def remove_participant(
        self, conversation_id: UUID, user_id: UUID, target_id: UUID
    ) -> StatusMessage:
        self.conversations.remove_participant(conversation_id, user_id, target_id)
        return StatusMessage(message="Participant removed successfully")

    def search_conversations(self, user_id: UUID, query: str) -> ConversationSearchResponse:
        conversations = self.conversations.search_conversations(user_id, query)
        return ConversationSearchResponse(
            conversations=self._build_list_items(conversations, user_id)
        )

    @staticmethod
    def conversation_state(conversation: Conversation | None) -> ConversationState:
        return ConversationStore.conversation_state(conversation)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def send_message(
        self, sender_id: UUID, conversation_id: UUID, data: MessageCreate
    ) -> MessageResponse:
        conversation = self.conversations.get_conversation(conversation_id, sender_id)
        settings = self.settings.get_settings()

        if not settings.enabled:
            raise ValidationError("Messaging is currently disabled")
        if not data.content.strip():
            raise ValidationError("Message content cannot be empty", field="content")
        if len(data.content) > settings.max_message_length:
            raise ValidationError(
                f"Message exceeds maximum length of {settings.max_message_length} characters",
                field="content",
            )

        message = self.messages.create_message(
            conversation,
            sender_id,
            data.content,
            data.type,
            data.metadata,
        )
        status = self.db.get(MessageStatus, (message.id, sender_id))
        response = self._build_message_response(message, status)

        # Post-commit hooks: the message is durable from here on
        participants = list(conversation.active_participants)
        try:
            self.bridge.notify_new_message(
                participants,
                sender_id,
                conversation.id,
                message.content,
                conversation.name if conversation.type == ConversationType.GROUP else None,
            )
        except Exception:
            logger.exception("Notification fan-out failed for message %s", message.id)

        try:
            await self.broadcaster.broadcast(
                conversation.id,
                [p.user_id for p in participants],
                response.model_dump(mode="json"),
            )
        except Exception:
            logger.exception("Realtime broadcast failed for message %s", message.id)

        logger.info(
            "Message %s sent in conversation %s by %s", message.id, conversation.id, sender_id
        )
        return response

    def get_messages(
        self,
        conversation_id: UUID,
        user_id: UUID,
        before: int | None = None,
        after: int | None = None,
        page: int = 1,
        limit: int = CONVERSATION_MESSAGES_PAGE_SIZE,
    ) -> MessageListResponse:
        result = self.messages.get_messages(
            conversation_id, user_id, before=before, after=after, page=page, limit=limit
        )
        return MessageListResponse(
            messages=[
                self._build_message_response(m, result.statuses.get(m.id))
                for m in result.messages
            ],
            total=result.total,
            has_more=result.has_more,
        )

    def get_message(self, message_id: int, user_id: UUID) -> MessageResponse:
        message = self.messages.get_message(message_id, user_id)
        return self._build_message_response(
            message, self.db.get(MessageStatus, (message.id, user_id))
        )

    async def update_message(
        self, message_id: int, user_id: UUID, content: str
    ) -> MessageResponse:
        settings = self.settings.get_settings()
        message = self.messages.update_message(message_id, user_id, content, settings)
        response = self._build_message_response(
            message, self.db.get(MessageStatus, (message.id, user_id))
        )
        await self._safe_broadcast(
            self.broadcaster.broadcast_message_updated(
                message.conversation_id,
                self._active_user_ids(message.conversation_id),
                response.model_dump(mode="json"),
            ),
            "message:updated",
        )
        return response

    async def delete_message(self, message_id: int, user_id: UUID) -> StatusMessage:
        message = self.messages.delete_message(message_id, user_id)
        await self._safe_broadcast(
            self.broadcaster.broadcast_message_deleted(
                message.conversation_id,
                self._active_user_ids(message.conversation_id),
                message.id,
            ),
            "message:deleted",
        )
        return StatusMessage(message="Message deleted successfully")

    def search_messages(
        self, user_id: UUID, query: str, conversation_id: UUID | None = None
    ) -> MessageSearchResponse:
        messages = self.messages.search_messages(user_id, query, conversation_id)
        statuses = self.messages.statuses_for(user_id, [m.id for m in messages])
        return MessageSearchResponse(
            messages=[self._build_message_response(m, statuses.get(m.id)) for m in messages]
        )

    # ------------------------------------------------------------------
    # Read state
    # ------------------------------------------------------------------

    async def mark_message_as_read(self, message_id: int, user_id: UUID) -> MarkReadResponse:
        status = self.unread.mark_message_as_read(message_id, user_id)
        message = self.db.get(Message, message_id)
        if message is not None and message.sender_id != user_id:
            await self._safe_broadcast(
                self.broadcaster.broadcast_status(
                    message.conversation_id,
                    [message.sender_id],
                    user_id,
                    message.id,
                    status.status.value,
                ),
                "message:status",
            )
        return MarkReadResponse(message="Message marked as read", updated=1)

    async def mark_conversation_as_read(
        self, conversation_id: UUID, user_id: UUID
    ) -> MarkReadResponse:
        updated = self.unread.mark_conversation_as_read(conversation_id, user_id)
        if updated:
            participant = self.conversations.get_participant(conversation_id, user_id)
            others = [uid for uid in self._active_user_ids(conversation_id) if uid != user_id]
            await self._safe_broadcast(
                self.broadcaster.broadcast_status(
                    conversation_id,
                    others,
                    user_id,
                    participant.last_read_message_id if participant else None,
                    MessageStatusType.READ.value,
                ),
                "message:status",
            )
        return MarkReadResponse(message="Conversation marked as read", updated=updated)

    def get_unread_count(self, user_id: UUID) -> UnreadCountResponse:
        return UnreadCountResponse(count=self.unread.get_unread_count(user_id))

    def get_conversation_unread_count(
        self, conversation_id: UUID, user_id: UUID
    ) -> UnreadCountResponse:
        return UnreadCountResponse(
            count=self.unread.get_conversation_unread_count(conversation_id, user_id)
        )

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_settings(self) -> MessagingSettingsResponse:
        return MessagingSettingsResponse.model_validate(self.settings.get_settings())

    def update_settings(self, data: MessagingSettingsUpdate) -> MessagingSettingsResponse:
        return MessagingSettingsResponse.model_validate(self.settings.update_settings(data))

    def toggle_messaging_system(self, enabled: bool) -> MessagingSettingsResponse:
        return MessagingSettingsResponse.model_validate(
            self.settings.toggle_messaging_system(enabled)
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _safe_broadcast(self, coro: Awaitable[None], event_name: str) -> None:
        try:
            await coro
        except Exception:
            logger.exception("Realtime broadcast of %s failed", event_name)

    def _active_user_ids(self, conversation_id: UUID) -> set[UUID]:
        conversation = self.db.get(Conversation, conversation_id)
        return conversation.active_user_ids if conversation else set()

    def _build_list_items(
        self, conversations: Iterable[Conversation], user_id: UUID
    ) -> list[ConversationListItem]:
        conversations = list(conversations)
        ids = [c.id for c in conversations]
        last_messages = self.messages.get_last_messages(ids)
        unread_counts = self.unread.get_unread_counts(user_id, ids)

        items = []
        for conversation in conversations:
            last = last_messages.get(conversation.id)
            items.append(
                self._build_conversation_response(
                    conversation,
                    ConversationListItem,
                    last_message=MessagePreview(
                        id=last.id,
                        content=last.content,
                        sender=self._build_user_summary(last.sender),
                        created_at=last.created_at,
                    )
                    if last
                    else None,
                    unread_count=unread_counts.get(conversation.id, 0),
                )
            )
        return items

    def _build_conversation_response(
        self,
        conversation: Conversation,
        response_cls: type[ConversationResponse] = ConversationResponse,
        **extra: Any,
    ) -> Any:
        return response_cls(
            id=conversation.id,
            type=conversation.type,
            name=conversation.name,
            created_by_id=conversation.created_by_id,
            is_active=conversation.is_active,
            last_message_at=conversation.last_message_at,
            last_message_text=conversation.last_message_text,
            participants=[
                ParticipantInfo(
                    user=self._build_user_summary(p.user),
                    is_muted=p.is_muted,
                    joined_at=p.joined_at,
                    last_read_at=p.last_read_at,
                    last_read_message_id=p.last_read_message_id,
                )
                for p in conversation.active_participants
            ],
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
            **extra,
        )

    def _build_message_response(
        self, message: Message, status: MessageStatus | None
    ) -> MessageResponse:
        return MessageResponse(
            id=message.id,
            conversation_id=message.conversation_id,
            sender=self._build_user_summary(message.sender),
            content=message.content,
            type=message.type,
            metadata=message.extra_data,
            is_system_message=message.is_system_message,
            state=message.state,
            created_at=message.created_at,
            edited_at=message.edited_at,
            deleted_at=message.deleted_at,
            status=MessageStatusInfo(status=status.status, timestamp=status.timestamp)
            if status
            else None,
        )

    @staticmethod
    def _build_user_summary(user: User) -> UserSummary:
        return UserSummary.model_validate(user)
