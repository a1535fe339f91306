from courier.messaging.models.conversation import (
    Conversation,
    ConversationState,
    ConversationType,
)
from courier.messaging.models.conversation_participant import ConversationParticipant
from courier.messaging.models.message import Message, MessageState, MessageType
from courier.messaging.models.message_status import MessageStatus, MessageStatusType
from courier.messaging.models.messaging_settings import MessagingSettings

__all__ = [
    "Conversation",
    "ConversationParticipant",
    "ConversationState",
    "ConversationType",
    "Message",
    "MessageState",
    "MessageStatus",
    "MessageStatusType",
    "MessageType",
    "MessagingSettings",
]
