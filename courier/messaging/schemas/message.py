from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from courier.core.datetime_utils import UTCDatetime
from courier.messaging.models.message import MessageState, MessageType
from courier.messaging.models.message_status import MessageStatusType
from courier.messaging.schemas.conversation import UserSummary


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1)
    type: MessageType = MessageType.TEXT
    metadata: dict[str, Any] | None = None


class MessageUpdate(BaseModel):
    content: str = Field(..., min_length=1)


class MessageStatusInfo(BaseModel):
    status: MessageStatusType
    timestamp: UTCDatetime


class MessageResponse(BaseModel):
    id: int
    conversation_id: UUID
    sender: UserSummary
    content: str
    type: MessageType
    metadata: dict[str, Any] | None = None
    is_system_message: bool = False
    state: MessageState
    created_at: UTCDatetime
    edited_at: UTCDatetime | None = None
    deleted_at: UTCDatetime | None = None
    status: MessageStatusInfo | None = None


class MessageListResponse(BaseModel):
    messages: list[MessageResponse]
    total: int
    has_more: bool


class MessageSearchResponse(BaseModel):
    messages: list[MessageResponse]


class UnreadCountResponse(BaseModel):
    count: int


class MarkReadResponse(BaseModel):
    message: str
    updated: int = 0
