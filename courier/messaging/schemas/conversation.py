from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from courier.core.datetime_utils import UTCDatetime
from courier.messaging.models.conversation import ConversationType


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    name: str | None = None
    avatar_url: str | None = None


class ParticipantInfo(BaseModel):
    user: UserSummary
    is_muted: bool = False
    joined_at: UTCDatetime
    last_read_at: UTCDatetime | None = None
    last_read_message_id: int | None = None


class ConversationCreate(BaseModel):
    type: ConversationType
    name: str | None = Field(None, max_length=255)
    participant_ids: list[UUID] = Field(..., min_length=1)


class ConversationUpdate(BaseModel):
    name: str | None = Field(None, max_length=255)
    is_active: bool | None = None


class MuteRequest(BaseModel):
    muted: bool


class AddParticipantsRequest(BaseModel):
    participant_ids: list[UUID] = Field(..., min_length=1)


class MessagePreview(BaseModel):
    id: int
    content: str
    sender: UserSummary
    created_at: UTCDatetime


class ConversationResponse(BaseModel):
    id: UUID
    type: ConversationType
    name: str | None = None
    created_by_id: UUID
    is_active: bool = True
    last_message_at: UTCDatetime | None = None
    last_message_text: str | None = None
    participants: list[ParticipantInfo]
    created_at: UTCDatetime
    updated_at: UTCDatetime


class ConversationListItem(ConversationResponse):
    last_message: MessagePreview | None = None
    unread_count: int = 0


class ConversationListResponse(BaseModel):
    conversations: list[ConversationListItem]
    unread_count: int
    total: int
    page: int
    limit: int


class ConversationSearchResponse(BaseModel):
    conversations: list[ConversationListItem]


class AddParticipantsResponse(BaseModel):
    message: str
    added_count: int
