from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from courier.auth.dependencies import get_current_user
from courier.auth.models.user import User
from courier.core.constants import (
    CONVERSATION_MESSAGES_PAGE_SIZE,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
)
from courier.core.schemas import StatusMessage
from courier.db.session import get_db
from courier.messaging.models.conversation import ConversationType
from courier.messaging.schemas.conversation import (
    AddParticipantsRequest,
    AddParticipantsResponse,
    ConversationCreate,
    ConversationListResponse,
    ConversationResponse,
    ConversationSearchResponse,
    ConversationUpdate,
    MuteRequest,
)
from courier.messaging.schemas.message import (
    MarkReadResponse,
    MessageCreate,
    MessageListResponse,
    MessageResponse,
    MessageSearchResponse,
    MessageUpdate,
    UnreadCountResponse,
)
from courier.messaging.services.messaging_service import MessagingService

router = APIRouter()


# Conversations


@router.post("/conversations", response_model=ConversationResponse, status_code=201)
async def create_conversation(
    data: ConversationCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConversationResponse:
    service = MessagingService(db)
    return await service.create_conversation(current_user.id, data)


@router.get("/conversations", response_model=ConversationListResponse)
def list_conversations(
    type: ConversationType | None = None,
    is_active: bool | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConversationListResponse:
    service = MessagingService(db)
    return service.get_user_conversations(
        user_id=current_user.id,
        type=type,
        is_active=is_active,
        page=page,
        limit=limit,
    )


@router.get("/conversations/search", response_model=ConversationSearchResponse)
def search_conversations(
    q: str = Query("", max_length=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConversationSearchResponse:
    service = MessagingService(db)
    return service.search_conversations(current_user.id, q)


@router.get("/conversations/{conversation_id}", response_model=ConversationResponse)
def get_conversation(
    conversation_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConversationResponse:
    service = MessagingService(db)
    return service.get_conversation(conversation_id, current_user.id)


@router.patch("/conversations/{conversation_id}", response_model=ConversationResponse)
def update_conversation(
    conversation_id: UUID,
    data: ConversationUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConversationResponse:
    service = MessagingService(db)
    return service.update_conversation(conversation_id, current_user.id, data)


@router.delete("/conversations/{conversation_id}", response_model=StatusMessage)
def delete_conversation(
    conversation_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StatusMessage:
    service = MessagingService(db)
    return service.delete_conversation(conversation_id, current_user.id)


@router.post("/conversations/{conversation_id}/leave", response_model=StatusMessage)
def leave_conversation(
    conversation_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StatusMessage:
    service = MessagingService(db)
    return service.leave_conversation(conversation_id, current_user.id)


@router.put("/conversations/{conversation_id}/mute", response_model=StatusMessage)
def mute_conversation(
    conversation_id: UUID,
    data: MuteRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StatusMessage:
    service = MessagingService(db)
    return service.mute_conversation(conversation_id, current_user.id, data.muted)


@router.post(
    "/conversations/{conversation_id}/participants",
    response_model=AddParticipantsResponse,
)
def add_participants(
    conversation_id: UUID,
    data: AddParticipantsRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AddParticipantsResponse:
    service = MessagingService(db)
    return service.add_participants(conversation_id, current_user.id, data.participant_ids)


@router.delete(
    "/conversations/{conversation_id}/participants/{user_id}",
    response_model=StatusMessage,
)
def remove_participant(
    conversation_id: UUID,
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StatusMessage:
    service = MessagingService(db)
    return service.remove_participant(conversation_id, current_user.id, user_id)


@router.get(
    "/conversations/{conversation_id}/messages",
    response_model=MessageListResponse,
)
def get_messages(
    conversation_id: UUID,
    before: int | None = None,
    after: int | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(CONVERSATION_MESSAGES_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageListResponse:
    service = MessagingService(db)
    return service.get_messages(
        conversation_id,
        current_user.id,
        before=before,
        after=after,
        page=page,
        limit=limit,
    )


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=201,
)
async def send_message(
    conversation_id: UUID,
    data: MessageCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    service = MessagingService(db)
    return await service.send_message(current_user.id, conversation_id, data)


@router.put("/conversations/{conversation_id}/read", response_model=MarkReadResponse)
async def mark_conversation_as_read(
    conversation_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MarkReadResponse:
    service = MessagingService(db)
    return await service.mark_conversation_as_read(conversation_id, current_user.id)


@router.get(
    "/conversations/{conversation_id}/unread-count",
    response_model=UnreadCountResponse,
)
def get_conversation_unread_count(
    conversation_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UnreadCountResponse:
    service = MessagingService(db)
    return service.get_conversation_unread_count(conversation_id, current_user.id)


# Messages


@router.get("/messages/search", response_model=MessageSearchResponse)
def search_messages(
    q: str = Query("", max_length=200),
    conversation_id: UUID | None = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageSearchResponse:
    service = MessagingService(db)
    return service.search_messages(current_user.id, q, conversation_id)


@router.get("/messages/{message_id}", response_model=MessageResponse)
def get_message(
    message_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    service = MessagingService(db)
    return service.get_message(message_id, current_user.id)


@router.patch("/messages/{message_id}", response_model=MessageResponse)
async def update_message(
    message_id: int,
    data: MessageUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    service = MessagingService(db)
    return await service.update_message(message_id, current_user.id, data.content)


@router.delete("/messages/{message_id}", response_model=StatusMessage)
async def delete_message(
    message_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StatusMessage:
    service = MessagingService(db)
    return await service.delete_message(message_id, current_user.id)


@router.put("/messages/{message_id}/read", response_model=MarkReadResponse)
async def mark_message_as_read(
    message_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MarkReadResponse:
    service = MessagingService(db)
    return await service.mark_message_as_read(message_id, current_user.id)


@router.get("/unread-count", response_model=UnreadCountResponse)
def get_unread_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UnreadCountResponse:
    service = MessagingService(db)
    return service.get_unread_count(current_user.id)
