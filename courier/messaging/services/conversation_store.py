"""Conversation and participant persistence.

Owns the membership invariants: a DIRECT conversation always has exactly two
participants and exists at most once per unordered pair of users, and a user
is "in" a conversation iff their participant row is active.
"""

import logging
from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import exists, func, or_, select
from sqlalchemy.orm import Session, selectinload

from courier.auth.models.user import User
from courier.core.constants import CONVERSATION_SEARCH_LIMIT
from courier.core.datetime_utils import utcnow
from courier.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from courier.messaging.models.conversation import (
    Conversation,
    ConversationState,
    ConversationType,
)
from courier.messaging.models.conversation_participant import ConversationParticipant
from courier.messaging.models.messaging_settings import MessagingSettings
from courier.messaging.services.message_store import MessageStore, escape_like

logger = logging.getLogger(__name__)


class ConversationStore:
    def __init__(self, db: Session, messages: MessageStore | None = None) -> None:
        self.db = db
        self.messages = messages or MessageStore(db)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_conversation(
        self,
        creator_id: UUID,
        type: ConversationType,
        participant_ids: Sequence[UUID],
        settings: MessagingSettings,
        name: str | None = None,
    ) -> tuple[Conversation, bool]:
        """Create a conversation, or return the existing DIRECT one for this pair.

        Returns:
            (conversation, created) where created is False when an existing
            DIRECT conversation was returned.
        """
        name = name.strip() if name else None

        if type == ConversationType.GROUP and not name:
            raise ValidationError("Group conversations must have a name", field="name")

        if type == ConversationType.DIRECT and len(participant_ids) != 1:
            raise ValidationError(
                "Direct conversations must have exactly one other participant",
                field="participant_ids",
            )

        others = list(dict.fromkeys(pid for pid in participant_ids if pid != creator_id))

        if type == ConversationType.DIRECT:
            if not others:
                raise ValidationError(
                    "You cannot start a direct conversation with yourself",
                    field="participant_ids",
                )
            existing = self.find_direct_conversation(creator_id, others[0])
            if existing is not None:
                logger.debug("Reusing direct conversation %s", existing.id)
                return existing, False
        elif not others:
            raise ValidationError(
                "Group conversations need at least one other participant",
                field="participant_ids",
            )

        if type == ConversationType.GROUP and len(others) + 1 > settings.max_group_participants:
            raise ValidationError(
                f"Cannot exceed maximum of {settings.max_group_participants} "
                "participants in a group conversation",
                field="participant_ids",
            )

        self._ensure_users_exist(others)

        conversation = Conversation(
            type=type,
            name=name if type == ConversationType.GROUP else None,
            created_by_id=creator_id,
        )
        now = utcnow()
        conversation.participants = [
            ConversationParticipant(user_id=uid, is_active=True, joined_at=now)
            for uid in [creator_id, *others]
        ]
        try:
            self.db.add(conversation)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(conversation)

        logger.info(
            "Conversation %s created (type=%s, participants=%d)",
            conversation.id,
            type.value,
            len(others) + 1,
        )
        return conversation, True

    def find_direct_conversation(self, user1_id: UUID, user2_id: UUID) -> Conversation | None:
        """Find the DIRECT conversation whose active participants are exactly {user1, user2}."""
        pair = [user1_id, user2_id]

        def _active_member(user_id: UUID):
            return exists().where(
                ConversationParticipant.conversation_id == Conversation.id,
                ConversationParticipant.user_id == user_id,
                ConversationParticipant.is_active.is_(True),
            )

        outsider = exists().where(
            ConversationParticipant.conversation_id == Conversation.id,
            ConversationParticipant.is_active.is_(True),
            ConversationParticipant.user_id.not_in(pair),
        )

        conversation = (
            self.db.query(Conversation)
            .filter(
                Conversation.type == ConversationType.DIRECT,
                _active_member(user1_id),
                _active_member(user2_id),
                ~outsider,
            )
            .order_by(Conversation.created_at.asc())
            .first()
        )
        return conversation

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_conversation(self, conversation_id: UUID, requester_id: UUID) -> Conversation:
        """Load a conversation, gated on the requester being an active participant."""
        conversation = (
            self.db.query(Conversation)
            .options(selectinload(Conversation.participants))
            .filter(Conversation.id == conversation_id)
            .first()
        )
        if conversation is None:
            raise NotFoundError("Conversation not found", resource="conversation")

        if requester_id not in conversation.active_user_ids:
            raise ForbiddenError("You are not a participant in this conversation")

        return conversation

    def get_participant(self, conversation_id: UUID, user_id: UUID) -> ConversationParticipant | None:
        return self.db.get(ConversationParticipant, (conversation_id, user_id))

    def list_user_conversations(
        self,
        user_id: UUID,
        type: ConversationType | None = None,
        is_active: bool | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Conversation], int]:
        """Page through the user's active conversations, most recent activity first."""
        member_sub = (
            select(ConversationParticipant.conversation_id)
            .where(
                ConversationParticipant.user_id == user_id,
                ConversationParticipant.is_active.is_(True),
            )
            .scalar_subquery()
        )
        query = self.db.query(Conversation).filter(Conversation.id.in_(member_sub))

        if type is not None:
            query = query.filter(Conversation.type == type)
        if is_active is not None:
            query = query.filter(Conversation.is_active.is_(is_active))

        total = query.count()
        conversations = (
            query.options(selectinload(Conversation.participants))
            .order_by(
                Conversation.last_message_at.is_(None),
                Conversation.last_message_at.desc(),
                Conversation.created_at.desc(),
            )
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return list(conversations), total

    def search_conversations(self, user_id: UUID, query: str) -> list[Conversation]:
        if not query or not query.strip():
            return []

        pattern = f"%{escape_like(query.strip().lower())}%"

        member_sub = (
            select(ConversationParticipant.conversation_id)
            .where(
                ConversationParticipant.user_id == user_id,
                ConversationParticipant.is_active.is_(True),
            )
            .scalar_subquery()
        )
        participant_match = exists().where(
            ConversationParticipant.conversation_id == Conversation.id,
            ConversationParticipant.user_id == User.id,
            or_(
                func.lower(User.name).like(pattern, escape="\\"),
                func.lower(User.email).like(pattern, escape="\\"),
            ),
        )

        conversations = (
            self.db.query(Conversation)
            .options(selectinload(Conversation.participants))
            .filter(
                Conversation.id.in_(member_sub),
                or_(
                    func.lower(Conversation.name).like(pattern, escape="\\"),
                    func.lower(Conversation.last_message_text).like(pattern, escape="\\"),
                    participant_match,
                ),
            )
            .order_by(
                Conversation.last_message_at.is_(None),
                Conversation.last_message_at.desc(),
                Conversation.created_at.desc(),
            )
            .limit(CONVERSATION_SEARCH_LIMIT)
            .all()
        )
        return list(conversations)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update_conversation(
        self,
        conversation_id: UUID,
        user_id: UUID,
        name: str | None = None,
        is_active: bool | None = None,
    ) -> Conversation:
        conversation = self.get_conversation(conversation_id, user_id)

        if name is not None:
            if conversation.type == ConversationType.GROUP and not name.strip():
                raise ValidationError("Group conversations must have a name", field="name")
            conversation.name = name.strip() or None
        if is_active is not None:
            conversation.is_active = is_active

        self.db.commit()
        self.db.refresh(conversation)
        return conversation

    def delete_conversation(self, conversation_id: UUID, user_id: UUID) -> None:
        conversation = self.get_conversation(conversation_id, user_id)

        if conversation.created_by_id != user_id:
            raise ForbiddenError("Only the conversation creator can delete it")

        self.db.delete(conversation)
        self.db.commit()
        logger.info("Conversation %s deleted by %s", conversation_id, user_id)

    def leave_conversation(self, conversation_id: UUID, user_id: UUID) -> Conversation:
        conversation = self.get_conversation(conversation_id, user_id)

        if conversation.type == ConversationType.GROUP:
            return self.remove_participant(conversation_id, user_id, user_id)

        participant = self._active_participant(conversation, user_id)
        participant.is_active = False
        participant.left_at = utcnow()
        self.db.commit()
        logger.info("User %s left direct conversation %s", user_id, conversation_id)
        return conversation

    def mute_conversation(self, conversation_id: UUID, user_id: UUID, muted: bool) -> None:
        conversation = self.get_conversation(conversation_id, user_id)
        participant = self._active_participant(conversation, user_id)
        participant.is_muted = muted
        self.db.commit()

    def add_participants(
        self,
        conversation_id: UUID,
        acting_user_id: UUID,
        participant_ids: Sequence[UUID],
        settings: MessagingSettings,
    ) -> list[UUID]:
        """Add users to a GROUP conversation; returns the ids actually added."""
        conversation = self.get_conversation(conversation_id, acting_user_id)

        if conversation.type != ConversationType.GROUP:
            raise ValidationError("Can only add participants to group conversations")

        active_ids = conversation.active_user_ids
        new_ids = [pid for pid in dict.fromkeys(participant_ids) if pid not in active_ids]

        if not new_ids:
            raise ValidationError(
                "All specified users are already participants", field="participant_ids"
            )

        if len(active_ids) + len(new_ids) > settings.max_group_participants:
            raise ValidationError(
                f"Cannot exceed maximum of {settings.max_group_participants} "
                "participants in a group conversation",
                field="participant_ids",
            )

        users = self._ensure_users_exist(new_ids)

        names = ", ".join(users[uid].display_name for uid in new_ids)
        verb = "was" if len(new_ids) == 1 else "were"

        now = utcnow()
        existing = {p.user_id: p for p in conversation.participants}
        try:
            for uid in new_ids:
                participant = existing.get(uid)
                if participant is not None:
                    # Re-join reuses the historical row
                    participant.is_active = True
                    participant.left_at = None
                    participant.joined_at = now
                else:
                    conversation.participants.append(
                        ConversationParticipant(user_id=uid, is_active=True, joined_at=now)
                    )

            self.messages.create_system_message(
                conversation,
                acting_user_id,
                f"{names} {verb} added to the conversation",
                commit=False,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Added %d participant(s) to conversation %s", len(new_ids), conversation_id
        )
        return new_ids

    def remove_participant(
        self, conversation_id: UUID, acting_user_id: UUID, target_id: UUID
    ) -> Conversation:
        conversation = self.get_conversation(conversation_id, acting_user_id)

        if conversation.type != ConversationType.GROUP:
            raise ValidationError("Can only remove participants from group conversations")

        participant = next(
            (p for p in conversation.active_participants if p.user_id == target_id), None
        )
        if participant is None:
            raise NotFoundError("Participant not found in this conversation", resource="participant")

        if conversation.created_by_id != acting_user_id and target_id != acting_user_id:
            raise ForbiddenError(
                "Only the conversation creator or the participant themselves "
                "can remove a participant"
            )

        removed_name = participant.user.display_name if participant.user else "User"
        action = "left" if target_id == acting_user_id else "was removed from"

        try:
            participant.is_active = False
            participant.left_at = utcnow()
            self.messages.create_system_message(
                conversation,
                acting_user_id,
                f"{removed_name} {action} the conversation",
                commit=False,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("User %s %s conversation %s", target_id, action, conversation_id)
        return conversation

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def conversation_state(conversation: Conversation | None) -> ConversationState:
        if conversation is None:
            return ConversationState.DELETED
        if any(not p.is_active for p in conversation.participants):
            return ConversationState.PARTICIPANT_LEFT
        return ConversationState.ACTIVE

    @staticmethod
    def _active_participant(
        conversation: Conversation, user_id: UUID
    ) -> ConversationParticipant:
        # get_conversation already guarantees the row exists and is active
        return next(p for p in conversation.active_participants if p.user_id == user_id)

    def _ensure_users_exist(self, user_ids: Sequence[UUID]) -> dict[UUID, User]:
        if not user_ids:
            return {}
        users = self.db.query(User).filter(User.id.in_(list(user_ids))).all()
        found = {u.id: u for u in users}
        missing = [uid for uid in user_ids if uid not in found]
        if missing:
            raise NotFoundError(f"User {missing[0]} not found", resource="user")
        return found


