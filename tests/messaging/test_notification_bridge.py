"""Unit tests for the message notification bridge."""

from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from courier.messaging.models.conversation import ConversationType
from courier.messaging.services.conversation_store import ConversationStore
from courier.messaging.services.notification_bridge import (
    NotificationBridge,
    build_preview,
    is_in_dnd_window,
)
from courier.messaging.services.settings_service import MessagingSettingsService
from courier.notifications.models.notification import Notification
from courier.notifications.models.notification_preference import NotificationPreference
from courier.notifications.services.notification_sink import NotificationSink
from tests.utils.factories import create_preference_factory

# 2026-10-19 is a Monday (day 1); 2026-10-18 is a Sunday (day 0)
MONDAY = datetime(2026, 10, 19, 14, 30, tzinfo=UTC)


def _preference(**overrides) -> NotificationPreference:
    values = {
        "enabled": True,
        "dnd_enabled": True,
        "dnd_start_time": "09:00",
        "dnd_end_time": "17:00",
        "dnd_days": [1],
    }
    values.update(overrides)
    return NotificationPreference(**values)


def _at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 10, day, hour, minute, tzinfo=UTC)


@pytest.fixture
def messaging_settings(db_session):
    return MessagingSettingsService(db_session).get_settings()


@pytest.fixture
def team(db_session, messaging_settings, alice, bob, carol):
    conversation, _ = ConversationStore(db_session).create_conversation(
        alice.id, ConversationType.GROUP, [bob.id, carol.id], messaging_settings, name="Team"
    )
    return conversation


@pytest.fixture
def bridge(db_session):
    return NotificationBridge(db_session, clock=lambda: MONDAY)


def _notifications(db_session):
    return db_session.query(Notification).order_by(Notification.created_at).all()


class TestDndWindow:
    """Tests for is_in_dnd_window."""

    def test_disabled(self):
        assert is_in_dnd_window(_preference(dnd_enabled=False), MONDAY) is False

    def test_inside_same_day_window(self):
        assert is_in_dnd_window(_preference(), MONDAY) is True

    def test_outside_same_day_window(self):
        assert is_in_dnd_window(_preference(), _at(19, 18)) is False

    def test_bounds_are_inclusive(self):
        assert is_in_dnd_window(_preference(), _at(19, 9, 0)) is True
        assert is_in_dnd_window(_preference(), _at(19, 17, 0)) is True

    def test_day_not_listed(self):
        assert is_in_dnd_window(_preference(), _at(20, 10)) is False

    def test_sunday_is_day_zero(self):
        assert is_in_dnd_window(_preference(dnd_days=[0]), _at(18, 10)) is True

    def test_overnight_window(self):
        preference = _preference(dnd_start_time="22:00", dnd_end_time="06:00")

        assert is_in_dnd_window(preference, _at(19, 23)) is True
        assert is_in_dnd_window(preference, _at(19, 5, 59)) is True
        assert is_in_dnd_window(preference, _at(19, 12)) is False

    def test_missing_times_cover_whole_day(self):
        preference = _preference(dnd_start_time=None, dnd_end_time=None)

        assert is_in_dnd_window(preference, _at(19, 0, 0)) is True
        assert is_in_dnd_window(preference, _at(19, 23, 59)) is True


class TestBuildPreview:
    def test_short_content_unchanged(self):
        assert build_preview("hello") == "hello"

    def test_long_content_truncated(self):
        assert build_preview("a" * 60) == "a" * 50 + "..."


class TestNotifyNewMessage:
    """Tests for NotificationBridge.notify_new_message."""

    def test_notifies_everyone_but_sender(self, bridge, db_session, team, alice, bob, carol):
        result = bridge.notify_new_message(
            team.participants, alice.id, team.id, "Standup in 5", team.name
        )

        assert set(result.created) == {bob.id, carol.id}
        notifications = _notifications(db_session)
        assert {n.user_id for n in notifications} == {bob.id, carol.id}

        notification = notifications[0]
        assert notification.title == "New message in Team"
        assert notification.message == "Standup in 5"
        assert notification.notification_type == "new_message"
        assert notification.action_url == f"/dashboard/messages?conversation={team.id}"
        assert notification.extra_data == {
            "senderId": str(alice.id),
            "conversationId": str(team.id),
        }

    def test_direct_title_uses_sender_name(
        self, bridge, db_session, messaging_settings, alice, bob
    ):
        direct, _ = ConversationStore(db_session).create_conversation(
            alice.id, ConversationType.DIRECT, [bob.id], messaging_settings
        )

        bridge.notify_new_message(direct.participants, alice.id, direct.id, "hi")

        [notification] = _notifications(db_session)
        assert notification.title == "New message from Alice"

    def test_preview_is_truncated(self, bridge, db_session, team, alice):
        bridge.notify_new_message(team.participants, alice.id, team.id, "x" * 80, team.name)

        assert all(n.message == "x" * 50 + "..." for n in _notifications(db_session))

    def test_muted_recipient_skipped(self, bridge, db_session, team, alice, bob, carol):
        ConversationStore(db_session).mute_conversation(team.id, bob.id, True)

        result = bridge.notify_new_message(team.participants, alice.id, team.id, "hi", team.name)

        assert result.created == [carol.id]
        assert bob.id not in result.skipped

    def test_disabled_preference_skips(self, bridge, db_session, team, alice, bob, carol):
        create_preference_factory(db_session, bob, enabled=False)

        result = bridge.notify_new_message(team.participants, alice.id, team.id, "hi", team.name)

        assert result.skipped == [bob.id]
        assert result.created == [carol.id]

    def test_dnd_preference_skips(self, bridge, db_session, team, alice, bob, carol):
        create_preference_factory(
            db_session,
            carol,
            dnd_enabled=True,
            dnd_start_time="14:00",
            dnd_end_time="15:00",
            dnd_days=[1],
        )

        result = bridge.notify_new_message(team.participants, alice.id, team.id, "hi", team.name)

        assert result.skipped == [carol.id]
        assert result.created == [bob.id]

    def test_left_participant_not_notified(self, bridge, db_session, team, alice, bob, carol):
        ConversationStore(db_session).leave_conversation(team.id, carol.id)

        result = bridge.notify_new_message(team.participants, alice.id, team.id, "hi", team.name)

        assert result.created == [bob.id]

    def test_sink_failure_is_isolated(self, db_session, team, alice, bob, carol):
        real_sink = NotificationSink(db_session)
        sink = MagicMock()

        def create(draft):
            if draft.user_id == bob.id:
                raise RuntimeError("sink unavailable")
            return real_sink.create(draft)

        sink.create.side_effect = create
        bridge = NotificationBridge(db_session, sink=sink, clock=lambda: MONDAY)

        result = bridge.notify_new_message(team.participants, alice.id, team.id, "hi", team.name)

        assert result.failed == [bob.id]
        assert result.created == [carol.id]
        assert [n.user_id for n in _notifications(db_session)] == [carol.id]

    def test_no_recipients(self, bridge, team, alice):
        result = bridge.notify_new_message([], alice.id, team.id, "hi")

        assert result.created == result.skipped == result.failed == []
