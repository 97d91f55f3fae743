from datetime import datetime, timezone as dt_timezone

import pytest

from messenger.notification_service import in_quiet_hours, truncate_preview
from messenger.results import ErrorKind


@pytest.mark.parametrize(
    "mute_from, mute_to, hour, minute, expected",
    [
        ("23:00", "07:00", 23, 30, True),
        ("23:00", "07:00", 3, 0, True),
        ("23:00", "07:00", 7, 0, False),
        ("23:00", "07:00", 12, 0, False),
        ("13:00", "14:00", 13, 15, True),
        ("13:00", "14:00", 14, 0, False),
        (None, None, 3, 0, False),
        ("7pm", "07:00", 3, 0, False),
    ],
)
def test_in_quiet_hours(mute_from, mute_to, hour, minute, expected):
    settings = {"muteFrom": mute_from, "muteTo": mute_to}
    now = datetime(2026, 1, 1, hour, minute)

    assert in_quiet_hours(settings, now) is expected


def test_truncate_preview():
    assert truncate_preview("short") == "short"
    assert truncate_preview("a" * 51) == "a" * 50 + "..."


def test_register_device_token(services, store, make_user):
    make_user("alice")

    assert services.notifications.register_device_token("alice", "ExponentPushToken[a]").success
    profile = store.get("users", "alice")
    assert profile["pushToken"] == "ExponentPushToken[a]"
    assert profile["pushTokenUpdatedAt"] is not None

    assert services.notifications.register_device_token("ghost", "tok").error_code == ErrorKind.NOT_FOUND
    assert services.notifications.unregister_device_token("alice").success
    assert "pushToken" not in store.get("users", "alice")


def test_send_to_user_records_history(services, store, make_user, push_recorder):
    make_user("alice", push_token="ExponentPushToken[a]")

    result = services.notifications.send_notification_to_user("alice", "Hi", "Body", {"type": "test"})

    assert result.success
    assert push_recorder.messages[0]["badge"] == 1
    history = store.query("notifications", where=[("userId", "==", "alice")])
    assert len(history) == 1
    assert history[0]["title"] == "Hi"
    assert history[0]["read"] is False


def test_send_without_token_fails(services, make_user, push_recorder):
    make_user("alice")

    result = services.notifications.send_notification_to_user("alice", "Hi", "Body")

    assert result.error_code == ErrorKind.VALIDATION
    assert push_recorder.messages == []
    assert services.notifications.send_notification_to_user("ghost", "Hi", "Body").error_code == ErrorKind.NOT_FOUND


def test_failed_push_is_not_recorded(services, store, make_user, push_recorder):
    make_user("alice", push_token="ExponentPushToken[a]")
    push_recorder.payload = {
        "data": {"status": "error", "message": "not registered", "details": {"error": "DeviceNotRegistered"}}
    }

    result = services.notifications.send_notification_to_user("alice", "Hi", "Body")

    assert not result.success
    assert result.error_code == ErrorKind.REMOTE_WRITE
    assert store.query("notifications") == []


def test_message_notification_respects_preview_setting(services, make_user, push_recorder):
    make_user("alice", "Alice")
    make_user("bob", push_token="ExponentPushToken[b]", notificationSettings={"showPreview": False})

    services.notifications.send_message_notification("alice", "bob", "secret plans", "alice_bob")

    assert push_recorder.messages[0]["body"] == "New message"
    assert push_recorder.messages[0]["data"] == {"type": "message", "chatId": "alice_bob", "senderId": "alice"}


@pytest.mark.parametrize(
    "fields, reason",
    [
        ({"mutedUsers": ["alice"]}, "muted"),
        ({"blockedUsers": ["alice"]}, "blocked"),
        ({"activeChatId": "alice_bob"}, "active_chat"),
        ({"notificationSettings": {"messageNotifications": False}}, "disabled"),
        ({"notificationSettings": {"enabled": False}}, "disabled"),
    ],
)
def test_message_notification_skips(services, make_user, push_recorder, fields, reason):
    make_user("alice", "Alice")
    make_user("bob", push_token="ExponentPushToken[b]", **fields)

    result = services.notifications.send_message_notification("alice", "bob", "hi", "alice_bob")

    assert result.success
    assert result.value == {"skipped": reason}
    assert push_recorder.messages == []


def test_message_notification_skipped_in_quiet_hours(services, make_user, push_recorder, settings, monkeypatch):
    settings.TIME_ZONE = "UTC"
    make_user("alice", "Alice")
    make_user(
        "bob",
        push_token="ExponentPushToken[b]",
        notificationSettings={"muteFrom": "22:00", "muteTo": "06:00"},
    )
    late = datetime(2026, 3, 1, 23, 30, tzinfo=dt_timezone.utc)
    monkeypatch.setattr("messenger.notification_service.timezone.now", lambda: late)

    result = services.notifications.send_message_notification("alice", "bob", "hi", "alice_bob")

    assert result.value == {"skipped": "quiet_hours"}
    assert push_recorder.messages == []


def test_history_read_state(services, store, make_user):
    make_user("alice", push_token="ExponentPushToken[a]")
    for title in ("one", "two", "three"):
        services.notifications.send_notification_to_user("alice", title, "body")

    history = services.notifications.get_user_notifications("alice")
    assert [n["title"] for n in history.value] == ["three", "two", "one"]
    assert services.notifications.get_unread_count("alice").value == 3

    services.notifications.mark_as_read(history.value[0]["id"])
    assert services.notifications.get_unread_count("alice").value == 2

    assert services.notifications.mark_all_as_read("alice").value == 2
    assert services.notifications.get_unread_count("alice").value == 0
    assert services.notifications.mark_as_read("missing").error_code == ErrorKind.NOT_FOUND


def test_listen_to_notifications(services, make_user):
    make_user("alice", push_token="ExponentPushToken[a]")
    snapshots = []
    services.notifications.listen_to_notifications("alice", snapshots.append)

    services.notifications.send_notification_to_user("alice", "Hi", "Body")

    assert snapshots[0] == []
    assert [n["title"] for n in snapshots[-1]] == ["Hi"]
