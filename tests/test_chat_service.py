import pytest

from messenger.results import ErrorKind


@pytest.fixture
def chat(services, make_user):
    make_user("alice", "Alice", coins=5)
    make_user("bob", "Bob", coins=10, push_token="ExponentPushToken[bob]")
    return services.chats.get_or_create_chat_room("alice", "bob").value


def _balance(store, uid):
    return store.get("users", uid)["balanceCoins"]


def test_chat_room_id_is_the_sorted_pair(services, store):
    first = services.chats.get_or_create_chat_room("bob", "alice")
    second = services.chats.get_or_create_chat_room("alice", "bob")

    assert first.value == second.value == "alice_bob"
    chat = store.get("chats", "alice_bob")
    assert chat["unreadCount"] == {"alice": 0, "bob": 0}
    assert services.chats.get_or_create_chat_room("alice", "alice").error_code == ErrorKind.VALIDATION


def test_send_moves_one_coin_and_bumps_unread(services, store, chat, push_recorder):
    result = services.chats.send_message(chat, "alice", "bob", "  Hello Bob  ")

    assert result.success
    assert result.value["balance"] == 4
    assert _balance(store, "alice") == 4
    assert _balance(store, "bob") == 11

    summary = store.get("chats", chat)
    assert summary["unreadCount"]["bob"] == 1
    assert summary["unreadCount"]["alice"] == 0
    assert summary["lastMessage"] == "Hello Bob"

    message = store.get("messages", result.value["messageId"])
    assert message["message"] == "Hello Bob"
    assert message["senderId"] == "alice"
    assert message["read"] is False

    assert push_recorder.titles() == ["New message from Alice"]
    assert push_recorder.messages[0]["body"] == "Hello Bob"


def test_send_with_empty_balance_changes_nothing(services, store, chat, push_recorder):
    store.update("users", "alice", {"balanceCoins": 0})

    result = services.chats.send_message(chat, "alice", "bob", "Hello")

    assert not result.success
    assert result.error_code == ErrorKind.INSUFFICIENT_FUNDS
    assert _balance(store, "alice") == 0
    assert _balance(store, "bob") == 10
    assert store.query("messages") == []
    assert store.get("chats", chat)["unreadCount"]["bob"] == 0
    assert push_recorder.messages == []


def test_send_rejects_empty_text(services, store, chat):
    assert services.chats.send_message(chat, "alice", "bob", "   ").error_code == ErrorKind.VALIDATION
    assert _balance(store, "alice") == 5


def test_blocked_sender_cannot_send(services, store, chat):
    services.users.block_user("bob", "alice")

    result = services.chats.send_message(chat, "alice", "bob", "Hello")

    assert result.error_code == ErrorKind.VALIDATION
    assert _balance(store, "alice") == 5
    assert store.query("messages") == []


def test_receiver_must_belong_to_the_chat(services, store, chat, make_user):
    make_user("carol", "Carol", coins=10)
    services.chats.get_or_create_chat_room("bob", "carol")
    store.update("chats", "bob_carol", {"participants": ["alice", "bob", "carol"]})

    outsider = services.chats.send_message(chat, "alice", "carol", "Hello")
    wrong_room = services.chats.send_message("bob_carol", "alice", "carol", "Hello")

    assert outsider.error_code == ErrorKind.VALIDATION
    assert wrong_room.error_code == ErrorKind.VALIDATION
    assert _balance(store, "alice") == 5
    assert _balance(store, "carol") == 10
    assert store.get("chats", chat)["unreadCount"] == {"alice": 0, "bob": 0}
    assert store.query("messages") == []


def test_malformed_quiet_hours_do_not_fail_the_send(services, store, chat, push_recorder):
    store.update("users", "bob", {"notificationSettings": {"muteFrom": "7pm", "muteTo": "07:00"}})

    result = services.chats.send_message(chat, "alice", "bob", "Hello")

    assert result.success
    assert _balance(store, "bob") == 11
    assert push_recorder.titles() == ["New message from Alice"]


def test_push_is_skipped_while_receiver_views_the_chat(services, store, chat, push_recorder):
    services.users.set_active_chat("bob", chat)

    assert services.chats.send_message(chat, "alice", "bob", "Hello").success

    assert push_recorder.messages == []
    assert _balance(store, "bob") == 11


def test_long_message_preview_is_truncated(services, chat, push_recorder):
    services.chats.send_message(chat, "alice", "bob", "x" * 80)

    assert push_recorder.messages[0]["body"] == "x" * 50 + "..."


def test_media_and_reply_messages(services, store, chat):
    media = services.chats.send_media_message(chat, "alice", "bob", "http://relay/media/alice_bob/1.jpg", "image")
    assert media.success
    assert store.get("chats", chat)["lastMessage"] == "📷 Photo"
    assert store.get("messages", media.value["messageId"])["mediaUrl"].endswith("1.jpg")

    reply = services.chats.send_reply_message(
        chat, "bob", "alice", "Nice", {"id": media.value["messageId"], "message": "📷 Photo", "senderId": "alice"}
    )
    assert reply.success
    assert store.get("messages", reply.value["messageId"])["replyTo"]["id"] == media.value["messageId"]

    assert _balance(store, "alice") == 5
    assert _balance(store, "bob") == 10
    assert services.chats.send_media_message(chat, "alice", "bob", "x", "sticker").error_code == ErrorKind.VALIDATION


def test_group_message_debits_sender_only(services, store, make_user):
    make_user("alice", coins=3)
    make_user("bob", coins=3)
    make_user("carol", coins=3)
    chat_id = services.chats.create_group_chat("alice", "Friends", ["bob", "carol"]).value

    result = services.chats.send_group_message(chat_id, "alice", "Hi all")

    assert result.success
    assert [_balance(store, uid) for uid in ("alice", "bob", "carol")] == [2, 3, 3]
    assert store.get("chats", chat_id)["unreadCount"] == {"alice": 0, "bob": 1, "carol": 1}
    assert services.chats.send_group_message(chat_id, "mallory", "hi").error_code == ErrorKind.VALIDATION


def test_create_group_chat_validation(services):
    assert services.chats.create_group_chat("alice", "", ["bob"]).error_code == ErrorKind.VALIDATION
    assert services.chats.create_group_chat("alice", "Solo", ["alice"]).error_code == ErrorKind.VALIDATION


def test_read_state(services, store, chat):
    services.chats.send_message(chat, "alice", "bob", "one")
    services.chats.send_message(chat, "alice", "bob", "two")
    assert store.get("chats", chat)["unreadCount"]["bob"] == 2

    services.chats.mark_as_read(chat, "bob")
    seen = services.chats.mark_messages_as_seen(chat, "bob")

    assert store.get("chats", chat)["unreadCount"]["bob"] == 0
    assert seen.value == 2
    assert all(m["read"] for m in store.query("messages"))


def test_edit_delete_and_react(services, store, chat):
    message_id = services.chats.send_message(chat, "alice", "bob", "helo").value["messageId"]

    services.chats.edit_message(message_id, "hello")
    assert store.get("messages", message_id)["edited"] is True

    services.chats.add_reaction(message_id, "bob", "👍")
    assert store.get("messages", message_id)["reactions"] == {"bob": "👍"}

    services.chats.delete_message(message_id, chat)
    message = store.get("messages", message_id)
    assert message["deleted"] is True
    assert message["message"] == "This message was deleted"

    assert services.chats.edit_message("missing", "x").error_code == ErrorKind.NOT_FOUND


def test_typing_status_listener(services, chat):
    snapshots = []
    subscription = services.chats.listen_to_typing_status(chat, snapshots.append)

    services.chats.set_typing_status(chat, "alice", True)
    services.chats.set_typing_status(chat, "alice", False)
    subscription.unsubscribe()

    assert "alice" in snapshots[1]
    assert snapshots[-1] == {}


def test_chat_list_is_hydrated_with_other_user(services, chat):
    snapshots = []
    services.chats.listen_to_chat_list("alice", snapshots.append)

    services.chats.send_message(chat, "bob", "alice", "Hi Alice")

    latest = snapshots[-1]
    assert [c["chatId"] for c in latest] == [chat]
    assert latest[0]["otherUser"]["displayName"] == "Bob"
    assert latest[0]["lastMessage"] == "Hi Alice"


def test_listen_to_messages_in_order(services, chat):
    snapshots = []
    services.chats.listen_to_messages(chat, snapshots.append)

    services.chats.send_message(chat, "alice", "bob", "first")
    services.chats.send_message(chat, "bob", "alice", "second")

    assert [m["message"] for m in snapshots[-1]] == ["first", "second"]
