from datetime import timedelta

from django.utils import timezone

from messenger.results import ErrorKind


def _call(store, call_id):
    return store.get("calls", call_id)


def test_initiate_call_creates_ringing_record_and_pushes_receiver(services, store, make_user, push_recorder):
    make_user("alice", "Alice")
    make_user("bob", "Bob", push_token="ExponentPushToken[bob]")

    result = services.calls.initiate_call("alice", "bob", "audio")

    assert result.success
    call = _call(store, result.value)
    assert call["status"] == "ringing"
    assert call["channelName"] == result.value
    assert call["callerId"] == "alice"
    assert call["receiverId"] == "bob"
    assert call["duration"] == 0
    assert call["answerTime"] is None

    assert len(push_recorder.messages) == 1
    push = push_recorder.messages[0]
    assert push["to"] == "ExponentPushToken[bob]"
    assert push["title"] == "Incoming Audio Call"
    assert push["channelId"] == "calls"
    assert push["data"] == {"type": "call", "callId": result.value, "callerId": "alice", "callType": "audio"}
    # Call pushes are not kept in the notification history
    assert store.query("notifications") == []


def test_initiate_call_succeeds_without_push_token(services, store, make_user, push_recorder):
    make_user("alice")
    make_user("bob")

    result = services.calls.initiate_call("alice", "bob")

    assert result.success
    assert push_recorder.messages == []


def test_initiate_call_validation(services):
    assert services.calls.initiate_call("alice", "alice").error_code == ErrorKind.VALIDATION
    assert services.calls.initiate_call("alice", "").error_code == ErrorKind.VALIDATION
    assert services.calls.initiate_call("alice", "bob", "hologram").error_code == ErrorKind.VALIDATION


def test_full_call_lifecycle(services, store):
    call_id = services.calls.initiate_call("alice", "bob", "video").value

    answered = services.calls.answer_call(call_id)
    assert answered.success
    assert _call(store, call_id)["status"] == "active"
    assert _call(store, call_id)["answerTime"] is not None

    ended = services.calls.end_call(call_id, 42)
    assert ended.success
    call = _call(store, call_id)
    assert call["status"] == "ended"
    assert call["duration"] == 42
    assert call["endTime"] is not None

    late_answer = services.calls.answer_call(call_id)
    late_decline = services.calls.decline_call(call_id)
    assert late_answer.error_code == ErrorKind.INVALID_TRANSITION
    assert late_decline.error_code == ErrorKind.INVALID_TRANSITION
    assert _call(store, call_id)["status"] == "ended"
    assert _call(store, call_id)["duration"] == 42


def test_missed_after_answer_leaves_call_active(services, store, push_recorder, make_user):
    make_user("alice")
    make_user("bob", push_token="ExponentPushToken[bob]")
    call_id = services.calls.initiate_call("alice", "bob").value
    services.calls.answer_call(call_id)
    push_count = len(push_recorder.messages)

    result = services.calls.mark_as_missed(call_id)

    assert not result.success
    assert result.error_code == ErrorKind.INVALID_TRANSITION
    assert _call(store, call_id)["status"] == "active"
    assert len(push_recorder.messages) == push_count


def test_repeating_the_current_status_is_a_no_op(services, store):
    call_id = services.calls.initiate_call("alice", "bob").value
    services.calls.answer_call(call_id)
    answered_at = _call(store, call_id)["answerTime"]

    again = services.calls.answer_call(call_id)

    assert again.success
    assert _call(store, call_id)["answerTime"] == answered_at


def test_decline_is_terminal(services, store):
    call_id = services.calls.initiate_call("alice", "bob").value

    assert services.calls.decline_call(call_id).success
    assert _call(store, call_id)["status"] == "declined"
    assert services.calls.end_call(call_id, 10).error_code == ErrorKind.INVALID_TRANSITION
    assert services.calls.answer_call(call_id).error_code == ErrorKind.INVALID_TRANSITION


def test_caller_can_end_a_ringing_call(services, store):
    call_id = services.calls.initiate_call("alice", "bob").value

    assert services.calls.end_call(call_id).success
    assert _call(store, call_id)["status"] == "ended"
    assert _call(store, call_id)["duration"] == 0


def test_end_call_rejects_bad_duration(services):
    call_id = services.calls.initiate_call("alice", "bob").value

    assert services.calls.end_call(call_id, -1).error_code == ErrorKind.VALIDATION
    assert services.calls.end_call(call_id, "long").error_code == ErrorKind.VALIDATION


def test_unknown_call_is_not_found(services):
    assert services.calls.answer_call("nope").error_code == ErrorKind.NOT_FOUND
    assert services.calls.get_call_details("nope").error_code == ErrorKind.NOT_FOUND


def test_mark_as_missed_pushes_missed_call_notification(services, store, make_user, push_recorder):
    make_user("alice", "Alice")
    make_user("bob", "Bob", push_token="ExponentPushToken[bob]")
    call_id = services.calls.initiate_call("alice", "bob", "video").value

    assert services.calls.mark_as_missed(call_id).success
    assert _call(store, call_id)["status"] == "missed"
    assert push_recorder.titles() == ["Incoming Video Call", "Missed Call"]
    assert push_recorder.messages[-1]["body"] == "You missed a video call from Alice"

    history = store.query("notifications", where=[("userId", "==", "bob")])
    assert [n["title"] for n in history] == ["Missed Call"]

    # Marking again changes nothing and does not push twice
    assert services.calls.mark_as_missed(call_id).success
    assert len(push_recorder.messages) == 2


def test_sweep_marks_only_expired_ringing_calls(services, store):
    old_id = services.calls.initiate_call("alice", "bob").value
    fresh_id = services.calls.initiate_call("carol", "bob").value
    answered_id = services.calls.initiate_call("dave", "bob").value
    services.calls.answer_call(answered_id)
    long_ago = timezone.now() - timedelta(minutes=5)
    store.update("calls", old_id, {"startTime": long_ago})
    store.update("calls", answered_id, {"startTime": long_ago})

    result = services.calls.mark_missed_expired(30)

    assert result.success
    assert result.value == 1
    assert _call(store, old_id)["status"] == "missed"
    assert _call(store, fresh_id)["status"] == "ringing"
    assert _call(store, answered_id)["status"] == "active"


def test_sweep_pushes_missed_call_notification(services, store, make_user, push_recorder):
    make_user("alice", "Alice")
    make_user("bob", "Bob", push_token="ExponentPushToken[bob]")
    call_id = services.calls.initiate_call("alice", "bob", "audio").value
    store.update("calls", call_id, {"startTime": timezone.now() - timedelta(minutes=2)})

    assert services.calls.mark_missed_expired(30).value == 1

    assert push_recorder.titles() == ["Incoming Audio Call", "Missed Call"]
    assert push_recorder.messages[-1]["body"] == "You missed a audio call from Alice"


def test_group_call_participants_drive_status(services, store):
    call_id = services.calls.initiate_group_call("alice", ["bob", "carol", "bob"], "audio").value
    call = _call(store, call_id)
    assert call["isGroupCall"] is True
    assert call["participantIds"] == ["alice", "bob", "carol"]
    assert [p["status"] for p in call["participants"]] == ["joined", "ringing", "ringing"]

    assert services.calls.join_group_call(call_id, "bob").success
    assert _call(store, call_id)["status"] == "active"

    services.calls.decline_group_call(call_id, "carol")
    services.calls.leave_group_call(call_id, "bob")
    assert _call(store, call_id)["status"] == "active"

    services.calls.leave_group_call(call_id, "alice")
    call = _call(store, call_id)
    assert call["status"] == "ended"
    assert call["endTime"] is not None

    assert services.calls.join_group_call(call_id, "bob").error_code == ErrorKind.INVALID_TRANSITION


def test_group_call_cannot_be_declined_or_missed_as_a_whole(services, store):
    call_id = services.calls.initiate_group_call("alice", ["bob"]).value

    assert services.calls.decline_call(call_id).error_code == ErrorKind.INVALID_TRANSITION
    assert services.calls.mark_as_missed(call_id).error_code == ErrorKind.INVALID_TRANSITION
    assert services.calls.join_group_call(call_id, "mallory").error_code == ErrorKind.NOT_FOUND
    assert _call(store, call_id)["status"] == "ringing"


def test_signalling_is_stored_as_json(services, store):
    call_id = services.calls.initiate_call("alice", "bob").value

    services.calls.save_offer(call_id, {"type": "offer", "sdp": "v=0"})
    services.calls.save_ice_candidate(call_id, {"candidate": "c1"}, is_caller=True)
    services.calls.save_ice_candidate(call_id, {"candidate": "c2"}, is_caller=False)

    call = _call(store, call_id)
    assert call["offer"] == '{"type": "offer", "sdp": "v=0"}'
    assert call["iceCandidates"] == {"caller": ['{"candidate": "c1"}'], "receiver": ['{"candidate": "c2"}']}


def test_call_history_merges_roles_newest_first(services, store):
    placed = services.calls.initiate_call("alice", "bob").value
    received = services.calls.initiate_call("carol", "alice").value
    group = services.calls.initiate_group_call("dave", ["alice", "bob"]).value
    unrelated = services.calls.initiate_call("bob", "carol").value
    now = timezone.now()
    store.update("calls", placed, {"startTime": now - timedelta(minutes=3)})
    store.update("calls", received, {"startTime": now - timedelta(minutes=1)})
    store.update("calls", group, {"startTime": now - timedelta(minutes=2)})

    history = services.calls.get_call_history("alice").value

    assert [call["id"] for call in history] == [received, group, placed]
    assert unrelated not in [call["id"] for call in history]


def test_listen_to_incoming_calls(services):
    snapshots = []
    subscription = services.calls.listen_to_incoming_calls("bob", lambda calls: snapshots.append(calls))

    call_id = services.calls.initiate_call("alice", "bob").value
    services.calls.answer_call(call_id)
    subscription.unsubscribe()

    assert snapshots[0] == []
    assert [c["id"] for c in snapshots[1]] == [call_id]
    assert snapshots[-1] == []
