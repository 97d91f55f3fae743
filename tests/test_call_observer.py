import threading
import time

from messenger.call_observer import IncomingCallWatcher, OutgoingCallWatcher


def test_outgoing_watcher_marks_unanswered_call_missed(services, store):
    call_id = services.calls.initiate_call("alice", "bob").value
    closed = threading.Event()
    closed_records = []

    def on_closed(record):
        closed_records.append(record)
        closed.set()

    watcher = OutgoingCallWatcher(services.calls, call_id, on_closed=on_closed, timeout_seconds=0.05).start()

    assert closed.wait(2)
    assert store.get("calls", call_id)["status"] == "missed"
    assert [r["status"] for r in closed_records] == ["missed"]
    assert not watcher._subscription.active


def test_outgoing_watcher_answer_cancels_timeout(services, store):
    call_id = services.calls.initiate_call("alice", "bob").value
    active_records = []
    closed_records = []

    watcher = OutgoingCallWatcher(
        services.calls,
        call_id,
        on_active=active_records.append,
        on_closed=closed_records.append,
        timeout_seconds=0.1,
    ).start()

    services.calls.answer_call(call_id)
    services.calls.save_offer(call_id, {"sdp": "v=0"})
    time.sleep(0.3)

    assert store.get("calls", call_id)["status"] == "active"
    assert len(active_records) == 1
    assert closed_records == []

    services.calls.end_call(call_id, 42)

    assert [r["status"] for r in closed_records] == ["ended"]
    assert watcher.status == "ended"


def test_outgoing_watcher_reports_decline_once(services):
    call_id = services.calls.initiate_call("alice", "bob").value
    closed_records = []

    OutgoingCallWatcher(services.calls, call_id, on_closed=closed_records.append, timeout_seconds=5).start()
    services.calls.decline_call(call_id)
    services.calls.decline_call(call_id)

    assert [r["status"] for r in closed_records] == ["declined"]


def test_outgoing_watcher_on_already_finished_call(services):
    call_id = services.calls.initiate_call("alice", "bob").value
    services.calls.end_call(call_id)
    closed_records = []

    watcher = OutgoingCallWatcher(services.calls, call_id, on_closed=closed_records.append, timeout_seconds=5).start()

    assert [r["status"] for r in closed_records] == ["ended"]
    assert not watcher._subscription.active
    assert watcher._timer is None


def test_incoming_watcher_decline(services, store):
    call_id = services.calls.initiate_call("alice", "bob").value
    closed_records = []

    watcher = IncomingCallWatcher(services.calls, call_id, on_closed=closed_records.append).start()
    assert watcher.status == "ringing"

    assert watcher.decline().success

    assert store.get("calls", call_id)["status"] == "declined"
    assert [r["status"] for r in closed_records] == ["declined"]


def test_incoming_watcher_sees_caller_hang_up(services):
    call_id = services.calls.initiate_call("alice", "bob").value
    closed_records = []

    watcher = IncomingCallWatcher(services.calls, call_id, on_closed=closed_records.append).start()
    assert watcher.answer().success
    assert closed_records == []

    services.calls.end_call(call_id, 12)

    assert [r["duration"] for r in closed_records] == [12]
