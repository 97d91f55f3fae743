"""
Call record manager.

A call document in calls/{callId} tracks one call attempt:

    ringing -> active -> ended
    ringing -> declined | missed | ended (caller hung up)

ended, declined and missed are terminal. A request for the status the call is
already in is accepted as a no-op; any other move out of the graph is rejected
and leaves the document untouched. Guards are read-then-write without a
transaction, so racing clients still resolve last-write-wins.

Group calls keep per-participant entries and end automatically once nobody is
ringing or joined any more.
"""
import json
import logging
from datetime import timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from django.utils import timezone

from .constants import (
    CALL_ACTIVE,
    CALL_DECLINED,
    CALL_ENDED,
    CALL_MISSED,
    CALL_RINGING,
    CALL_TRANSITIONS,
    CALL_TYPES,
    CALLS_COLLECTION,
    PARTICIPANT_DECLINED,
    PARTICIPANT_JOINED,
    PARTICIPANT_LEFT,
    PARTICIPANT_RINGING,
    PRESENT_PARTICIPANT_STATUSES,
)
from .notification_service import NotificationService
from .results import ErrorKind, ServiceResult, fail, ok
from .store import DocumentStore, StoreError, Subscription, new_document_id
from .utils import generate_channel_name, normalize_datetime

logger = logging.getLogger("messenger")


def can_transition(current: Optional[str], target: str) -> bool:
    return target in CALL_TRANSITIONS.get(current, frozenset())


def elapsed_seconds(call_record: Dict[str, Any], ended_at) -> int:
    """Seconds between answer (or start) and ended_at."""
    base = normalize_datetime(call_record.get("answerTime")) or normalize_datetime(call_record.get("startTime"))
    if base is None:
        return 0
    return max(0, int((ended_at - base).total_seconds()))


class CallService:
    """Creates, mutates and reads call records"""

    def __init__(self, store: DocumentStore, notifications: Optional[NotificationService] = None):
        self.store = store
        self.notifications = notifications

    # =========================================================================
    # Internals
    # =========================================================================

    def _load(self, call_id: str):
        """Returns (record, error_result)."""
        if not call_id:
            return None, fail(ErrorKind.VALIDATION, "call_id is required")
        try:
            record = self.store.get(CALLS_COLLECTION, call_id)
        except StoreError as e:
            logger.error(f"[CALL] Error getting call record {call_id}: {e}")
            return None, fail(ErrorKind.REMOTE_WRITE, str(e))
        if record is None:
            return None, fail(ErrorKind.NOT_FOUND, f"Call not found: {call_id}")
        return record, None

    def _transition(self, call_id: str, target: str, tag: str, on_change=None, **fields) -> ServiceResult:
        record, error = self._load(call_id)
        if error:
            return error
        if record.get("isGroupCall") and target != CALL_ENDED:
            return fail(ErrorKind.INVALID_TRANSITION, f"Group call {call_id} cannot become {target}")

        current = record.get("status")
        if current == target:
            logger.info(f"[CALL/{tag}] Call {call_id} already {target}")
            return ok(record)
        if not can_transition(current, target):
            logger.warning(f"[CALL/{tag}] Rejected {current} -> {target} for {call_id}")
            return fail(ErrorKind.INVALID_TRANSITION, f"Cannot move call from {current} to {target}")

        update_data = {"status": target, **fields}
        try:
            self.store.update(CALLS_COLLECTION, call_id, update_data)
        except StoreError as e:
            logger.error(f"[CALL/{tag}] Error updating call status: {e}")
            return fail(ErrorKind.REMOTE_WRITE, str(e))

        logger.info(f"[CALL/{tag}] Call {call_id} {current} -> {target}")
        record.update(update_data)
        if on_change is not None:
            on_change(record)
        return ok(record)

    def _notify(self, send: Callable[[], ServiceResult], tag: str) -> None:
        """Best-effort push; never fails the state transition."""
        if self.notifications is None:
            return
        result = send()
        if not result.success:
            logger.warning(f"[CALL/{tag}] Push failed: {result.error}")

    # =========================================================================
    # One-to-one calls
    # =========================================================================

    def initiate_call(self, caller_id: str, receiver_id: str, call_type: str = "video") -> ServiceResult:
        """Create a ringing call record and push the receiver. Returns the call id."""
        if not caller_id or not receiver_id:
            return fail(ErrorKind.VALIDATION, "caller_id and receiver_id are required")
        if caller_id == receiver_id:
            return fail(ErrorKind.VALIDATION, "Cannot call yourself")
        if call_type not in CALL_TYPES:
            return fail(ErrorKind.VALIDATION, f"Invalid call type: {call_type}")

        call_id = new_document_id()
        call_data = {
            "callId": call_id,
            "channelName": generate_channel_name(call_id),
            "callerId": caller_id,
            "receiverId": receiver_id,
            "callType": call_type,
            "isGroupCall": False,
            "status": CALL_RINGING,
            "startTime": timezone.now(),
            "answerTime": None,
            "endTime": None,
            "duration": 0,
            "offer": None,
            "answer": None,
            "iceCandidates": {"caller": [], "receiver": []},
        }

        try:
            self.store.create(CALLS_COLLECTION, call_data, doc_id=call_id)
        except StoreError as e:
            logger.error(f"[CALL/INITIATE] Error creating call record: {e}")
            return fail(ErrorKind.REMOTE_WRITE, str(e))

        logger.info(f"[CALL/INITIATE] Created call record: {call_id} ({caller_id} -> {receiver_id})")

        self._notify(
            lambda: self.notifications.send_call_notification(caller_id, receiver_id, call_type, call_id),
            "INITIATE",
        )
        return ok(call_id)

    def answer_call(self, call_id: str) -> ServiceResult:
        return self._transition(call_id, CALL_ACTIVE, "ANSWER", answerTime=timezone.now())

    def decline_call(self, call_id: str) -> ServiceResult:
        return self._transition(call_id, CALL_DECLINED, "DECLINE", endTime=timezone.now())

    def end_call(self, call_id: str, duration: int = 0) -> ServiceResult:
        """End a ringing or active call with the caller-reported duration."""
        try:
            duration = int(duration)
        except (TypeError, ValueError):
            return fail(ErrorKind.VALIDATION, "duration must be an integer")
        if duration < 0:
            return fail(ErrorKind.VALIDATION, "duration must not be negative")

        return self._transition(call_id, CALL_ENDED, "END", endTime=timezone.now(), duration=duration)

    def _push_missed(self, record: Dict[str, Any]) -> None:
        self._notify(
            lambda: self.notifications.send_missed_call_notification(
                record.get("callerId"), record.get("receiverId"), record.get("callType")
            ),
            "MISSED",
        )

    def mark_as_missed(self, call_id: str) -> ServiceResult:
        return self._transition(call_id, CALL_MISSED, "MISSED", on_change=self._push_missed, endTime=timezone.now())

    def mark_missed_expired(self, timeout_seconds: int) -> ServiceResult:
        """Mark one-to-one calls still ringing after timeout_seconds as missed."""
        cutoff = timezone.now() - timedelta(seconds=timeout_seconds)
        try:
            expired = self.store.query(
                CALLS_COLLECTION,
                where=[("status", "==", CALL_RINGING), ("startTime", "<=", cutoff)],
            )
            expired = [call for call in expired if not call.get("isGroupCall")]
            if not expired:
                return ok(0)

            batch = self.store.batch()
            ended_at = timezone.now()
            for call in expired:
                batch.update(CALLS_COLLECTION, call["id"], {"status": CALL_MISSED, "endTime": ended_at})
            batch.commit()
        except StoreError as e:
            logger.error(f"[CALL/TIMEOUT_SWEEP] Error marking missed calls: {e}")
            return fail(ErrorKind.REMOTE_WRITE, str(e))

        logger.info(f"[CALL/TIMEOUT_SWEEP] Marked {len(expired)} calls as missed")
        for call in expired:
            self._push_missed(call)
        return ok(len(expired))

    # =========================================================================
    # Group calls
    # =========================================================================

    def initiate_group_call(self, caller_id: str, participant_ids: Iterable[str], call_type: str = "video") -> ServiceResult:
        invitees = [pid for pid in dict.fromkeys(participant_ids or []) if pid and pid != caller_id]
        if not caller_id:
            return fail(ErrorKind.VALIDATION, "caller_id is required")
        if not invitees:
            return fail(ErrorKind.VALIDATION, "At least one other participant is required")
        if call_type not in CALL_TYPES:
            return fail(ErrorKind.VALIDATION, f"Invalid call type: {call_type}")

        now = timezone.now()
        participants = [{"id": caller_id, "status": PARTICIPANT_JOINED, "joinedAt": now}]
        participants += [{"id": pid, "status": PARTICIPANT_RINGING, "joinedAt": None} for pid in invitees]

        call_id = new_document_id()
        try:
            self.store.create(CALLS_COLLECTION, {
                "callId": call_id,
                "channelName": generate_channel_name(call_id),
                "callerId": caller_id,
                "participants": participants,
                "participantIds": [caller_id] + invitees,
                "callType": call_type,
                "isGroupCall": True,
                "status": CALL_RINGING,
                "startTime": now,
                "answerTime": None,
                "endTime": None,
                "duration": 0,
            }, doc_id=call_id)
        except StoreError as e:
            logger.error(f"[CALL/GROUP_INITIATE] Error creating group call: {e}")
            return fail(ErrorKind.REMOTE_WRITE, str(e))

        logger.info(f"[CALL/GROUP_INITIATE] Created group call {call_id} with {len(participants)} participants")

        for pid in invitees:
            self._notify(
                lambda pid=pid: self.notifications.send_call_notification(caller_id, pid, call_type, call_id),
                "GROUP_INITIATE",
            )
        return ok(call_id)

    def _update_participant(self, call_id: str, user_id: str, status: str, tag: str) -> ServiceResult:
        record, error = self._load(call_id)
        if error:
            return error
        if not record.get("isGroupCall"):
            return fail(ErrorKind.VALIDATION, f"Call {call_id} is not a group call")
        if record.get("status") not in (CALL_RINGING, CALL_ACTIVE):
            return fail(ErrorKind.INVALID_TRANSITION, f"Call {call_id} is already {record.get('status')}")

        participants: List[Dict[str, Any]] = record.get("participants") or []
        entry = next((p for p in participants if p.get("id") == user_id), None)
        if entry is None:
            return fail(ErrorKind.NOT_FOUND, f"{user_id} is not part of call {call_id}")

        now = timezone.now()
        entry["status"] = status
        if status == PARTICIPANT_JOINED:
            entry["joinedAt"] = now

        update_data: Dict[str, Any] = {"participants": participants}
        joined = [p for p in participants if p.get("status") == PARTICIPANT_JOINED]
        present = [p for p in participants if p.get("status") in PRESENT_PARTICIPANT_STATUSES]

        if not present:
            update_data.update({
                "status": CALL_ENDED,
                "endTime": now,
                "duration": elapsed_seconds(record, now),
            })
        elif record.get("status") == CALL_RINGING and len(joined) >= 2:
            update_data.update({"status": CALL_ACTIVE, "answerTime": now})

        try:
            self.store.update(CALLS_COLLECTION, call_id, update_data)
        except StoreError as e:
            logger.error(f"[CALL/{tag}] Error updating participant: {e}")
            return fail(ErrorKind.REMOTE_WRITE, str(e))

        logger.info(f"[CALL/{tag}] {user_id} {status} in {call_id} (call status={update_data.get('status', record.get('status'))})")
        record.update(update_data)
        return ok(record)

    def join_group_call(self, call_id: str, user_id: str) -> ServiceResult:
        return self._update_participant(call_id, user_id, PARTICIPANT_JOINED, "GROUP_JOIN")

    def leave_group_call(self, call_id: str, user_id: str) -> ServiceResult:
        return self._update_participant(call_id, user_id, PARTICIPANT_LEFT, "GROUP_LEAVE")

    def decline_group_call(self, call_id: str, user_id: str) -> ServiceResult:
        return self._update_participant(call_id, user_id, PARTICIPANT_DECLINED, "GROUP_DECLINE")

    # =========================================================================
    # WebRTC signalling
    # =========================================================================

    def _save_signal(self, call_id: str, data: Dict[str, Any]) -> ServiceResult:
        try:
            self.store.update(CALLS_COLLECTION, call_id, data)
        except StoreError as e:
            return fail(ErrorKind.REMOTE_WRITE, str(e))
        return ok()

    def save_offer(self, call_id: str, offer: Dict[str, Any]) -> ServiceResult:
        return self._save_signal(call_id, {"offer": json.dumps(offer)})

    def save_answer(self, call_id: str, answer: Dict[str, Any]) -> ServiceResult:
        return self._save_signal(call_id, {"answer": json.dumps(answer)})

    def save_ice_candidate(self, call_id: str, candidate: Dict[str, Any], is_caller: bool) -> ServiceResult:
        record, error = self._load(call_id)
        if error:
            return error
        ice_candidates = record.get("iceCandidates") or {"caller": [], "receiver": []}
        key = "caller" if is_caller else "receiver"
        ice_candidates.setdefault(key, []).append(json.dumps(candidate))
        return self._save_signal(call_id, {"iceCandidates": ice_candidates})

    # =========================================================================
    # Reads and listeners
    # =========================================================================

    def get_call_details(self, call_id: str) -> ServiceResult:
        record, error = self._load(call_id)
        if error:
            return error
        return ok(record)

    def get_call_history(self, user_id: str) -> ServiceResult:
        """Calls the user placed, received or was invited to, newest first."""
        try:
            calls: Dict[str, Dict[str, Any]] = {}
            for field, op in (("callerId", "=="), ("receiverId", "=="), ("participantIds", "array_contains")):
                for call in self.store.query(CALLS_COLLECTION, where=[(field, op, user_id)]):
                    calls[call["id"]] = call
        except StoreError as e:
            logger.error(f"[CALL/HISTORY] Error getting call history: {e}")
            return fail(ErrorKind.REMOTE_WRITE, str(e))

        history = sorted(
            calls.values(),
            key=lambda call: normalize_datetime(call.get("startTime")) or timezone.now(),
            reverse=True,
        )
        return ok(history)

    def listen_to_call(self, call_id: str, callback: Callable[[Dict[str, Any]], None]) -> Subscription:
        """Deliver the full call document on every change; missing documents are skipped."""
        def _deliver(record):
            if record is not None:
                callback(record)

        return self.store.watch_document(CALLS_COLLECTION, call_id, _deliver)

    def listen_to_incoming_calls(self, user_id: str, callback: Callable[[List[Dict[str, Any]]], None]) -> Subscription:
        return self.store.watch_query(
            CALLS_COLLECTION,
            callback,
            where=[("receiverId", "==", user_id), ("status", "==", CALL_RINGING)],
            order_by="startTime",
            descending=True,
        )
