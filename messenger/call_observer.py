"""
Call session observers.

Watchers subscribe to one call document and turn remote status changes into
one-shot callbacks for the calling and the called side. The outgoing side owns
the missed-call timer: nothing on the server arbitrates it, so a late answer
can race the timeout and the last write wins.
"""
import logging
import threading
from typing import Any, Callable, Dict, Optional

from django.conf import settings

from .call_service import CallService
from .constants import CALL_ACTIVE, CALL_DECLINED, CALL_ENDED, CALL_MISSED
from .results import ServiceResult

logger = logging.getLogger("messenger")

CallCallback = Callable[[Dict[str, Any]], None]

OUTGOING_CLOSE_STATUSES = frozenset({CALL_DECLINED, CALL_ENDED, CALL_MISSED})
INCOMING_CLOSE_STATUSES = frozenset({CALL_ENDED, CALL_DECLINED, CALL_MISSED})


class OutgoingCallWatcher:
    """
    Caller side of a ringing call.

    on_active fires once when the callee answers; on_closed fires once when the
    call is declined, ended or missed. If no answer is observed within
    timeout_seconds the watcher marks the call as missed itself.
    """

    def __init__(
        self,
        call_service: CallService,
        call_id: str,
        on_active: Optional[CallCallback] = None,
        on_closed: Optional[CallCallback] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.call_service = call_service
        self.call_id = call_id
        self.on_active = on_active
        self.on_closed = on_closed
        self.timeout_seconds = (
            settings.MISSED_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        )
        self.status: Optional[str] = None
        self._active_fired = False
        self._closed_fired = False
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._subscription = None
        self._stopped = False

    def start(self) -> "OutgoingCallWatcher":
        self._timer = threading.Timer(self.timeout_seconds, self._timeout_handler)
        self._timer.daemon = True
        self._timer.start()
        self._subscription = self.call_service.listen_to_call(self.call_id, self._on_snapshot)
        if self._stopped:
            # Initial snapshot was already terminal
            self._subscription.unsubscribe()
        return self

    def stop(self) -> None:
        self._stopped = True
        self._cancel_timer()
        if self._subscription is not None:
            self._subscription.unsubscribe()

    def _cancel_timer(self) -> None:
        with self._lock:
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    def _timeout_handler(self) -> None:
        with self._lock:
            if self._timer is None:
                return
            self._timer = None
        logger.info(f"[CALL/OUTGOING] No answer for {self.call_id} after {self.timeout_seconds}s")
        result = self.call_service.mark_as_missed(self.call_id)
        if not result.success:
            logger.warning(f"[CALL/OUTGOING] Could not mark {self.call_id} missed: {result.error}")

    def _on_snapshot(self, record: Dict[str, Any]) -> None:
        status = record.get("status")
        self.status = status

        if status == CALL_ACTIVE:
            self._cancel_timer()
            if not self._active_fired:
                self._active_fired = True
                if self.on_active:
                    self.on_active(record)
        elif status in OUTGOING_CLOSE_STATUSES:
            self.stop()
            if not self._closed_fired:
                self._closed_fired = True
                if self.on_closed:
                    self.on_closed(record)


class IncomingCallWatcher:
    """Callee side of a ringing call; on_closed fires once on ended/declined/missed."""

    def __init__(self, call_service: CallService, call_id: str, on_closed: Optional[CallCallback] = None):
        self.call_service = call_service
        self.call_id = call_id
        self.on_closed = on_closed
        self.status: Optional[str] = None
        self._closed_fired = False
        self._subscription = None
        self._stopped = False

    def start(self) -> "IncomingCallWatcher":
        self._subscription = self.call_service.listen_to_call(self.call_id, self._on_snapshot)
        if self._stopped:
            self._subscription.unsubscribe()
        return self

    def stop(self) -> None:
        self._stopped = True
        if self._subscription is not None:
            self._subscription.unsubscribe()

    def answer(self) -> ServiceResult:
        return self.call_service.answer_call(self.call_id)

    def decline(self) -> ServiceResult:
        return self.call_service.decline_call(self.call_id)

    def _on_snapshot(self, record: Dict[str, Any]) -> None:
        self.status = record.get("status")
        if self.status in INCOMING_CLOSE_STATUSES and not self._closed_fired:
            self._closed_fired = True
            self.stop()
            if self.on_closed:
                self.on_closed(record)
