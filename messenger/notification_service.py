"""
Push notification dispatcher.

Registers device tokens, fans out pushes through the relay client and keeps the
notification history in the notifications collection.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from django.utils import timezone

from .constants import (
    DEFAULT_NOTIFICATION_SETTINGS,
    MESSAGE_PREVIEW_LENGTH,
    NOTIFICATION_HISTORY_LIMIT,
    NOTIFICATION_LISTEN_LIMIT,
    NOTIFICATIONS_COLLECTION,
    USERS_COLLECTION,
)
from .push_service import ExpoPushClient
from .results import ErrorKind, ServiceResult, fail, ok
from .store import DELETE_FIELD, DocumentNotFound, DocumentStore, StoreError, Subscription
from .utils import parse_hhmm, run_async

logger = logging.getLogger("messenger")


def notification_settings(profile: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    settings = dict(DEFAULT_NOTIFICATION_SETTINGS)
    if profile:
        settings.update(profile.get("notificationSettings") or {})
    return settings


def in_quiet_hours(settings: Dict[str, Any], now: datetime) -> bool:
    """
    True when `now` falls inside the muteFrom/muteTo window.

    Windows where muteFrom > muteTo wrap around midnight (23:00 -> 07:00).
    """
    mute_from = settings.get("muteFrom")
    mute_to = settings.get("muteTo")
    if not mute_from or not mute_to:
        return False

    current = now.hour * 60 + now.minute
    try:
        start = parse_hhmm(mute_from)
        end = parse_hhmm(mute_to)
    except ValueError as e:
        logger.warning(f"[PUSH] Ignoring quiet hours: {e}")
        return False

    if start > end:
        return current >= start or current < end
    return start <= current < end


def truncate_preview(text: str, length: int = MESSAGE_PREVIEW_LENGTH) -> str:
    return text[:length] + "..." if len(text) > length else text


class NotificationService:
    """Push fan-out plus notification history"""

    def __init__(self, store: DocumentStore, push_client: ExpoPushClient):
        self.store = store
        self.push = push_client

    # =========================================================================
    # Device tokens
    # =========================================================================

    def register_device_token(self, user_id: str, push_token: str) -> ServiceResult:
        if not user_id or not push_token:
            return fail(ErrorKind.VALIDATION, "user_id and push_token are required")
        try:
            self.store.update(USERS_COLLECTION, user_id, {
                "pushToken": push_token,
                "pushTokenUpdatedAt": timezone.now(),
            })
        except DocumentNotFound:
            return fail(ErrorKind.NOT_FOUND, f"User not found: {user_id}")
        except StoreError as e:
            logger.error(f"[PUSH] Error saving token for {user_id}: {e}")
            return fail(ErrorKind.REMOTE_WRITE, str(e))
        logger.info(f"[PUSH] Registered device token for {user_id}")
        return ok()

    def unregister_device_token(self, user_id: str) -> ServiceResult:
        try:
            self.store.update(USERS_COLLECTION, user_id, {"pushToken": DELETE_FIELD})
        except DocumentNotFound:
            return fail(ErrorKind.NOT_FOUND, f"User not found: {user_id}")
        except StoreError as e:
            return fail(ErrorKind.REMOTE_WRITE, str(e))
        return ok()

    # =========================================================================
    # Delivery
    # =========================================================================

    def _profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            return self.store.get(USERS_COLLECTION, user_id)
        except StoreError as e:
            logger.error(f"[PUSH] Error reading profile {user_id}: {e}")
            return None

    def _display_name(self, user_id: str) -> Optional[str]:
        profile = self._profile(user_id)
        if profile is None:
            return None
        return profile.get("displayName") or "Someone"

    def send_notification_to_user(
        self,
        user_id: str,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> ServiceResult:
        """Push to the user's registered device and record it in the history."""
        profile = self._profile(user_id)
        if profile is None:
            return fail(ErrorKind.NOT_FOUND, f"User not found: {user_id}")

        push_token = profile.get("pushToken")
        if not push_token:
            return fail(ErrorKind.VALIDATION, f"No push token registered for {user_id}")

        result = run_async(self.push.send(
            to=push_token,
            title=title,
            body=body,
            data=data or {},
            badge=1,
        ))
        if not result.success:
            logger.warning(f"[PUSH] Delivery to {user_id} failed: {result.error}")
            return fail(ErrorKind.REMOTE_WRITE, result.error or "push_failed")

        self.save_notification(user_id, title, body, data or {})
        return ok(result.ticket)

    def save_notification(self, user_id: str, title: str, body: str, data: Dict[str, Any]) -> Optional[str]:
        try:
            return self.store.create(NOTIFICATIONS_COLLECTION, {
                "userId": user_id,
                "title": title,
                "body": body,
                "data": data,
                "read": False,
                "createdAt": timezone.now(),
            })
        except StoreError as e:
            logger.error(f"[PUSH] Error saving notification history for {user_id}: {e}")
            return None

    def send_message_notification(self, sender_id: str, receiver_id: str, message: str, chat_id: str) -> ServiceResult:
        receiver = self._profile(receiver_id)
        if receiver is None:
            return fail(ErrorKind.NOT_FOUND, f"User not found: {receiver_id}")

        # Receiver is looking at this chat right now
        if receiver.get("activeChatId") == chat_id:
            return ok({"skipped": "active_chat"})
        if sender_id in (receiver.get("mutedUsers") or []):
            return ok({"skipped": "muted"})
        if sender_id in (receiver.get("blockedUsers") or []):
            return ok({"skipped": "blocked"})

        settings = notification_settings(receiver)
        if not settings["enabled"] or not settings["messageNotifications"]:
            return ok({"skipped": "disabled"})
        if in_quiet_hours(settings, timezone.localtime(timezone.now())):
            return ok({"skipped": "quiet_hours"})

        sender_name = self._display_name(sender_id)
        if sender_name is None:
            return fail(ErrorKind.NOT_FOUND, f"User not found: {sender_id}")

        body = truncate_preview(message) if settings["showPreview"] else "New message"
        return self.send_notification_to_user(
            receiver_id,
            f"New message from {sender_name}",
            body,
            {"type": "message", "chatId": chat_id, "senderId": sender_id},
        )

    def send_follow_notification(self, follower_id: str, followed_user_id: str) -> ServiceResult:
        settings = notification_settings(self._profile(followed_user_id))
        if not settings["enabled"] or not settings["followNotifications"]:
            return ok({"skipped": "disabled"})

        follower_name = self._display_name(follower_id)
        if follower_name is None:
            return fail(ErrorKind.NOT_FOUND, f"User not found: {follower_id}")

        return self.send_notification_to_user(
            followed_user_id,
            "New Follower",
            f"{follower_name} started following you",
            {"type": "follow", "userId": follower_id},
        )

    def send_call_notification(self, caller_id: str, receiver_id: str, call_type: str, call_id: str) -> ServiceResult:
        """High-priority incoming call push; not recorded in the history."""
        receiver = self._profile(receiver_id)
        if receiver is None:
            return fail(ErrorKind.NOT_FOUND, f"User not found: {receiver_id}")
        push_token = receiver.get("pushToken")
        if not push_token:
            return fail(ErrorKind.VALIDATION, f"No push token registered for {receiver_id}")

        caller_name = self._display_name(caller_id)
        if caller_name is None:
            return fail(ErrorKind.NOT_FOUND, f"User not found: {caller_id}")

        result = run_async(self.push.send(
            to=push_token,
            title=f"Incoming {'Video' if call_type == 'video' else 'Audio'} Call",
            body=f"{caller_name} is calling you...",
            data={
                "type": "call",
                "callId": call_id,
                "callerId": caller_id,
                "callType": call_type,
            },
            channel_id="calls",
            badge=1,
        ))
        if not result.success:
            return fail(ErrorKind.REMOTE_WRITE, result.error or "push_failed")
        return ok(result.ticket)

    def send_missed_call_notification(self, caller_id: str, receiver_id: str, call_type: str) -> ServiceResult:
        caller_name = self._display_name(caller_id)
        if caller_name is None:
            return fail(ErrorKind.NOT_FOUND, f"User not found: {caller_id}")

        return self.send_notification_to_user(
            receiver_id,
            "Missed Call",
            f"You missed a {'video' if call_type == 'video' else 'audio'} call from {caller_name}",
            {"type": "missedCall", "callerId": caller_id, "callType": call_type},
        )

    # =========================================================================
    # History
    # =========================================================================

    def get_user_notifications(self, user_id: str, limit: int = NOTIFICATION_HISTORY_LIMIT) -> ServiceResult:
        try:
            return ok(self.store.query(
                NOTIFICATIONS_COLLECTION,
                where=[("userId", "==", user_id)],
                order_by="createdAt",
                descending=True,
                limit=limit,
            ))
        except StoreError as e:
            return fail(ErrorKind.REMOTE_WRITE, str(e))

    def mark_as_read(self, notification_id: str) -> ServiceResult:
        try:
            self.store.update(NOTIFICATIONS_COLLECTION, notification_id, {
                "read": True,
                "readAt": timezone.now(),
            })
        except DocumentNotFound:
            return fail(ErrorKind.NOT_FOUND, f"Notification not found: {notification_id}")
        except StoreError as e:
            return fail(ErrorKind.REMOTE_WRITE, str(e))
        return ok()

    def mark_all_as_read(self, user_id: str) -> ServiceResult:
        try:
            unread = self.store.query(
                NOTIFICATIONS_COLLECTION,
                where=[("userId", "==", user_id), ("read", "==", False)],
            )
            if unread:
                batch = self.store.batch()
                read_at = timezone.now()
                for notification in unread:
                    batch.update(NOTIFICATIONS_COLLECTION, notification["id"], {"read": True, "readAt": read_at})
                batch.commit()
        except StoreError as e:
            return fail(ErrorKind.REMOTE_WRITE, str(e))
        return ok(len(unread))

    def get_unread_count(self, user_id: str) -> ServiceResult:
        try:
            unread = self.store.query(
                NOTIFICATIONS_COLLECTION,
                where=[("userId", "==", user_id), ("read", "==", False)],
            )
        except StoreError as e:
            return fail(ErrorKind.REMOTE_WRITE, str(e))
        return ok(len(unread))

    def listen_to_notifications(self, user_id: str, callback: Callable[[List[Dict[str, Any]]], None]) -> Subscription:
        return self.store.watch_query(
            NOTIFICATIONS_COLLECTION,
            callback,
            where=[("userId", "==", user_id)],
            order_by="createdAt",
            descending=True,
            limit=NOTIFICATION_LISTEN_LIMIT,
        )
