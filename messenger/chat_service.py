"""
Messaging ledger.

Every message costs the sender coins and credits them to the receiver. The
debit, the credit, the message document and the chat summary update are
committed in one write batch. The balance check that precedes the batch is a
plain read, so two concurrent sends from the same account can both pass it.
"""
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from django.utils import timezone

from .constants import (
    CHATS_COLLECTION,
    MEDIA_MESSAGE_PREVIEW,
    MEDIA_TYPES,
    MESSAGES_COLLECTION,
    USERS_COLLECTION,
)
from .notification_service import NotificationService
from .results import ErrorKind, ServiceResult, fail, ok
from .store import DELETE_FIELD, DocumentNotFound, DocumentStore, Increment, StoreError, Subscription
from .utils import chat_id_for

logger = logging.getLogger("messenger")

DELETED_MESSAGE_TEXT = "This message was deleted"


class ChatService:
    """Chat rooms, coin-metered messages and unread counters"""

    def __init__(
        self,
        store: DocumentStore,
        notifications: Optional[NotificationService] = None,
        message_cost: int = 1,
    ):
        self.store = store
        self.notifications = notifications
        self.message_cost = message_cost

    # =========================================================================
    # Chat rooms
    # =========================================================================

    def get_or_create_chat_room(self, user_id_1: str, user_id_2: str) -> ServiceResult:
        if not user_id_1 or not user_id_2:
            return fail(ErrorKind.VALIDATION, "Both user ids are required")
        if user_id_1 == user_id_2:
            return fail(ErrorKind.VALIDATION, "Cannot open a chat with yourself")

        chat_id = chat_id_for(user_id_1, user_id_2)
        try:
            if self.store.get(CHATS_COLLECTION, chat_id) is None:
                now = timezone.now()
                self.store.set(CHATS_COLLECTION, chat_id, {
                    "participants": [user_id_1, user_id_2],
                    "isGroup": False,
                    "createdAt": now,
                    "lastMessage": "",
                    "lastMessageTime": now,
                    "unreadCount": {user_id_1: 0, user_id_2: 0},
                })
                logger.info(f"[CHAT] Created chat room {chat_id}")
        except StoreError as e:
            logger.error(f"[CHAT] Error creating chat room: {e}")
            return fail(ErrorKind.REMOTE_WRITE, str(e))
        return ok(chat_id)

    def create_group_chat(self, admin_id: str, group_name: str, member_ids: Iterable[str]) -> ServiceResult:
        group_name = (group_name or "").strip()
        members = [m for m in dict.fromkeys(member_ids or []) if m and m != admin_id]
        if not admin_id:
            return fail(ErrorKind.VALIDATION, "admin_id is required")
        if not group_name:
            return fail(ErrorKind.VALIDATION, "Please enter a group name")
        if not members:
            return fail(ErrorKind.VALIDATION, "Please select at least one member")

        participants = [admin_id] + members
        now = timezone.now()
        try:
            chat_id = self.store.create(CHATS_COLLECTION, {
                "participants": participants,
                "isGroup": True,
                "groupName": group_name,
                "groupPhoto": "",
                "admin": admin_id,
                "createdAt": now,
                "lastMessage": "",
                "lastMessageTime": now,
                "unreadCount": {uid: 0 for uid in participants},
            })
        except StoreError as e:
            logger.error(f"[CHAT] Error creating group chat: {e}")
            return fail(ErrorKind.REMOTE_WRITE, str(e))

        logger.info(f"[CHAT] Created group chat {chat_id} ({len(participants)} members)")
        return ok(chat_id)

    # =========================================================================
    # Ledger
    # =========================================================================

    def _check_balance(self, sender_id: str):
        """Returns (sender_profile, error_result)."""
        sender = self.store.get(USERS_COLLECTION, sender_id)
        if sender is None:
            return None, fail(ErrorKind.NOT_FOUND, f"User not found: {sender_id}")
        balance = sender.get("balanceCoins") or 0
        if balance < self.message_cost:
            logger.info(f"[LEDGER] {sender_id} has {balance} coins, send refused")
            return None, fail(
                ErrorKind.INSUFFICIENT_FUNDS,
                f"You need at least {self.message_cost} coin to send a message",
            )
        return sender, None

    def _send(
        self,
        chat_id: str,
        sender_id: str,
        receiver_id: str,
        fields: Dict[str, Any],
        preview: str,
    ) -> ServiceResult:
        if not chat_id or not sender_id or not receiver_id:
            return fail(ErrorKind.VALIDATION, "chat_id, sender_id and receiver_id are required")
        if sender_id == receiver_id:
            return fail(ErrorKind.VALIDATION, "Cannot send a message to yourself")

        try:
            sender, error = self._check_balance(sender_id)
            if error:
                return error

            receiver = self.store.get(USERS_COLLECTION, receiver_id)
            if receiver is None:
                return fail(ErrorKind.NOT_FOUND, f"User not found: {receiver_id}")
            if receiver_id in (sender.get("blockedUsers") or []):
                return fail(ErrorKind.VALIDATION, "You have blocked this user. Unblock them to send messages.")
            if sender_id in (receiver.get("blockedUsers") or []):
                return fail(ErrorKind.VALIDATION, "You cannot send messages to this user.")

            chat = self.store.get(CHATS_COLLECTION, chat_id)
            if chat is None:
                return fail(ErrorKind.NOT_FOUND, f"Chat not found: {chat_id}")
            participants = chat.get("participants") or []
            if sender_id not in participants:
                return fail(ErrorKind.VALIDATION, f"{sender_id} is not a participant of {chat_id}")
            if receiver_id not in participants:
                return fail(ErrorKind.VALIDATION, f"{receiver_id} is not a participant of {chat_id}")
            if not chat.get("isGroup") and chat_id != chat_id_for(sender_id, receiver_id):
                return fail(ErrorKind.VALIDATION, f"{chat_id} is not the chat between {sender_id} and {receiver_id}")

            now = timezone.now()
            batch = self.store.batch()
            batch.update(USERS_COLLECTION, sender_id, {"balanceCoins": Increment(-self.message_cost)})
            batch.update(USERS_COLLECTION, receiver_id, {"balanceCoins": Increment(self.message_cost)})
            message_id = batch.create(MESSAGES_COLLECTION, {
                "chatId": chat_id,
                "senderId": sender_id,
                "receiverId": receiver_id,
                "timestamp": now,
                "read": False,
                **fields,
            })
            batch.update(CHATS_COLLECTION, chat_id, {
                "lastMessage": preview,
                "lastMessageTime": now,
                "lastSenderId": sender_id,
                f"unreadCount.{receiver_id}": Increment(1),
            })
            batch.commit()
        except StoreError as e:
            logger.error(f"[LEDGER] Send in {chat_id} failed: {e}")
            return fail(ErrorKind.REMOTE_WRITE, str(e))

        balance = (sender.get("balanceCoins") or 0) - self.message_cost
        logger.info(f"[LEDGER] {sender_id} -> {receiver_id} in {chat_id}: message {message_id}, balance {balance}")

        if self.notifications is not None:
            push = self.notifications.send_message_notification(sender_id, receiver_id, preview, chat_id)
            if not push.success:
                logger.warning(f"[LEDGER] Message push failed: {push.error}")

        return ok({"messageId": message_id, "balance": balance})

    def send_message(self, chat_id: str, sender_id: str, receiver_id: str, text: str) -> ServiceResult:
        """Send a text message, moving one coin from sender to receiver."""
        text = (text or "").strip()
        if not text:
            return fail(ErrorKind.VALIDATION, "Message text is required")
        return self._send(chat_id, sender_id, receiver_id, {"type": "text", "message": text}, text)

    def send_reply_message(
        self,
        chat_id: str,
        sender_id: str,
        receiver_id: str,
        text: str,
        reply_to: Dict[str, Any],
    ) -> ServiceResult:
        text = (text or "").strip()
        if not text:
            return fail(ErrorKind.VALIDATION, "Message text is required")
        if not reply_to or not reply_to.get("id"):
            return fail(ErrorKind.VALIDATION, "reply_to must reference a message")
        quoted = {
            "id": reply_to["id"],
            "message": reply_to.get("message", ""),
            "senderId": reply_to.get("senderId"),
        }
        return self._send(chat_id, sender_id, receiver_id, {"type": "text", "message": text, "replyTo": quoted}, text)

    def send_media_message(
        self,
        chat_id: str,
        sender_id: str,
        receiver_id: str,
        media_url: str,
        media_type: str,
        caption: str = "",
    ) -> ServiceResult:
        """Send a message pointing at media already stored on the relay."""
        if not media_url:
            return fail(ErrorKind.VALIDATION, "media_url is required")
        if media_type not in MEDIA_TYPES:
            return fail(ErrorKind.VALIDATION, f"Invalid media type: {media_type}")
        preview = MEDIA_MESSAGE_PREVIEW[media_type]
        fields = {
            "type": media_type,
            "mediaUrl": media_url,
            "message": caption or preview,
        }
        return self._send(chat_id, sender_id, receiver_id, fields, preview)

    def send_group_message(self, chat_id: str, sender_id: str, text: str) -> ServiceResult:
        """Debit the sender once; every other member gets an unread bump, nobody is credited."""
        text = (text or "").strip()
        if not text:
            return fail(ErrorKind.VALIDATION, "Message text is required")

        try:
            chat = self.store.get(CHATS_COLLECTION, chat_id)
            if chat is None:
                return fail(ErrorKind.NOT_FOUND, f"Chat not found: {chat_id}")
            if not chat.get("isGroup"):
                return fail(ErrorKind.VALIDATION, f"{chat_id} is not a group chat")
            participants = chat.get("participants") or []
            if sender_id not in participants:
                return fail(ErrorKind.VALIDATION, f"{sender_id} is not a participant of {chat_id}")

            sender, error = self._check_balance(sender_id)
            if error:
                return error

            others = [uid for uid in participants if uid != sender_id]
            now = timezone.now()
            batch = self.store.batch()
            batch.update(USERS_COLLECTION, sender_id, {"balanceCoins": Increment(-self.message_cost)})
            message_id = batch.create(MESSAGES_COLLECTION, {
                "chatId": chat_id,
                "senderId": sender_id,
                "receiverId": None,
                "type": "text",
                "message": text,
                "timestamp": now,
                "read": False,
            })
            summary = {
                "lastMessage": text,
                "lastMessageTime": now,
                "lastSenderId": sender_id,
            }
            for uid in others:
                summary[f"unreadCount.{uid}"] = Increment(1)
            batch.update(CHATS_COLLECTION, chat_id, summary)
            batch.commit()
        except StoreError as e:
            logger.error(f"[LEDGER] Group send in {chat_id} failed: {e}")
            return fail(ErrorKind.REMOTE_WRITE, str(e))

        if self.notifications is not None:
            for uid in others:
                self.notifications.send_message_notification(sender_id, uid, text, chat_id)

        return ok({"messageId": message_id, "balance": (sender.get("balanceCoins") or 0) - self.message_cost})

    # =========================================================================
    # Read state, edits, reactions, typing
    # =========================================================================

    def mark_as_read(self, chat_id: str, user_id: str) -> ServiceResult:
        """Reset the user's unread counter on the chat summary."""
        try:
            self.store.update(CHATS_COLLECTION, chat_id, {f"unreadCount.{user_id}": 0})
        except DocumentNotFound:
            return fail(ErrorKind.NOT_FOUND, f"Chat not found: {chat_id}")
        except StoreError as e:
            return fail(ErrorKind.REMOTE_WRITE, str(e))
        return ok()

    def mark_messages_as_seen(self, chat_id: str, user_id: str) -> ServiceResult:
        try:
            unread = self.store.query(
                MESSAGES_COLLECTION,
                where=[("chatId", "==", chat_id), ("receiverId", "==", user_id), ("read", "==", False)],
            )
            if unread:
                batch = self.store.batch()
                seen_at = timezone.now()
                for message in unread:
                    batch.update(MESSAGES_COLLECTION, message["id"], {"read": True, "readAt": seen_at})
                batch.commit()
        except StoreError as e:
            return fail(ErrorKind.REMOTE_WRITE, str(e))
        return ok(len(unread))

    def _update_message(self, message_id: str, data: Dict[str, Any]) -> ServiceResult:
        try:
            self.store.update(MESSAGES_COLLECTION, message_id, data)
        except DocumentNotFound:
            return fail(ErrorKind.NOT_FOUND, f"Message not found: {message_id}")
        except StoreError as e:
            return fail(ErrorKind.REMOTE_WRITE, str(e))
        return ok()

    def edit_message(self, message_id: str, text: str) -> ServiceResult:
        text = (text or "").strip()
        if not text:
            return fail(ErrorKind.VALIDATION, "Message text is required")
        return self._update_message(message_id, {"message": text, "edited": True, "editedAt": timezone.now()})

    def delete_message(self, message_id: str, chat_id: str) -> ServiceResult:
        """Soft delete: the document stays, its text is replaced."""
        return self._update_message(message_id, {
            "message": DELETED_MESSAGE_TEXT,
            "mediaUrl": DELETE_FIELD,
            "deleted": True,
            "deletedAt": timezone.now(),
        })

    def add_reaction(self, message_id: str, user_id: str, reaction: str) -> ServiceResult:
        if not reaction:
            return self._update_message(message_id, {f"reactions.{user_id}": DELETE_FIELD})
        return self._update_message(message_id, {f"reactions.{user_id}": reaction})

    def set_typing_status(self, chat_id: str, user_id: str, is_typing: bool) -> ServiceResult:
        value = timezone.now() if is_typing else DELETE_FIELD
        try:
            self.store.update(CHATS_COLLECTION, chat_id, {f"typing.{user_id}": value})
        except DocumentNotFound:
            return fail(ErrorKind.NOT_FOUND, f"Chat not found: {chat_id}")
        except StoreError as e:
            return fail(ErrorKind.REMOTE_WRITE, str(e))
        return ok()

    # =========================================================================
    # Reads and listeners
    # =========================================================================

    def get_messages(self, chat_id: str) -> ServiceResult:
        try:
            return ok(self.store.query(MESSAGES_COLLECTION, where=[("chatId", "==", chat_id)], order_by="timestamp"))
        except StoreError as e:
            return fail(ErrorKind.REMOTE_WRITE, str(e))

    def _hydrate_chats(self, user_id: str, chats: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Attach the other participant's profile; one profile read per chat."""
        hydrated = []
        for chat in chats:
            entry = {"chatId": chat["id"], **chat}
            if not chat.get("isGroup"):
                other_id = next((uid for uid in chat.get("participants") or [] if uid != user_id), None)
                profile = self.store.get(USERS_COLLECTION, other_id) if other_id else None
                entry["otherUser"] = {**(profile or {}), "id": other_id}
            hydrated.append(entry)
        return hydrated

    def get_chat_list(self, user_id: str) -> ServiceResult:
        try:
            chats = self.store.query(
                CHATS_COLLECTION,
                where=[("participants", "array_contains", user_id)],
                order_by="lastMessageTime",
                descending=True,
            )
            return ok(self._hydrate_chats(user_id, chats))
        except StoreError as e:
            return fail(ErrorKind.REMOTE_WRITE, str(e))

    def listen_to_messages(self, chat_id: str, callback: Callable[[List[Dict[str, Any]]], None]) -> Subscription:
        return self.store.watch_query(
            MESSAGES_COLLECTION,
            callback,
            where=[("chatId", "==", chat_id)],
            order_by="timestamp",
        )

    def listen_to_chat_list(self, user_id: str, callback: Callable[[List[Dict[str, Any]]], None]) -> Subscription:
        def _deliver(chats):
            try:
                callback(self._hydrate_chats(user_id, chats))
            except StoreError as e:
                logger.error(f"[CHAT] Could not hydrate chat list for {user_id}: {e}")

        return self.store.watch_query(
            CHATS_COLLECTION,
            _deliver,
            where=[("participants", "array_contains", user_id)],
            order_by="lastMessageTime",
            descending=True,
        )

    def listen_to_typing_status(self, chat_id: str, callback: Callable[[Dict[str, Any]], None]) -> Subscription:
        def _deliver(chat):
            callback((chat or {}).get("typing") or {})

        return self.store.watch_document(CHATS_COLLECTION, chat_id, _deliver)
