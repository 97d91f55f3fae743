"""
Profiles, presence, the follow graph and per-user moderation lists.
"""
import logging
from typing import Any, Dict, List, Optional

from django.utils import timezone

from .constants import (
    DEFAULT_NOTIFICATION_SETTINGS,
    DEFAULT_STATUS_LINE,
    EDITABLE_PROFILE_FIELDS,
    GALLERY_MEDIA_TYPES,
    GALLERY_POSTS_COLLECTION,
    QUIET_HOURS_SETTINGS,
    REPORTS_COLLECTION,
    USERS_COLLECTION,
)
from .notification_service import NotificationService, notification_settings
from .results import ErrorKind, ServiceResult, fail, ok
from .store import (
    ArrayRemove,
    ArrayUnion,
    DELETE_FIELD,
    DocumentExists,
    DocumentNotFound,
    DocumentStore,
    StoreError,
)
from .utils import parse_hhmm

logger = logging.getLogger("messenger")

DELETED_DISPLAY_NAME = "Deleted User"


class UserService:
    """User profile glue around the users collection"""

    def __init__(
        self,
        store: DocumentStore,
        notifications: Optional[NotificationService] = None,
        initial_coins: int = 300,
    ):
        self.store = store
        self.notifications = notifications
        self.initial_coins = initial_coins

    def _update(self, user_id: str, data: Dict[str, Any]) -> ServiceResult:
        try:
            self.store.update(USERS_COLLECTION, user_id, data)
        except DocumentNotFound:
            return fail(ErrorKind.NOT_FOUND, f"User not found: {user_id}")
        except StoreError as e:
            logger.error(f"[USER] Error updating {user_id}: {e}")
            return fail(ErrorKind.REMOTE_WRITE, str(e))
        return ok()

    def _list_field(self, user_id: str, field: str) -> ServiceResult:
        try:
            profile = self.store.get(USERS_COLLECTION, user_id)
        except StoreError as e:
            return fail(ErrorKind.REMOTE_WRITE, str(e))
        if profile is None:
            return fail(ErrorKind.NOT_FOUND, f"User not found: {user_id}")
        return ok(list(profile.get(field) or []))

    def _hydrate(self, user_ids: List[str]) -> List[Dict[str, Any]]:
        profiles = []
        for uid in user_ids:
            profile = self.store.get(USERS_COLLECTION, uid)
            if profile is not None:
                profiles.append(profile)
        return profiles

    # =========================================================================
    # Profile
    # =========================================================================

    def create_profile(self, user_id: str, email: str, display_name: str, is_guest: bool = False) -> ServiceResult:
        """Create the profile document for a freshly signed-up account."""
        if not user_id:
            return fail(ErrorKind.VALIDATION, "user_id is required")
        display_name = (display_name or "").strip()
        if not display_name:
            return fail(ErrorKind.VALIDATION, "display_name is required")

        now = timezone.now()
        profile = {
            "uid": user_id,
            "email": email or "",
            "displayName": display_name,
            "photoURL": "",
            "bio": "",
            "status": DEFAULT_STATUS_LINE,
            "isGuest": is_guest,
            "balanceCoins": self.initial_coins,
            "followers": [],
            "following": [],
            "blockedUsers": [],
            "mutedUsers": [],
            "isOnline": True,
            "lastSeen": now,
            "createdAt": now,
        }
        try:
            self.store.create(USERS_COLLECTION, profile, doc_id=user_id)
        except DocumentExists:
            logger.warning(f"[USER] Profile {user_id} already exists, not recreating")
            return fail(ErrorKind.VALIDATION, "Profile already exists")
        except StoreError as e:
            logger.error(f"[USER] Error creating profile {user_id}: {e}")
            return fail(ErrorKind.REMOTE_WRITE, str(e))

        logger.info(f"[USER] Created profile {user_id} with {self.initial_coins} coins")
        return ok(profile)

    def get_user_profile(self, user_id: str) -> ServiceResult:
        try:
            profile = self.store.get(USERS_COLLECTION, user_id)
        except StoreError as e:
            return fail(ErrorKind.REMOTE_WRITE, str(e))
        if profile is None:
            return fail(ErrorKind.NOT_FOUND, f"User not found: {user_id}")
        return ok(profile)

    def update_user_profile(self, user_id: str, updates: Dict[str, Any]) -> ServiceResult:
        rejected = sorted(set(updates or {}) - EDITABLE_PROFILE_FIELDS)
        if rejected:
            return fail(ErrorKind.VALIDATION, f"Fields cannot be edited: {', '.join(rejected)}")
        if not updates:
            return fail(ErrorKind.VALIDATION, "No fields to update")
        if "displayName" in updates and not str(updates["displayName"]).strip():
            return fail(ErrorKind.VALIDATION, "displayName cannot be empty")
        return self._update(user_id, {**updates, "updatedAt": timezone.now()})

    def search_users(self, term: str) -> ServiceResult:
        term = (term or "").strip().lower()
        if not term:
            return ok([])
        try:
            users = self.store.query(USERS_COLLECTION)
        except StoreError as e:
            return fail(ErrorKind.REMOTE_WRITE, str(e))
        return ok([
            user for user in users
            if not user.get("deleted") and term in (user.get("displayName") or "").lower()
        ])

    def get_all_users(self) -> ServiceResult:
        try:
            users = self.store.query(USERS_COLLECTION)
        except StoreError as e:
            return fail(ErrorKind.REMOTE_WRITE, str(e))
        return ok([user for user in users if not user.get("deleted")])

    def update_online_status(self, user_id: str, is_online: bool) -> ServiceResult:
        return self._update(user_id, {"isOnline": bool(is_online), "lastSeen": timezone.now()})

    def set_active_chat(self, user_id: str, chat_id: Optional[str]) -> ServiceResult:
        """Record which chat the user has open; message pushes for it are suppressed."""
        return self._update(user_id, {"activeChatId": chat_id})

    def get_notification_settings(self, user_id: str) -> ServiceResult:
        profile = self.get_user_profile(user_id)
        if not profile.success:
            return profile
        return ok(notification_settings(profile.value))

    def update_notification_settings(self, user_id: str, updates: Dict[str, Any]) -> ServiceResult:
        """
        Change push preferences.

        Toggles must be booleans. muteFrom/muteTo take "HH:MM" or None to clear
        the quiet-hours window. Only the given keys are written.
        """
        if not isinstance(updates, dict) or not updates:
            return fail(ErrorKind.VALIDATION, "No settings to update")
        unknown = sorted(set(updates) - set(DEFAULT_NOTIFICATION_SETTINGS))
        if unknown:
            return fail(ErrorKind.VALIDATION, f"Unknown notification settings: {', '.join(unknown)}")

        fields = {}
        for key, value in updates.items():
            if key in QUIET_HOURS_SETTINGS:
                if value is not None:
                    try:
                        parse_hhmm(value)
                    except ValueError:
                        return fail(ErrorKind.VALIDATION, f"{key} must be HH:MM")
            elif not isinstance(value, bool):
                return fail(ErrorKind.VALIDATION, f"{key} must be true or false")
            fields[f"notificationSettings.{key}"] = value

        result = self._update(user_id, fields)
        if result.success:
            logger.info(f"[USER] {user_id} notification settings: {sorted(updates)}")
        return result

    # =========================================================================
    # Follow graph
    # =========================================================================

    def _follow_pair(self, follower_id: str, followed_id: str, op) -> ServiceResult:
        if not follower_id or not followed_id:
            return fail(ErrorKind.VALIDATION, "Both user ids are required")
        if follower_id == followed_id:
            return fail(ErrorKind.VALIDATION, "You cannot follow yourself")
        try:
            batch = self.store.batch()
            batch.update(USERS_COLLECTION, follower_id, {"following": op([followed_id])})
            batch.update(USERS_COLLECTION, followed_id, {"followers": op([follower_id])})
            batch.commit()
        except DocumentNotFound as e:
            return fail(ErrorKind.NOT_FOUND, str(e))
        except StoreError as e:
            logger.error(f"[FOLLOW] Error updating {follower_id} -> {followed_id}: {e}")
            return fail(ErrorKind.REMOTE_WRITE, str(e))
        return ok()

    def follow_user(self, follower_id: str, followed_id: str) -> ServiceResult:
        result = self._follow_pair(follower_id, followed_id, ArrayUnion)
        if result.success:
            logger.info(f"[FOLLOW] {follower_id} follows {followed_id}")
            if self.notifications is not None:
                push = self.notifications.send_follow_notification(follower_id, followed_id)
                if not push.success:
                    logger.warning(f"[FOLLOW] Follow push failed: {push.error}")
        return result

    def unfollow_user(self, follower_id: str, followed_id: str) -> ServiceResult:
        result = self._follow_pair(follower_id, followed_id, ArrayRemove)
        if result.success:
            logger.info(f"[FOLLOW] {follower_id} unfollowed {followed_id}")
        return result

    def is_following(self, follower_id: str, followed_id: str) -> ServiceResult:
        following = self._list_field(follower_id, "following")
        if not following.success:
            return following
        return ok(followed_id in following.value)

    def get_followers(self, user_id: str) -> ServiceResult:
        ids = self._list_field(user_id, "followers")
        if not ids.success:
            return ids
        try:
            return ok(self._hydrate(ids.value))
        except StoreError as e:
            return fail(ErrorKind.REMOTE_WRITE, str(e))

    def get_following(self, user_id: str) -> ServiceResult:
        ids = self._list_field(user_id, "following")
        if not ids.success:
            return ids
        try:
            return ok(self._hydrate(ids.value))
        except StoreError as e:
            return fail(ErrorKind.REMOTE_WRITE, str(e))

    # =========================================================================
    # Block / mute
    # =========================================================================

    def _toggle_list(self, user_id: str, target_id: str, field: str, op) -> ServiceResult:
        if not user_id or not target_id:
            return fail(ErrorKind.VALIDATION, "Both user ids are required")
        if user_id == target_id:
            return fail(ErrorKind.VALIDATION, "Cannot apply this to yourself")
        result = self._update(user_id, {field: op([target_id])})
        if result.success:
            logger.info(f"[USER] {user_id} {field}: {op.__name__} {target_id}")
        return result

    def block_user(self, user_id: str, target_id: str) -> ServiceResult:
        return self._toggle_list(user_id, target_id, "blockedUsers", ArrayUnion)

    def unblock_user(self, user_id: str, target_id: str) -> ServiceResult:
        return self._toggle_list(user_id, target_id, "blockedUsers", ArrayRemove)

    def mute_user(self, user_id: str, target_id: str) -> ServiceResult:
        return self._toggle_list(user_id, target_id, "mutedUsers", ArrayUnion)

    def unmute_user(self, user_id: str, target_id: str) -> ServiceResult:
        return self._toggle_list(user_id, target_id, "mutedUsers", ArrayRemove)

    def is_user_blocked(self, user_id: str, target_id: str) -> ServiceResult:
        blocked = self._list_field(user_id, "blockedUsers")
        if not blocked.success:
            return blocked
        return ok(target_id in blocked.value)

    def is_user_muted(self, user_id: str, target_id: str) -> ServiceResult:
        muted = self._list_field(user_id, "mutedUsers")
        if not muted.success:
            return muted
        return ok(target_id in muted.value)

    def get_blocked_users(self, user_id: str) -> ServiceResult:
        ids = self._list_field(user_id, "blockedUsers")
        if not ids.success:
            return ids
        try:
            return ok(self._hydrate(ids.value))
        except StoreError as e:
            return fail(ErrorKind.REMOTE_WRITE, str(e))

    def report_user(self, reporter_id: str, reported_id: str, reason: str) -> ServiceResult:
        reason = (reason or "").strip()
        if not reporter_id or not reported_id or not reason:
            return fail(ErrorKind.VALIDATION, "reporter, reported user and reason are required")
        try:
            report_id = self.store.create(REPORTS_COLLECTION, {
                "reporterId": reporter_id,
                "reportedUserId": reported_id,
                "reason": reason,
                "status": "pending",
                "timestamp": timezone.now(),
            })
        except StoreError as e:
            return fail(ErrorKind.REMOTE_WRITE, str(e))
        logger.info(f"[REPORT] {reporter_id} reported {reported_id} ({report_id})")
        return ok(report_id)

    # =========================================================================
    # Gallery
    # =========================================================================

    def create_gallery_post(self, user_id: str, media_url: str, media_type: str, caption: str = "") -> ServiceResult:
        """Record metadata for media already uploaded to the relay gallery."""
        if not user_id or not media_url:
            return fail(ErrorKind.VALIDATION, "user_id and media_url are required")
        if media_type not in GALLERY_MEDIA_TYPES:
            return fail(ErrorKind.VALIDATION, f"Invalid gallery media type: {media_type}")
        try:
            post_id = self.store.create(GALLERY_POSTS_COLLECTION, {
                "userId": user_id,
                "mediaUrl": media_url,
                "mediaType": media_type,
                "caption": caption or "",
                "likes": [],
                "timestamp": timezone.now(),
            })
        except StoreError as e:
            return fail(ErrorKind.REMOTE_WRITE, str(e))
        return ok(post_id)

    def get_user_gallery_posts(self, user_id: str) -> ServiceResult:
        try:
            return ok(self.store.query(
                GALLERY_POSTS_COLLECTION,
                where=[("userId", "==", user_id)],
                order_by="timestamp",
                descending=True,
            ))
        except StoreError as e:
            return fail(ErrorKind.REMOTE_WRITE, str(e))

    def delete_gallery_post(self, post_id: str) -> ServiceResult:
        # Only the metadata goes; the relay keeps the file
        try:
            if self.store.get(GALLERY_POSTS_COLLECTION, post_id) is None:
                return fail(ErrorKind.NOT_FOUND, f"Gallery post not found: {post_id}")
            self.store.delete(GALLERY_POSTS_COLLECTION, post_id)
        except StoreError as e:
            return fail(ErrorKind.REMOTE_WRITE, str(e))
        return ok()

    # =========================================================================
    # Account
    # =========================================================================

    def delete_account(self, user_id: str) -> ServiceResult:
        """
        Soft-delete the profile.

        Personal fields are overwritten and the push token removed. Chats,
        messages and the follow lists of other users are left as they are.
        """
        result = self._update(user_id, {
            "displayName": DELETED_DISPLAY_NAME,
            "email": "",
            "photoURL": "",
            "bio": "",
            "status": "",
            "pushToken": DELETE_FIELD,
            "isOnline": False,
            "deleted": True,
            "deletedAt": timezone.now(),
        })
        if result.success:
            logger.info(f"[USER] Account {user_id} soft-deleted")
        return result
