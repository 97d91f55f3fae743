DEFAULT_TOKEN_EXPIRE_SECONDS = 86400
MAX_TOKEN_EXPIRE_SECONDS = 86400

ROLE_PUBLISHER = 1
ROLE_SUBSCRIBER = 2

# Collection names
USERS_COLLECTION = "users"
CHATS_COLLECTION = "chats"
MESSAGES_COLLECTION = "messages"
CALLS_COLLECTION = "calls"
GALLERY_POSTS_COLLECTION = "gallery_posts"
NOTIFICATIONS_COLLECTION = "notifications"
REPORTS_COLLECTION = "reports"

# Call statuses
CALL_RINGING = "ringing"
CALL_ACTIVE = "active"
CALL_ENDED = "ended"
CALL_MISSED = "missed"
CALL_DECLINED = "declined"

TERMINAL_CALL_STATUSES = frozenset({CALL_ENDED, CALL_MISSED, CALL_DECLINED})

CALL_TRANSITIONS = {
    CALL_RINGING: frozenset({CALL_ACTIVE, CALL_DECLINED, CALL_MISSED, CALL_ENDED}),
    CALL_ACTIVE: frozenset({CALL_ENDED}),
    CALL_ENDED: frozenset(),
    CALL_MISSED: frozenset(),
    CALL_DECLINED: frozenset(),
}

CALL_TYPES = frozenset({"video", "audio"})

# Group call participant statuses
PARTICIPANT_RINGING = "ringing"
PARTICIPANT_JOINED = "joined"
PARTICIPANT_LEFT = "left"
PARTICIPANT_DECLINED = "declined"

PRESENT_PARTICIPANT_STATUSES = frozenset({PARTICIPANT_RINGING, PARTICIPANT_JOINED})

MEDIA_TYPES = frozenset({"image", "video", "audio", "file"})

MEDIA_MESSAGE_PREVIEW = {
    "image": "📷 Photo",
    "video": "🎥 Video",
    "audio": "🎤 Voice message",
    "file": "📎 File",
}

GALLERY_MEDIA_TYPES = frozenset({"image", "video"})

EDITABLE_PROFILE_FIELDS = frozenset({"displayName", "bio", "status", "photoURL"})

DEFAULT_STATUS_LINE = "Hey there! I am using Harborchat"

DEFAULT_NOTIFICATION_SETTINGS = {
    "enabled": True,
    "sound": True,
    "vibration": True,
    "messageNotifications": True,
    "followNotifications": True,
    "likeNotifications": True,
    "commentNotifications": True,
    "showPreview": True,
    "muteFrom": None,
    "muteTo": None,
}

QUIET_HOURS_SETTINGS = frozenset({"muteFrom", "muteTo"})

MESSAGE_PREVIEW_LENGTH = 50
NOTIFICATION_HISTORY_LIMIT = 20
NOTIFICATION_LISTEN_LIMIT = 50
