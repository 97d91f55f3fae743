from .health import health
from .token import token
from .calls import (
    call_initiate,
    call_answer,
    call_decline,
    call_end,
    call_missed,
    call_timeout_sweep,
    group_call_initiate,
    group_call_join,
    group_call_leave,
    group_call_decline,
    call_detail,
    call_history,
)
from .chats import chat_room, chat_group, chat_send, chat_read, chat_list, chat_messages
from .users import (
    user_create,
    user_profile,
    user_notification_settings,
    user_search,
    user_follow,
    user_unfollow,
    user_block,
    user_unblock,
    user_mute,
    user_unmute,
    user_report,
    user_delete,
)
from .notifications import (
    notification_register,
    notification_list,
    notification_read,
    notification_read_all,
)

__all__ = [
    "health",
    "token",
    "call_initiate",
    "call_answer",
    "call_decline",
    "call_end",
    "call_missed",
    "call_timeout_sweep",
    "group_call_initiate",
    "group_call_join",
    "group_call_leave",
    "group_call_decline",
    "call_detail",
    "call_history",
    "chat_room",
    "chat_group",
    "chat_send",
    "chat_read",
    "chat_list",
    "chat_messages",
    "user_create",
    "user_profile",
    "user_notification_settings",
    "user_search",
    "user_follow",
    "user_unfollow",
    "user_block",
    "user_unblock",
    "user_mute",
    "user_unmute",
    "user_report",
    "user_delete",
    "notification_register",
    "notification_list",
    "notification_read",
    "notification_read_all",
]
