from django.urls import path
from . import views

urlpatterns = [
    # Health check
    path("health", views.health, name="health"),

    # Agora token
    path("token", views.token, name="token"),

    # Calls
    path("calls/initiate", views.call_initiate, name="call_initiate"),
    path("calls/answer", views.call_answer, name="call_answer"),
    path("calls/decline", views.call_decline, name="call_decline"),
    path("calls/end", views.call_end, name="call_end"),
    path("calls/missed", views.call_missed, name="call_missed"),
    path("calls/timeout/sweep", views.call_timeout_sweep, name="call_timeout_sweep"),
    path("calls/group/initiate", views.group_call_initiate, name="group_call_initiate"),
    path("calls/group/join", views.group_call_join, name="group_call_join"),
    path("calls/group/leave", views.group_call_leave, name="group_call_leave"),
    path("calls/group/decline", views.group_call_decline, name="group_call_decline"),
    path("calls/history/<str:user_id>", views.call_history, name="call_history"),
    path("calls/<str:call_id>", views.call_detail, name="call_detail"),

    # Chats (every message costs the sender one coin)
    path("chats/room", views.chat_room, name="chat_room"),
    path("chats/group", views.chat_group, name="chat_group"),
    path("chats/send", views.chat_send, name="chat_send"),
    path("chats/read", views.chat_read, name="chat_read"),
    path("chats/user/<str:user_id>", views.chat_list, name="chat_list"),
    path("chats/<str:chat_id>/messages", views.chat_messages, name="chat_messages"),

    # Users
    path("users/create", views.user_create, name="user_create"),
    path("users/search", views.user_search, name="user_search"),
    path("users/follow", views.user_follow, name="user_follow"),
    path("users/unfollow", views.user_unfollow, name="user_unfollow"),
    path("users/block", views.user_block, name="user_block"),
    path("users/unblock", views.user_unblock, name="user_unblock"),
    path("users/mute", views.user_mute, name="user_mute"),
    path("users/unmute", views.user_unmute, name="user_unmute"),
    path("users/report", views.user_report, name="user_report"),
    path("users/<str:user_id>/delete", views.user_delete, name="user_delete"),
    path(
        "users/<str:user_id>/notification-settings",
        views.user_notification_settings,
        name="user_notification_settings",
    ),
    path("users/<str:user_id>", views.user_profile, name="user_profile"),

    # Notifications
    # Device tokens are registered per user; history is kept in the store
    path("notifications/register", views.notification_register, name="notification_register"),
    path("notifications/<str:notification_id>/read", views.notification_read, name="notification_read"),
    path("notifications/<str:user_id>/read-all", views.notification_read_all, name="notification_read_all"),
    path("notifications/<str:user_id>", views.notification_list, name="notification_list"),
]
