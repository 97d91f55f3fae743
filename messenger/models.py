# App data lives in the document store (Firestore), not the Django database.
# This module exists so messenger is a regular Django app.
#
# Collections:
# - users/{uid}: profile, balanceCoins, followers/following, blockedUsers,
#   mutedUsers, pushToken, notificationSettings, activeChatId
# - chats/{chatId}: participants, lastMessage, lastMessageTime, unreadCount.{uid}
# - messages/{messageId}: chatId, senderId, receiverId, type, message, timestamp
# - calls/{callId}: status (ringing/active/ended/declined/missed), timestamps
# - gallery_posts/{postId}, notifications/{id}, reports/{id}
#
# See store.py for the store interface and firebase_service.py for Firestore.
