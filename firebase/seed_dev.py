"""
Firestore seed script (development)
Run with: FIREBASE_USE_EMULATOR=true python3 firebase/seed_dev.py [--reset]

Seeds three users, one chat with a short conversation, a follow pair and an
ended call. Coin balances match the seeded messages (one coin per message).
Against a real project the script refuses to run without --confirm-prod.
"""

import json
import os
import sys
from datetime import datetime, timedelta, timezone

import firebase_admin
from firebase_admin import credentials, firestore

INITIAL_COINS = 300

USERS = [
    {"uid": "alice", "displayName": "Alice", "email": "alice@example.com"},
    {"uid": "bob", "displayName": "Bob", "email": "bob@example.com"},
    {"uid": "carol", "displayName": "Carol", "email": "carol@example.com"},
]

CONVERSATION = [
    ("alice", "bob", "Hey Bob!"),
    ("bob", "alice", "Hi Alice, how are you?"),
    ("alice", "bob", "Good, want to call later?"),
]


def _init_firebase():
    project_id = os.environ.get("FIREBASE_PROJECT_ID", "demo-harborchat")

    if os.environ.get("FIREBASE_USE_EMULATOR", "").lower() == "true":
        os.environ.setdefault("FIRESTORE_EMULATOR_HOST", "localhost:8080")
        firebase_admin.initialize_app(options={"projectId": project_id})
        return

    if "--confirm-prod" not in sys.argv:
        print("Not using the emulator. Pass --confirm-prod to seed a real project.", file=sys.stderr)
        sys.exit(1)

    service_account_json = os.environ.get("FIREBASE_SERVICE_ACCOUNT")
    service_account_path = os.environ.get("FIREBASE_SERVICE_ACCOUNT_PATH")

    if service_account_json:
        try:
            cred = credentials.Certificate(json.loads(service_account_json))
        except json.JSONDecodeError as exc:
            print(f"Invalid FIREBASE_SERVICE_ACCOUNT JSON: {exc}", file=sys.stderr)
            sys.exit(1)
    elif service_account_path and os.path.exists(service_account_path):
        cred = credentials.Certificate(service_account_path)
    else:
        print("Provide FIREBASE_SERVICE_ACCOUNT or FIREBASE_SERVICE_ACCOUNT_PATH.", file=sys.stderr)
        sys.exit(1)

    firebase_admin.initialize_app(cred, options={"projectId": project_id})


def _clear_collection(collection_ref):
    for doc in collection_ref.stream():
        doc.reference.delete()


def clear_all(db):
    print("🧹 Clearing Firestore data...")
    for name in ("users", "chats", "messages", "calls", "gallery_posts", "notifications", "reports"):
        _clear_collection(db.collection(name))
    print("✅ Clear completed")


def _balances():
    balances = {user["uid"]: INITIAL_COINS for user in USERS}
    for sender, receiver, _ in CONVERSATION:
        balances[sender] -= 1
        balances[receiver] += 1
    return balances


def seed(db):
    print("🌱 Seeding Firestore (development)...")
    now = datetime.now(timezone.utc)
    balances = _balances()

    for user in USERS:
        following = ["bob"] if user["uid"] == "alice" else []
        followers = ["alice"] if user["uid"] == "bob" else []
        db.collection("users").document(user["uid"]).set({
            **user,
            "photoURL": "",
            "bio": "",
            "status": "Hey there! I am using Harborchat",
            "isGuest": False,
            "balanceCoins": balances[user["uid"]],
            "followers": followers,
            "following": following,
            "blockedUsers": [],
            "mutedUsers": [],
            "isOnline": False,
            "lastSeen": now,
            "createdAt": now - timedelta(days=7),
        })
    print(f"  users: {', '.join(u['uid'] for u in USERS)}")

    chat_id = "alice_bob"
    sent_at = now - timedelta(minutes=len(CONVERSATION))
    unread = {"alice": 0, "bob": 0}
    for index, (sender, receiver, text) in enumerate(CONVERSATION):
        db.collection("messages").add({
            "chatId": chat_id,
            "senderId": sender,
            "receiverId": receiver,
            "type": "text",
            "message": text,
            "timestamp": sent_at + timedelta(minutes=index),
            "read": index < len(CONVERSATION) - 1,
        })
    last_sender, last_receiver, last_text = CONVERSATION[-1]
    unread[last_receiver] = 1

    db.collection("chats").document(chat_id).set({
        "participants": ["alice", "bob"],
        "isGroup": False,
        "createdAt": sent_at,
        "lastMessage": last_text,
        "lastMessageTime": sent_at + timedelta(minutes=len(CONVERSATION) - 1),
        "lastSenderId": last_sender,
        "unreadCount": unread,
    })
    print(f"  chat: {chat_id} ({len(CONVERSATION)} messages)")

    call_ref = db.collection("calls").document()
    started = now - timedelta(hours=1)
    call_ref.set({
        "callId": call_ref.id,
        "channelName": call_ref.id,
        "callerId": "alice",
        "receiverId": "bob",
        "callType": "video",
        "isGroupCall": False,
        "status": "ended",
        "startTime": started,
        "answerTime": started + timedelta(seconds=5),
        "endTime": started + timedelta(seconds=47),
        "duration": 42,
        "offer": None,
        "answer": None,
        "iceCandidates": {"caller": [], "receiver": []},
    })
    print(f"  call: {call_ref.id} (ended, 42s)")

    print("✅ Seed completed")


def main():
    _init_firebase()
    db = firestore.client()

    if "--reset" in sys.argv:
        clear_all(db)

    seed(db)


if __name__ == "__main__":
    main()
