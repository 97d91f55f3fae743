"""
Process-wide service instances.

Views reach the service layer through get_services(); the container is built
on first use from settings. Tests install their own container with
set_services() and drop it with reset_services().
"""
import logging
import threading
from dataclasses import dataclass
from typing import Optional

from django.conf import settings

from .call_service import CallService
from .chat_service import ChatService
from .notification_service import NotificationService
from .push_service import ExpoPushClient
from .store import DocumentStore, MemoryDocumentStore
from .user_service import UserService

logger = logging.getLogger("messenger")


@dataclass
class Services:
    store: DocumentStore
    notifications: NotificationService
    calls: CallService
    chats: ChatService
    users: UserService


def build_store(backend: str) -> DocumentStore:
    if backend == "memory":
        logger.info("Using in-memory document store")
        return MemoryDocumentStore()
    if backend == "firestore":
        from .firebase_service import FirestoreDocumentStore
        return FirestoreDocumentStore()
    raise ValueError(f"Unknown DOCUMENT_STORE_BACKEND: {backend}")


def build_services(store: DocumentStore, push_client: Optional[ExpoPushClient] = None) -> Services:
    if push_client is None:
        push_client = ExpoPushClient(
            url=settings.EXPO_PUSH_URL,
            access_token=settings.EXPO_ACCESS_TOKEN,
            timeout=settings.PUSH_TIMEOUT_SECONDS,
        )
    notifications = NotificationService(store, push_client)
    return Services(
        store=store,
        notifications=notifications,
        calls=CallService(store, notifications),
        chats=ChatService(store, notifications, message_cost=settings.MESSAGE_COST),
        users=UserService(store, notifications, initial_coins=settings.INITIAL_COINS),
    )


_services: Optional[Services] = None
_services_lock = threading.Lock()


def get_services() -> Services:
    global _services
    with _services_lock:
        if _services is None:
            _services = build_services(build_store(settings.DOCUMENT_STORE_BACKEND))
        return _services


def set_services(services: Services) -> None:
    global _services
    with _services_lock:
        _services = services


def reset_services() -> None:
    set_services(None)
