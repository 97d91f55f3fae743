import json

import httpx
import pytest

from messenger.push_service import ExpoPushClient
from messenger.registry import build_services, reset_services, set_services
from messenger.store import MemoryDocumentStore


class PushRecorder:
    """MockTransport handler that records every push message sent to the relay."""

    def __init__(self):
        self.messages = []
        self.status_code = 200
        self.payload = {"data": {"status": "ok", "id": "ticket-1"}}

    def __call__(self, request):
        self.messages.append(json.loads(request.content))
        return httpx.Response(self.status_code, json=self.payload)

    def titles(self):
        return [message["title"] for message in self.messages]


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def push_recorder():
    return PushRecorder()


@pytest.fixture
def push_client(push_recorder):
    return ExpoPushClient(
        url="https://push.test/--/api/v2/push/send",
        transport=httpx.MockTransport(push_recorder),
    )


@pytest.fixture
def services(store, push_client, settings):
    settings.INITIAL_COINS = 300
    settings.MESSAGE_COST = 1
    container = build_services(store, push_client)
    set_services(container)
    yield container
    reset_services()


@pytest.fixture
def make_user(services, store):
    def _make_user(uid, name=None, coins=None, push_token=None, **fields):
        services.users.create_profile(uid, f"{uid}@example.com", name or uid.title())
        extra = dict(fields)
        if coins is not None:
            extra["balanceCoins"] = coins
        if push_token is not None:
            extra["pushToken"] = push_token
        if extra:
            store.update("users", uid, extra)
        return store.get("users", uid)

    return _make_user


@pytest.fixture
def relay_dirs(settings, tmp_path):
    settings.RELAY_UPLOADS_DIR = tmp_path / "uploads"
    settings.RELAY_GALLERY_DIR = tmp_path / "gallery"
    settings.RELAY_TEMP_DIR = tmp_path / "temp"
    settings.RELAY_MAX_UPLOAD_BYTES = 50 * 1024 * 1024
    return tmp_path
