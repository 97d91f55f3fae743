import asyncio
from datetime import datetime

from django.utils import timezone

from .constants import DEFAULT_TOKEN_EXPIRE_SECONDS, MAX_TOKEN_EXPIRE_SECONDS, ROLE_PUBLISHER, ROLE_SUBSCRIBER


def parse_role(value):
    if value is None:
        return ROLE_PUBLISHER
    if isinstance(value, int):
        return ROLE_PUBLISHER if value == ROLE_PUBLISHER else ROLE_SUBSCRIBER
    if isinstance(value, str):
        value = value.lower()
        if value in {"publisher", "host", "broadcaster"}:
            return ROLE_PUBLISHER
        if value in {"subscriber", "audience"}:
            return ROLE_SUBSCRIBER
    return None


def clamp_expire(expire):
    try:
        expire = int(expire)
    except (TypeError, ValueError):
        return DEFAULT_TOKEN_EXPIRE_SECONDS
    if expire <= 0:
        return DEFAULT_TOKEN_EXPIRE_SECONDS
    return min(expire, MAX_TOKEN_EXPIRE_SECONDS)


def run_async(coro):
    """Helper to run async code from sync services and views."""
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


def generate_channel_name(call_id: str) -> str:
    """Use callId as the RTC channel name to keep it short and stable."""
    return call_id


def chat_id_for(user_a: str, user_b: str) -> str:
    """One-to-one chat ids are the sorted participant pair."""
    return "_".join(sorted([user_a, user_b]))


def normalize_datetime(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        if timezone.is_naive(value):
            return timezone.make_aware(value, timezone.get_current_timezone())
        return timezone.localtime(value)
    if hasattr(value, "timestamp"):
        return datetime.fromtimestamp(value.timestamp(), tz=timezone.get_current_timezone())
    return None


def format_timestamp(value):
    if value is None:
        return None
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "timestamp"):
        return datetime.fromtimestamp(value.timestamp()).isoformat()
    return str(value)


def serialize_document(value):
    """Make a store document JSON-safe (timestamps become ISO strings)."""
    if isinstance(value, dict):
        return {key: serialize_document(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_document(item) for item in value]
    if isinstance(value, datetime):
        return format_timestamp(value)
    return value


def parse_hhmm(value: str) -> int:
    """'23:30' -> minutes since midnight. Raises ValueError for anything else."""
    if not isinstance(value, str):
        raise ValueError(f"Expected HH:MM, got {value!r}")
    hours, _, minutes = value.partition(":")
    if len(hours) != 2 or len(minutes) != 2 or not (hours + minutes).isdigit():
        raise ValueError(f"Expected HH:MM, got {value!r}")
    if int(hours) > 23 or int(minutes) > 59:
        raise ValueError(f"Expected HH:MM, got {value!r}")
    return int(hours) * 60 + int(minutes)
