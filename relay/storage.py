"""
Filesystem side of the media relay.

Uploads are written to the temp directory under a fresh
"{epoch_ms}_{random}{ext}" name and then moved into
uploads/{chatId}/ or gallery/{userId}/. Neither step overwrites an existing
file: the temp file is created exclusively and the final name is reserved
before the move, so two uploads in the same millisecond get distinct names.
"""
import logging
import os
import secrets
import time
from pathlib import Path
from typing import List, Optional

from django.core.files.uploadhandler import FileUploadHandler, StopUpload

from .constants import (
    ALLOWED_EXTENSIONS,
    ALLOWED_MIME_PREFIXES,
    CONTENT_TYPES,
    DEFAULT_CONTENT_TYPE,
    DOCUMENT_MIME_MARKERS,
    MAX_NAME_ATTEMPTS,
    REJECTED_TYPE_MESSAGE,
    ROUTING_KEY_PATTERN,
)

logger = logging.getLogger("relay")


class UploadRejected(Exception):
    """The upload failed validation; status is the HTTP status to answer with."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.message = message
        self.status = status


def is_allowed(filename: str, mimetype: Optional[str]) -> bool:
    """Accept on a known extension or on a media/document MIME type."""
    filename = (filename or "").lower()
    mimetype = (mimetype or "").lower()
    if filename.endswith(ALLOWED_EXTENSIONS):
        return True
    if mimetype.startswith(ALLOWED_MIME_PREFIXES):
        return True
    return any(marker in mimetype for marker in DOCUMENT_MIME_MARKERS)


def is_valid_routing_key(key: str) -> bool:
    return bool(key) and ROUTING_KEY_PATTERN.match(key) is not None


def too_large_message(max_bytes: int) -> str:
    return f"File too large (max {max_bytes} bytes)"


def validate_upload(upload, max_bytes: int) -> None:
    if not is_allowed(upload.name, upload.content_type):
        raise UploadRejected(REJECTED_TYPE_MESSAGE)
    if upload.size > max_bytes:
        raise UploadRejected(too_large_message(max_bytes), status=413)


class SizeLimitUploadHandler(FileUploadHandler):
    """
    Runs ahead of Django's own handlers and stops the multipart parser as soon
    as the file passes max_bytes, so an oversized body is never spooled to disk.
    """

    def __init__(self, max_bytes: int, request=None):
        super().__init__(request)
        self.max_bytes = max_bytes
        self.received = 0
        self.exceeded = False

    def new_file(self, *args, **kwargs):
        super().new_file(*args, **kwargs)
        self.received = 0

    def receive_data_chunk(self, raw_data, start):
        self.received += len(raw_data)
        if self.received > self.max_bytes:
            self.exceeded = True
            raise StopUpload(connection_reset=True)
        return raw_data

    def file_complete(self, file_size):
        return None


def generate_filename(original_name: str) -> str:
    ext = os.path.splitext(original_name or "")[1]
    return f"{int(time.time() * 1000)}_{secrets.token_hex(4)}{ext}"


def _reserve(directory: Path, original_name: str, preferred: Optional[str] = None) -> Path:
    """Create an empty file under a name nobody else holds."""
    name = preferred or generate_filename(original_name)
    for _ in range(MAX_NAME_ATTEMPTS):
        path = directory / name
        try:
            with open(path, "xb"):
                return path
        except FileExistsError:
            logger.debug(f"[STORAGE] Name clash on {path}, regenerating")
            name = generate_filename(original_name)
    raise OSError(f"Could not allocate a unique filename in {directory}")


def write_temp(upload, temp_dir: Path) -> Path:
    temp_dir.mkdir(parents=True, exist_ok=True)
    path = _reserve(temp_dir, upload.name)
    try:
        with open(path, "wb") as fh:
            for chunk in upload.chunks():
                fh.write(chunk)
    except OSError:
        path.unlink(missing_ok=True)
        raise
    return path


def move_into(temp_path: Path, dest_dir: Path, original_name: str) -> Path:
    """Move temp_path into dest_dir, keeping its name unless taken."""
    dest_dir.mkdir(parents=True, exist_ok=True)
    target = _reserve(dest_dir, original_name, preferred=temp_path.name)
    try:
        os.replace(temp_path, target)
    except OSError:
        target.unlink(missing_ok=True)
        raise
    return target


def store_upload(upload, temp_dir: Path, dest_dir: Path) -> Path:
    temp_path = write_temp(upload, temp_dir)
    try:
        return move_into(temp_path, dest_dir, upload.name)
    except OSError:
        temp_path.unlink(missing_ok=True)
        raise


def resolve_media(root: Path, key: str, filename: str) -> Optional[Path]:
    """Path of a stored file, or None when it is missing or outside root."""
    if not is_valid_routing_key(key) or filename in ("", ".", "..") or "/" in filename or "\\" in filename:
        return None
    path = root / key / filename
    if not path.is_file():
        return None
    return path


def content_type_for(filename: str) -> str:
    return CONTENT_TYPES.get(os.path.splitext(filename)[1].lower(), DEFAULT_CONTENT_TYPE)


def list_files(root: Path) -> List[str]:
    """Every stored file under root as "/<key>/<filename>"."""
    if not root.is_dir():
        return []
    return sorted(
        "/" + path.relative_to(root).as_posix()
        for path in root.rglob("*")
        if path.is_file()
    )
