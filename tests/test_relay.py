import itertools
from types import SimpleNamespace

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.files.uploadhandler import StopUpload

from relay import storage


def _upload(client, path, name, content=b"data", content_type="image/jpeg", **fields):
    return client.post(path, {"file": SimpleUploadedFile(name, content, content_type=content_type), **fields})


def _read(response):
    body = b"".join(response.streaming_content)
    response.close()
    return body


@pytest.mark.parametrize(
    "name, mimetype, expected",
    [
        ("photo.heic", "image/heic", True),
        ("photo.HEIC", "application/octet-stream", True),
        ("clip.3gp", "application/octet-stream", True),
        ("voice", "audio/ogg", True),
        ("notes", "text/plain", True),
        ("deck", "application/vnd.openxmlformats-officedocument.presentationml.presentation", True),
        ("malware.exe", "application/octet-stream", False),
        ("script.sh", "application/x-sh", False),
    ],
)
def test_file_filter(name, mimetype, expected):
    assert storage.is_allowed(name, mimetype) is expected


def test_chat_upload_is_stored_and_served(client, relay_dirs):
    response = _upload(client, "/upload", "photo.jpg", b"jpeg-bytes", chatId="alice_bob")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["chatId"] == "alice_bob"
    assert body["size"] == len(b"jpeg-bytes")
    assert body["mimetype"] == "image/jpeg"
    assert body["url"] == f"http://testserver/media/alice_bob/{body['filename']}"
    assert (relay_dirs / "uploads" / "alice_bob" / body["filename"]).read_bytes() == b"jpeg-bytes"
    assert list((relay_dirs / "temp").iterdir()) == []

    served = client.get(f"/media/alice_bob/{body['filename']}")
    assert served.status_code == 200
    assert served["Content-Type"] == "image/jpeg"
    assert served["Access-Control-Allow-Origin"] == "*"
    assert served["Cross-Origin-Resource-Policy"] == "cross-origin"
    assert _read(served) == b"jpeg-bytes"


def test_heic_upload_is_accepted(client, relay_dirs):
    response = _upload(client, "/upload", "photo.heic", content_type="image/heic")

    assert response.status_code == 200
    filename = response.json()["filename"]
    assert filename.endswith(".heic")
    assert response.json()["chatId"] == "general"

    served = client.get(f"/media/general/{filename}")
    assert served["Content-Type"] == "application/octet-stream"
    _read(served)


def test_executable_is_rejected(client, relay_dirs):
    response = _upload(client, "/upload", "malware.exe", content_type="application/octet-stream", chatId="c1")

    assert response.status_code == 400
    assert response.json()["error"] == "Only images, videos, audio, and documents allowed!"
    assert not (relay_dirs / "uploads" / "c1").exists()


def test_missing_file(client, relay_dirs):
    response = client.post("/upload", {"chatId": "c1"})

    assert response.status_code == 400
    assert response.json() == {"error": "No file uploaded"}


def test_oversized_upload(client, relay_dirs, settings):
    settings.RELAY_MAX_UPLOAD_BYTES = 10

    response = _upload(client, "/upload-gallery", "big.jpg", b"x" * 11, userId="alice")

    assert response.status_code == 413
    assert not (relay_dirs / "gallery" / "alice").exists()


def test_oversized_body_is_refused_before_parsing(client, relay_dirs, settings):
    settings.RELAY_MAX_UPLOAD_BYTES = 10

    response = _upload(client, "/upload", "big.jpg", b"x" * (128 * 1024), chatId="c1")

    assert response.status_code == 413
    assert response.json()["errorCode"] == "upload_rejected"
    assert not (relay_dirs / "temp").exists()
    assert not (relay_dirs / "uploads" / "c1").exists()


def test_size_limit_handler_stops_the_stream():
    limiter = storage.SizeLimitUploadHandler(max_bytes=5)
    limiter.new_file("file", "a.jpg", "image/jpeg", None)

    assert limiter.receive_data_chunk(b"abc", 0) == b"abc"
    with pytest.raises(StopUpload) as stopped:
        limiter.receive_data_chunk(b"def", 3)

    assert stopped.value.connection_reset is True
    assert limiter.exceeded is True
    assert limiter.received == 6


@pytest.mark.parametrize("bad_key", ["../etc", "a b", "x.y"])
def test_routing_key_is_validated(client, relay_dirs, bad_key):
    response = _upload(client, "/upload-gallery", "p.jpg", userId=bad_key)

    assert response.status_code == 400
    assert not (relay_dirs / "gallery").exists()


def test_gallery_upload(client, relay_dirs):
    response = _upload(client, "/upload-gallery", "clip.mp4", b"mp4", content_type="video/mp4", userId="alice")

    body = response.json()
    assert body["userId"] == "alice"
    assert body["url"].startswith("http://testserver/gallery/alice/")

    served = client.get(f"/gallery/alice/{body['filename']}")
    assert served["Content-Type"] == "video/mp4"
    assert _read(served) == b"mp4"


def test_same_millisecond_uploads_never_collide(client, relay_dirs, monkeypatch):
    monkeypatch.setattr(storage, "time", SimpleNamespace(time=lambda: 1700000000.0))

    first = _upload(client, "/upload-gallery", "a.jpg", b"first", userId="alice").json()
    second = _upload(client, "/upload-gallery", "b.jpg", b"second", userId="alice").json()

    assert first["filename"] != second["filename"]
    assert first["filename"].startswith("1700000000000_")
    gallery = relay_dirs / "gallery" / "alice"
    assert (gallery / first["filename"]).read_bytes() == b"first"
    assert (gallery / second["filename"]).read_bytes() == b"second"


def test_name_clash_in_destination_is_regenerated(client, relay_dirs, monkeypatch):
    names = itertools.chain(["same.jpg", "same.jpg", "other.jpg"], (f"extra{i}.jpg" for i in itertools.count()))
    monkeypatch.setattr(storage, "generate_filename", lambda original: next(names))

    first = _upload(client, "/upload-gallery", "a.jpg", b"first", userId="alice").json()
    second = _upload(client, "/upload-gallery", "b.jpg", b"second", userId="alice").json()

    assert first["filename"] == "same.jpg"
    assert second["filename"] == "other.jpg"
    assert (relay_dirs / "gallery" / "alice" / "same.jpg").read_bytes() == b"first"
    assert (relay_dirs / "gallery" / "alice" / "other.jpg").read_bytes() == b"second"


def test_missing_media_is_404(client, relay_dirs):
    assert client.get("/media/c1/nothing.jpg").status_code == 404
    assert client.get("/gallery/alice/..").status_code == 404


def test_health_and_debug_listings(client, relay_dirs):
    uploaded = _upload(client, "/upload", "p.png", content_type="image/png", chatId="c1").json()
    _upload(client, "/upload-gallery", "g.png", content_type="image/png", userId="u1")

    health = client.get("/health").json()
    assert health["status"] == "ok"
    assert health["uploadsDir"] == str(relay_dirs / "uploads")

    files = client.get("/debug/files").json()
    assert files == {"count": 1, "files": [f"/c1/{uploaded['filename']}"]}
    assert client.get("/debug/gallery").json()["count"] == 1
