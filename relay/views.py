import logging

from django.conf import settings
from django.http import FileResponse, JsonResponse, HttpResponseNotAllowed
from django.views.decorators.csrf import csrf_exempt

from messenger.results import ErrorKind

from .constants import DEFAULT_CHAT_ID, DEFAULT_USER_ID, MULTIPART_OVERHEAD_BYTES
from .storage import (
    SizeLimitUploadHandler,
    UploadRejected,
    content_type_for,
    is_valid_routing_key,
    list_files,
    resolve_media,
    store_upload,
    too_large_message,
    validate_upload,
)

logger = logging.getLogger("relay")


def _too_large(max_bytes):
    return JsonResponse({
        "error": too_large_message(max_bytes),
        "errorCode": ErrorKind.UPLOAD_REJECTED.value,
    }, status=413)


def _handle_upload(request, key_field, default_key, dest_root, url_prefix, tag):
    logger.info(f"[{tag}] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    max_bytes = settings.RELAY_MAX_UPLOAD_BYTES
    try:
        declared = int(request.META.get("CONTENT_LENGTH") or 0)
    except ValueError:
        declared = 0
    if declared > max_bytes + MULTIPART_OVERHEAD_BYTES:
        logger.warning(f"[{tag}] Rejected {declared} byte body before reading it")
        return _too_large(max_bytes)

    limiter = SizeLimitUploadHandler(max_bytes, request)
    request.upload_handlers.insert(0, limiter)

    upload = request.FILES.get("file")
    if limiter.exceeded:
        logger.warning(f"[{tag}] Upload stopped after {limiter.received} bytes")
        return _too_large(max_bytes)
    if upload is None:
        return JsonResponse({"error": "No file uploaded"}, status=400)

    key = request.POST.get(key_field) or default_key
    if not is_valid_routing_key(key):
        logger.warning(f"[{tag}] Rejected {key_field}={key!r}")
        return JsonResponse({
            "error": f"Invalid {key_field}",
            "errorCode": ErrorKind.UPLOAD_REJECTED.value,
        }, status=400)

    try:
        validate_upload(upload, max_bytes)
    except UploadRejected as e:
        logger.warning(f"[{tag}] Rejected {upload.name} ({upload.content_type}, {upload.size} bytes): {e.message}")
        return JsonResponse({
            "error": e.message,
            "errorCode": ErrorKind.UPLOAD_REJECTED.value,
        }, status=e.status)

    try:
        stored = store_upload(upload, settings.RELAY_TEMP_DIR, dest_root / key)
    except OSError as e:
        logger.error(f"[{tag}] Storing {upload.name} failed: {e}")
        return JsonResponse({"error": str(e)}, status=500)

    url = request.build_absolute_uri(f"/{url_prefix}/{key}/{stored.name}")
    logger.info(f"[{tag}] Stored {stored} ({upload.size} bytes)")

    return JsonResponse({
        "success": True,
        "filename": stored.name,
        "url": url,
        key_field: key,
        "size": upload.size,
        "mimetype": upload.content_type,
    })


@csrf_exempt
def upload(request):
    """Chat attachment upload: multipart "file" plus optional "chatId"."""
    return _handle_upload(request, "chatId", DEFAULT_CHAT_ID, settings.RELAY_UPLOADS_DIR, "media", "UPLOAD")


@csrf_exempt
def upload_gallery(request):
    """Gallery upload: multipart "file" plus optional "userId"."""
    return _handle_upload(request, "userId", DEFAULT_USER_ID, settings.RELAY_GALLERY_DIR, "gallery", "UPLOAD/GALLERY")


def _serve(request, root, key, filename):
    if request.method not in ("GET", "HEAD"):
        return HttpResponseNotAllowed(["GET", "HEAD"])

    path = resolve_media(root, key, filename)
    if path is None:
        return JsonResponse({"error": "Not found"}, status=404)

    response = FileResponse(open(path, "rb"), content_type=content_type_for(filename))
    response["Access-Control-Allow-Origin"] = "*"
    response["Cross-Origin-Resource-Policy"] = "cross-origin"
    return response


def media(request, chat_id, filename):
    return _serve(request, settings.RELAY_UPLOADS_DIR, chat_id, filename)


def gallery(request, user_id, filename):
    return _serve(request, settings.RELAY_GALLERY_DIR, user_id, filename)


def health(request):
    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])

    return JsonResponse({
        "status": "ok",
        "uploadsDir": str(settings.RELAY_UPLOADS_DIR),
        "galleryDir": str(settings.RELAY_GALLERY_DIR),
    })


def debug_files(request):
    files = list_files(settings.RELAY_UPLOADS_DIR)
    return JsonResponse({"count": len(files), "files": files})


def debug_gallery(request):
    files = list_files(settings.RELAY_GALLERY_DIR)
    return JsonResponse({"count": len(files), "files": files})
