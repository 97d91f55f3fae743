import logging

from django.http import JsonResponse, HttpResponseNotAllowed
from django.views.decorators.csrf import csrf_exempt

from ..http import post_json, result_response
from ..registry import get_services
from ..utils import serialize_document

logger = logging.getLogger("messenger")


@csrf_exempt
def notification_register(request):
    """Store the device's push token on the user profile."""
    logger.info(f"[PUSH/REGISTER] {request.method} from {request.META.get('REMOTE_ADDR')}")
    data, error = post_json(request, "user_id", "push_token")
    if error:
        return error
    return result_response(
        get_services().notifications.register_device_token(data["user_id"], data["push_token"])
    )


@csrf_exempt
def notification_list(request, user_id):
    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])

    notifications = get_services().notifications
    history = notifications.get_user_notifications(user_id)
    if not history.success:
        return result_response(history)
    unread = notifications.get_unread_count(user_id)
    if not unread.success:
        return result_response(unread)

    return JsonResponse({
        "success": True,
        "notifications": serialize_document(history.value),
        "unreadCount": unread.value,
    })


@csrf_exempt
def notification_read(request, notification_id):
    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])
    return result_response(get_services().notifications.mark_as_read(notification_id))


@csrf_exempt
def notification_read_all(request, user_id):
    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])
    result = get_services().notifications.mark_all_as_read(user_id)
    if not result.success:
        return result_response(result)
    return JsonResponse({"success": True, "updatedCount": result.value})
