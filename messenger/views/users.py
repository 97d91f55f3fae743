import logging

from django.http import JsonResponse, HttpResponseNotAllowed
from django.views.decorators.csrf import csrf_exempt

from ..http import json_body, post_json, result_response
from ..registry import get_services

logger = logging.getLogger("messenger")


@csrf_exempt
def user_create(request):
    logger.info(f"[USER/CREATE] {request.method} from {request.META.get('REMOTE_ADDR')}")
    data, error = post_json(request, "user_id", "display_name")
    if error:
        return error
    return result_response(get_services().users.create_profile(
        data["user_id"],
        data.get("email", ""),
        data["display_name"],
        bool(data.get("is_guest", False)),
    ))


@csrf_exempt
def user_profile(request, user_id):
    """GET returns the profile; POST updates its editable fields."""
    users = get_services().users

    if request.method == "GET":
        return result_response(users.get_user_profile(user_id))

    if request.method != "POST":
        return HttpResponseNotAllowed(["GET", "POST"])

    data, error = json_body(request)
    if error:
        return error
    logger.info(f"[USER/UPDATE] {user_id}: {sorted(data)}")
    return result_response(users.update_user_profile(user_id, data))


@csrf_exempt
def user_notification_settings(request, user_id):
    """GET returns the effective push preferences; POST changes some of them."""
    users = get_services().users

    if request.method == "GET":
        return result_response(users.get_notification_settings(user_id))

    if request.method != "POST":
        return HttpResponseNotAllowed(["GET", "POST"])

    data, error = json_body(request)
    if error:
        return error
    logger.info(f"[USER/NOTIFICATION_SETTINGS] {user_id}: {sorted(data)}")
    return result_response(users.update_notification_settings(user_id, data))


@csrf_exempt
def user_search(request):
    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])
    return result_response(get_services().users.search_users(request.GET.get("q", "")))


@csrf_exempt
def user_follow(request):
    logger.info(f"[USER/FOLLOW] {request.method} from {request.META.get('REMOTE_ADDR')}")
    data, error = post_json(request, "follower_id", "followed_id")
    if error:
        return error
    return result_response(get_services().users.follow_user(data["follower_id"], data["followed_id"]))


@csrf_exempt
def user_unfollow(request):
    logger.info(f"[USER/UNFOLLOW] {request.method} from {request.META.get('REMOTE_ADDR')}")
    data, error = post_json(request, "follower_id", "followed_id")
    if error:
        return error
    return result_response(get_services().users.unfollow_user(data["follower_id"], data["followed_id"]))


def _moderation_view(operation_name):
    @csrf_exempt
    def view(request):
        logger.info(f"[USER/{operation_name.upper()}] {request.method} from {request.META.get('REMOTE_ADDR')}")
        data, error = post_json(request, "user_id", "target_id")
        if error:
            return error
        operation = getattr(get_services().users, operation_name)
        return result_response(operation(data["user_id"], data["target_id"]))

    view.__name__ = operation_name
    return view


user_block = _moderation_view("block_user")
user_unblock = _moderation_view("unblock_user")
user_mute = _moderation_view("mute_user")
user_unmute = _moderation_view("unmute_user")


@csrf_exempt
def user_report(request):
    data, error = post_json(request, "reporter_id", "reported_id", "reason")
    if error:
        return error
    result = get_services().users.report_user(data["reporter_id"], data["reported_id"], data["reason"])
    if not result.success:
        return result_response(result)
    return JsonResponse({"success": True, "reportId": result.value})


@csrf_exempt
def user_delete(request, user_id):
    logger.info(f"[USER/DELETE] {request.method} for {user_id} from {request.META.get('REMOTE_ADDR')}")
    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])
    return result_response(get_services().users.delete_account(user_id))
