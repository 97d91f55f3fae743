import logging

from django.conf import settings
from django.http import JsonResponse, HttpResponseNotAllowed
from django.views.decorators.csrf import csrf_exempt

from ..http import post_json, require_store, result_response
from ..registry import get_services

logger = logging.getLogger("messenger")


def _log(request, tag):
    logger.info(f"[CALL/{tag}] {request.method} from {request.META.get('REMOTE_ADDR')}")


@csrf_exempt
def call_initiate(request):
    """
    Start a one-to-one call: creates the ringing call record and pushes the
    receiver. The caller's app then watches the record and owns the
    missed-call timeout.
    """
    _log(request, "INITIATE")
    data, error = post_json(request, "caller_id", "receiver_id")
    if error:
        return error

    services = get_services()
    unavailable = require_store(services.store)
    if unavailable:
        return unavailable

    result = services.calls.initiate_call(
        data["caller_id"], data["receiver_id"], data.get("call_type", "video")
    )
    if not result.success:
        return result_response(result)

    return JsonResponse({
        "success": True,
        "callId": result.value,
        "channelName": result.value,
    })


@csrf_exempt
def call_answer(request):
    _log(request, "ANSWER")
    data, error = post_json(request, "call_id")
    if error:
        return error
    return result_response(get_services().calls.answer_call(data["call_id"]))


@csrf_exempt
def call_decline(request):
    _log(request, "DECLINE")
    data, error = post_json(request, "call_id")
    if error:
        return error
    return result_response(get_services().calls.decline_call(data["call_id"]))


@csrf_exempt
def call_end(request):
    """End a call with the duration counted by the caller's client."""
    _log(request, "END")
    data, error = post_json(request, "call_id")
    if error:
        return error
    return result_response(get_services().calls.end_call(data["call_id"], data.get("duration", 0)))


@csrf_exempt
def call_missed(request):
    """Mark a call as missed (client timeout)."""
    _log(request, "MISSED")
    data, error = post_json(request, "call_id")
    if error:
        return error
    return result_response(get_services().calls.mark_as_missed(data["call_id"]))


@csrf_exempt
def call_timeout_sweep(request):
    """
    Sweep ringing calls and mark them missed once expired. Covers callers
    that went away before their own timer fired.
    """
    _log(request, "TIMEOUT_SWEEP")
    data, error = post_json(request)
    if error:
        return error

    timeout_seconds = data.get("timeout_seconds", settings.MISSED_TIMEOUT_SECONDS)
    try:
        timeout_seconds = int(timeout_seconds)
    except (TypeError, ValueError):
        return JsonResponse({"error": "invalid_timeout_seconds"}, status=400)

    result = get_services().calls.mark_missed_expired(timeout_seconds)
    if not result.success:
        return result_response(result)

    return JsonResponse({
        "success": True,
        "timeoutSeconds": timeout_seconds,
        "updatedCount": result.value,
    })


@csrf_exempt
def group_call_initiate(request):
    _log(request, "GROUP_INITIATE")
    data, error = post_json(request, "caller_id", "participant_ids")
    if error:
        return error

    participant_ids = data["participant_ids"]
    if not isinstance(participant_ids, list):
        return JsonResponse({"error": "participant_ids_must_be_list"}, status=400)

    result = get_services().calls.initiate_group_call(
        data["caller_id"], participant_ids, data.get("call_type", "video")
    )
    if not result.success:
        return result_response(result)

    return JsonResponse({
        "success": True,
        "callId": result.value,
        "channelName": result.value,
    })


@csrf_exempt
def group_call_join(request):
    _log(request, "GROUP_JOIN")
    data, error = post_json(request, "call_id", "user_id")
    if error:
        return error
    return result_response(get_services().calls.join_group_call(data["call_id"], data["user_id"]))


@csrf_exempt
def group_call_leave(request):
    _log(request, "GROUP_LEAVE")
    data, error = post_json(request, "call_id", "user_id")
    if error:
        return error
    return result_response(get_services().calls.leave_group_call(data["call_id"], data["user_id"]))


@csrf_exempt
def group_call_decline(request):
    _log(request, "GROUP_DECLINE")
    data, error = post_json(request, "call_id", "user_id")
    if error:
        return error
    return result_response(get_services().calls.decline_group_call(data["call_id"], data["user_id"]))


@csrf_exempt
def call_detail(request, call_id):
    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])
    return result_response(get_services().calls.get_call_details(call_id))


@csrf_exempt
def call_history(request, user_id):
    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])
    return result_response(get_services().calls.get_call_history(user_id))
