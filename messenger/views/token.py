import logging
import os
import time

from django.http import JsonResponse, HttpResponseNotAllowed
from django.views.decorators.csrf import csrf_exempt
from agora_token_builder import RtcTokenBuilder

from ..constants import DEFAULT_TOKEN_EXPIRE_SECONDS
from ..http import json_body, require_env, result_response
from ..registry import get_services
from ..utils import parse_role, clamp_expire

logger = logging.getLogger("messenger")


@csrf_exempt
def token(request):
    """
    RTC token for joining a call channel.

    The channel is either given directly or resolved from call_id (the
    channel name of a call is its id).
    """
    logger.info(f"[TOKEN] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    missing_env = require_env("AGORA_APP_ID", "AGORA_APP_CERT")
    if missing_env:
        return missing_env

    data, error = json_body(request)
    if error:
        logger.error("[TOKEN] Invalid JSON body")
        return error

    channel = data.get("channel")
    call_id = data.get("call_id")
    if not channel and call_id:
        call = get_services().calls.get_call_details(call_id)
        if not call.success:
            return result_response(call)
        channel = call.value.get("channelName")
    if not channel:
        return JsonResponse({"error": "missing_channel"}, status=400)

    uid = data.get("uid")
    user_account = data.get("user_id") or data.get("account")
    if uid is None and not user_account:
        return JsonResponse({"error": "missing_uid_or_account"}, status=400)

    role = parse_role(data.get("role"))
    if role is None:
        return JsonResponse({"error": "invalid_role"}, status=400)

    expire = clamp_expire(data.get("expire", DEFAULT_TOKEN_EXPIRE_SECONDS))
    expire_ts = int(time.time()) + expire

    app_id = os.environ.get("AGORA_APP_ID")
    app_cert = os.environ.get("AGORA_APP_CERT")

    if user_account:
        token_value = RtcTokenBuilder.buildTokenWithAccount(
            app_id, app_cert, channel, str(user_account), role, expire_ts
        )
    else:
        try:
            uid_int = int(uid)
        except (TypeError, ValueError):
            return JsonResponse({"error": "uid_must_be_int"}, status=400)
        token_value = RtcTokenBuilder.buildTokenWithUid(
            app_id, app_cert, channel, uid_int, role, expire_ts
        )

    logger.info(f"[TOKEN] Issued for channel={channel}, uid={uid or user_account}")
    return JsonResponse({
        "token": token_value,
        "channelName": channel,
        "expire_at": expire_ts,
        "expire_in": expire,
    })
