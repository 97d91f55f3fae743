import logging

from django.http import JsonResponse, HttpResponseNotAllowed
from django.views.decorators.csrf import csrf_exempt

from ..http import post_json, require_store, result_response
from ..registry import get_services

logger = logging.getLogger("messenger")


@csrf_exempt
def chat_room(request):
    logger.info(f"[CHAT/ROOM] {request.method} from {request.META.get('REMOTE_ADDR')}")
    data, error = post_json(request, "user_id", "other_user_id")
    if error:
        return error
    result = get_services().chats.get_or_create_chat_room(data["user_id"], data["other_user_id"])
    if not result.success:
        return result_response(result)
    return JsonResponse({"success": True, "chatId": result.value})


@csrf_exempt
def chat_group(request):
    logger.info(f"[CHAT/GROUP] {request.method} from {request.META.get('REMOTE_ADDR')}")
    data, error = post_json(request, "admin_id", "group_name", "member_ids")
    if error:
        return error
    if not isinstance(data["member_ids"], list):
        return JsonResponse({"error": "member_ids_must_be_list"}, status=400)
    result = get_services().chats.create_group_chat(data["admin_id"], data["group_name"], data["member_ids"])
    if not result.success:
        return result_response(result)
    return JsonResponse({"success": True, "chatId": result.value})


@csrf_exempt
def chat_send(request):
    """
    Send a message. Text, reply and media messages need receiver_id; without
    it the chat is treated as a group chat.
    """
    logger.info(f"[CHAT/SEND] {request.method} from {request.META.get('REMOTE_ADDR')}")
    data, error = post_json(request, "chat_id", "sender_id")
    if error:
        return error

    services = get_services()
    unavailable = require_store(services.store)
    if unavailable:
        return unavailable

    chats = services.chats
    chat_id = data["chat_id"]
    sender_id = data["sender_id"]
    receiver_id = data.get("receiver_id")

    for field in ("chat_id", "sender_id", "receiver_id", "text", "media_url", "media_type"):
        if data.get(field) is not None and not isinstance(data[field], str):
            return JsonResponse({"error": "invalid_field", "field": field, "message": "must be a string"}, status=400)
    if data.get("reply_to") is not None and not isinstance(data["reply_to"], dict):
        return JsonResponse({"error": "invalid_field", "field": "reply_to", "message": "must be an object"}, status=400)

    if not receiver_id:
        result = chats.send_group_message(chat_id, sender_id, data.get("text"))
    elif data.get("media_url"):
        result = chats.send_media_message(
            chat_id, sender_id, receiver_id,
            data["media_url"], data.get("media_type", "image"), data.get("text", ""),
        )
    elif data.get("reply_to"):
        result = chats.send_reply_message(chat_id, sender_id, receiver_id, data.get("text"), data["reply_to"])
    else:
        result = chats.send_message(chat_id, sender_id, receiver_id, data.get("text"))

    return result_response(result)


@csrf_exempt
def chat_read(request):
    data, error = post_json(request, "chat_id", "user_id")
    if error:
        return error

    chats = get_services().chats
    result = chats.mark_as_read(data["chat_id"], data["user_id"])
    if not result.success:
        return result_response(result)
    seen = chats.mark_messages_as_seen(data["chat_id"], data["user_id"])
    if not seen.success:
        return result_response(seen)
    return JsonResponse({"success": True, "seenCount": seen.value})


@csrf_exempt
def chat_list(request, user_id):
    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])
    return result_response(get_services().chats.get_chat_list(user_id))


@csrf_exempt
def chat_messages(request, chat_id):
    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])
    return result_response(get_services().chats.get_messages(chat_id))
