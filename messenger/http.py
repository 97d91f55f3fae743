import json
import os
from typing import Tuple

from django.http import HttpResponseNotAllowed, JsonResponse

from .results import HTTP_STATUS_BY_ERROR, ServiceResult
from .utils import serialize_document


def json_body(request) -> Tuple[dict, JsonResponse]:
    try:
        body = request.body.decode("utf-8") if request.body else "{}"
        data = json.loads(body)
        if not isinstance(data, dict):
            raise ValueError("JSON body must be an object")
        return data, None
    except (json.JSONDecodeError, ValueError) as exc:
        return None, JsonResponse({"error": f"invalid_json: {exc}"}, status=400)


def require_env(*keys):
    missing = [key for key in keys if not os.environ.get(key)]
    if missing:
        return JsonResponse({"error": "missing_env", "missing": missing}, status=500)
    return None


def require_fields(data: dict, *fields):
    missing = [field for field in fields if not data.get(field)]
    if missing:
        return JsonResponse({"error": "missing_fields", "required": list(fields), "missing": missing}, status=400)
    return None


def result_response(result: ServiceResult, **extra) -> JsonResponse:
    """Render a ServiceResult; failures use the status mapped from their error code."""
    if result.success:
        payload = {"success": True, **extra}
        if result.value is not None:
            payload["value"] = serialize_document(result.value)
        return JsonResponse(payload)

    status = HTTP_STATUS_BY_ERROR.get(result.error_code, 500)
    return JsonResponse({
        "success": False,
        "error": result.error,
        "errorCode": result.error_code.value if result.error_code else None,
    }, status=status)


def require_store(store):
    if not store.is_available():
        return JsonResponse({
            "error": "store_unavailable",
            "message": "Document store is not configured",
        }, status=503)
    return None


def post_json(request, *fields):
    """Method check, JSON parsing and required-field check for POST views."""
    if request.method != "POST":
        return None, HttpResponseNotAllowed(["POST"])
    data, error = json_body(request)
    if error:
        return None, error
    missing = require_fields(data, *fields)
    if missing:
        return None, missing
    return data, None
