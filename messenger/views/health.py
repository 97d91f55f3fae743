from django.conf import settings
from django.http import JsonResponse, HttpResponseNotAllowed
from django.views.decorators.csrf import csrf_exempt

from ..registry import get_services


@csrf_exempt
def health(request):
    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])

    store_ok = get_services().store.is_available()

    return JsonResponse({
        "status": "ok",
        "store": "connected" if store_ok else "not_configured",
        "backend": settings.DOCUMENT_STORE_BACKEND,
    })
