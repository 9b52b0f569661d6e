import time
from typing import Any, Callable, Dict

import structlog
from django.conf import settings
from django.core.cache import cache
from django.db import connections
from django.http import HttpRequest, JsonResponse
from django.utils import timezone
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.core.models import OutboxEvent

logger = structlog.get_logger()


def _check_database() -> Dict[str, Any]:
    conn = connections["default"]
    conn.ensure_connection()
    with conn.cursor() as cursor:
        cursor.execute("SELECT 1")
        cursor.fetchone()
    return {}


def _check_cache() -> Dict[str, Any]:
    cache.set("_health_check", "ok", 10)
    if cache.get("_health_check") != "ok":
        raise ConnectionError("Cache read failed")
    return {}


def _check_outbox() -> Dict[str, Any]:
    # Informational: a backlog never makes the service unhealthy.
    return {"backlog": OutboxEvent.objects.deliverable(settings.OUTBOX_MAX_RETRIES).count()}


CHECKS: Dict[str, Callable[[], Dict[str, Any]]] = {
    "database": _check_database,
    "cache": _check_cache,
}


def _run_check(name: str, check: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
    start = time.monotonic()
    try:
        extra = check()
    except Exception as exc:
        logger.error(f"health_check_{name}_failure", error=str(exc), exc_info=True)
        return {"status": "down"}
    return {
        "status": "up",
        "response_time_ms": round((time.monotonic() - start) * 1000, 2),
        **extra,
    }


def health_check(request: HttpRequest) -> JsonResponse:
    services = {name: _run_check(name, check) for name, check in CHECKS.items()}
    overall_healthy = all(service["status"] == "up" for service in services.values())

    if services["database"]["status"] == "up":
        services["outbox"] = _run_check("outbox", _check_outbox)

    logger.info(
        "health_check_completed", status="healthy" if overall_healthy else "unhealthy"
    )

    return JsonResponse(
        {
            "status": "healthy" if overall_healthy else "unhealthy",
            "timestamp": timezone.now().isoformat(),
            "services": services,
        },
        status=200 if overall_healthy else 503,
    )


class WhoAmIView(APIView):
    """Echo the authenticated principal.

    Lets clients check their bearer token:
    * No token  -> 401
    * Bad token -> 401
    * Valid JWT -> 200 with subject and role
    """

    permission_classes = [IsAuthenticated]

    def get(self, request: Request) -> Response:
        return Response(
            {
                "sub": request.user.id,
                "role": request.user.role,
            }
        )
