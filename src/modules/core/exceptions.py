"""Standardized error responses for the REST API.

Every error leaves the API as::

    {"type": "validation_error" | "client_error" | "server_error",
     "errors": [{"code": "...", "detail": "...", "attr": "..." | null}]}

Domain errors (``shared.domain.exceptions``) are mapped to HTTP statuses
here, so services never know about HTTP.  Anything unexpected is logged
with its traceback and answered with a generic 500 that leaks nothing.
"""

from __future__ import annotations

from typing import Any, Iterator

import structlog
from pydantic import ValidationError as PydanticValidationError
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from shared.domain.exceptions import (
    AuthorizationError,
    BusinessRuleViolation,
    ConflictError,
    DomainError,
    NotFoundError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

DOMAIN_ERROR_STATUS: dict[type[DomainError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    BusinessRuleViolation: status.HTTP_400_BAD_REQUEST,
    AuthorizationError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
}


def standardized_exception_handler(exc: Exception, context: dict[str, Any]) -> Response:
    """DRF ``EXCEPTION_HANDLER`` entry point."""
    if isinstance(exc, DomainError):
        return _domain_error_response(exc)

    if isinstance(exc, PydanticValidationError):
        errors = [
            _error(
                "invalid",
                err["msg"],
                ".".join(str(part) for part in err["loc"]) or None,
            )
            for err in exc.errors()
        ]
        return Response(
            {"type": "validation_error", "errors": errors},
            status=status.HTTP_400_BAD_REQUEST,
        )

    response = drf_exception_handler(exc, context)
    if response is None:
        view = context.get("view")
        logger.exception(
            "api.unhandled_exception",
            view=view.__class__.__name__ if view else None,
            error_type=exc.__class__.__name__,
        )
        return Response(
            {
                "type": "server_error",
                "errors": [_error("error", "A server error occurred.", None)],
            },
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if isinstance(exc, drf_exceptions.ValidationError):
        error_type = "validation_error"
        errors = list(_flatten(exc.detail))
    else:
        error_type = "client_error"
        detail = getattr(exc, "detail", str(exc))
        errors = list(_flatten(detail))

    response.data = {"type": error_type, "errors": errors}
    return response


def _domain_error_response(exc: DomainError) -> Response:
    http_status = status.HTTP_400_BAD_REQUEST
    for klass in type(exc).__mro__:
        if klass in DOMAIN_ERROR_STATUS:
            http_status = DOMAIN_ERROR_STATUS[klass]
            break
    error_type = "validation_error" if isinstance(exc, ValidationError) else "client_error"
    logger.info(
        "api.domain_error",
        error_type=exc.__class__.__name__,
        status_code=http_status,
    )
    return Response(
        {"type": error_type, "errors": [_error(exc.code, exc.detail, None)]},
        status=http_status,
    )


def _flatten(detail: Any, attr: str | None = None) -> Iterator[dict[str, Any]]:
    if isinstance(detail, dict):
        for key, value in detail.items():
            if key == "non_field_errors":
                child = attr
            else:
                child = f"{attr}.{key}" if attr else str(key)
            yield from _flatten(value, child)
    elif isinstance(detail, list):
        for index, value in enumerate(detail):
            if isinstance(value, (dict, list)):
                yield from _flatten(value, f"{attr}.{index}" if attr else str(index))
            else:
                yield from _flatten(value, attr)
    else:
        code = getattr(detail, "code", None) or "error"
        yield _error(code, str(detail), attr)


def _error(code: str, detail: str, attr: str | None) -> dict[str, Any]:
    return {"code": code, "detail": detail, "attr": attr}
