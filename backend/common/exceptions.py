"""
Application error hierarchy and the DRF exception handler that renders
every failure as `{"error": {"code", "message", "details"?}}`.
"""
from __future__ import annotations

import logging
import math
import time
from typing import Any, Optional

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import Http404
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response

logger = logging.getLogger(__name__)


class AppError(drf_exceptions.APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL_ERROR"
    default_detail = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or str(self.default_detail)
        self.details = details
        super().__init__(detail=self.message, code=self.code)

    def __str__(self):
        return self.message


class ValidationFailed(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"
    default_detail = "Validation failed"


class WebhookVerificationError(ValidationFailed):
    code = "WEBHOOK_VERIFICATION_FAILED"
    default_detail = "Webhook signature verification failed"


class Unauthorized(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"
    default_detail = "Authentication required"


class PaymentError(AppError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    code = "PAYMENT_ERROR"
    default_detail = "Payment processing failed"


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    default_detail = "You do not have permission to perform this action"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_detail = "Resource not found"

    @classmethod
    def for_entity(cls, entity: str, entity_id: Any = None) -> "NotFound":
        if entity_id is None:
            return cls(f"{entity} not found")
        return cls(f"{entity} with ID {entity_id} not found")


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"
    default_detail = "Resource conflict"


class UnprocessableEntity(AppError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "UNPROCESSABLE_ENTITY"
    default_detail = "Unprocessable entity"


class InvalidTransition(UnprocessableEntity):
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(
            f"Invalid status transition: Cannot change from {current} to {requested}",
            details={"currentStatus": current, "requestedStatus": requested},
        )


class InsufficientStock(UnprocessableEntity):
    def __init__(self, name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {name}. Available: {available}, Requested: {requested}",
            details={"available": available, "requested": requested},
        )


class RateLimitExceeded(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "RATE_LIMIT_EXCEEDED"
    default_detail = "Too many requests, please try again later"

    def __init__(self, message: Optional[str] = None, *, retry_after: Optional[int] = None,
                 limit: Optional[int] = None, remaining: int = 0):
        self.retry_after = retry_after
        self.limit = limit
        self.remaining = remaining
        super().__init__(message, details={"retryAfter": retry_after} if retry_after else None)


class InternalError(AppError):
    pass


# DRF exceptions keyed to the codes above
_DRF_CODES = (
    (drf_exceptions.ValidationError, "VALIDATION_ERROR", "Validation failed"),
    (drf_exceptions.ParseError, "VALIDATION_ERROR", None),
    (drf_exceptions.NotAuthenticated, "UNAUTHORIZED", None),
    (drf_exceptions.AuthenticationFailed, "UNAUTHORIZED", None),
    (drf_exceptions.PermissionDenied, "FORBIDDEN", None),
    (drf_exceptions.NotFound, "NOT_FOUND", None),
    (drf_exceptions.MethodNotAllowed, "METHOD_NOT_ALLOWED", None),
    (drf_exceptions.UnsupportedMediaType, "VALIDATION_ERROR", None),
    (drf_exceptions.Throttled, "RATE_LIMIT_EXCEEDED", "Too many requests, please try again later"),
)


def error_body(code: str, message: str, details: Any = None) -> dict:
    err = {"code": code, "message": message}
    if details not in (None, {}, []):
        err["details"] = details
    return {"error": err}


def _rate_limit_headers(retry_after: Optional[float], limit: Optional[int], remaining: int) -> dict:
    wait = int(math.ceil(retry_after)) if retry_after else 60
    headers = {
        "Retry-After": str(wait),
        "X-RateLimit-Remaining": str(max(remaining, 0)),
        "X-RateLimit-Reset": str(int(time.time()) + wait),
    }
    if limit is not None:
        headers["X-RateLimit-Limit"] = str(limit)
    return headers


def _throttle_limit(context) -> Optional[int]:
    view = (context or {}).get("view")
    for throttle in getattr(view, "get_throttles", lambda: [])():
        num = getattr(throttle, "num_requests", None)
        if num is not None:
            return int(num)
    return None


def api_exception_handler(exc, context):
    """DRF EXCEPTION_HANDLER: map everything onto the error envelope."""
    if isinstance(exc, Http404):
        exc = NotFound()
    elif isinstance(exc, DjangoPermissionDenied):
        exc = Forbidden()
    elif isinstance(exc, DjangoValidationError):
        exc = ValidationFailed("Invalid request", details={"errors": exc.messages})

    if isinstance(exc, AppError):
        headers = {}
        if isinstance(exc, RateLimitExceeded):
            headers = _rate_limit_headers(exc.retry_after, exc.limit, exc.remaining)
        if exc.status_code >= 500:
            logger.error("%s: %s", exc.code, exc.message)
        return Response(error_body(exc.code, exc.message, exc.details),
                        status=exc.status_code, headers=headers)

    for klass, code, message in _DRF_CODES:
        if isinstance(exc, klass):
            headers = {}
            details = None
            if isinstance(exc, drf_exceptions.ValidationError):
                details = exc.detail
                text = message
            else:
                text = message or str(exc.detail)
            if isinstance(exc, drf_exceptions.Throttled):
                headers = _rate_limit_headers(exc.wait, _throttle_limit(context), 0)
            else:
                auth_header = getattr(exc, "auth_header", None)
                if auth_header:
                    headers["WWW-Authenticate"] = auth_header
            return Response(error_body(code, text, details), status=exc.status_code, headers=headers)

    if isinstance(exc, drf_exceptions.APIException):
        return Response(error_body("ERROR", str(exc.detail)), status=exc.status_code)

    view = (context or {}).get("view")
    logger.exception("Unhandled error in %s", view.__class__.__name__ if view else "view", exc_info=exc)
    return Response(error_body("INTERNAL_ERROR", "An unexpected error occurred"),
                    status=status.HTTP_500_INTERNAL_SERVER_ERROR)
