# /app/tempo/api/v1/errors.py

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import HTTPException, status

from tempo.core import errors

log = logging.getLogger(__name__)

# Most specific classes first: the first isinstance match wins.
_STATUS_MAP = (
    (errors.ValidationError, status.HTTP_400_BAD_REQUEST),
    (errors.OwnershipError, status.HTTP_403_FORBIDDEN),
    (errors.NotFoundError, status.HTTP_404_NOT_FOUND),
    (errors.DuplicateEventError, status.HTTP_409_CONFLICT),
    (errors.SyncBusyError, status.HTTP_409_CONFLICT),
    (errors.IdentityError, status.HTTP_401_UNAUTHORIZED),
    (errors.IntentTimeoutError, status.HTTP_504_GATEWAY_TIMEOUT),
    (errors.IntentRateLimitError, status.HTTP_429_TOO_MANY_REQUESTS),
    (errors.IntentAuthError, status.HTTP_502_BAD_GATEWAY),
    (errors.IntentEmptyOutputError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (errors.IntentMalformedOutputError, status.HTTP_502_BAD_GATEWAY),
    (errors.IntentMissingFieldsError, status.HTTP_502_BAD_GATEWAY),
    (errors.IntentUpstreamError, status.HTTP_502_BAD_GATEWAY),
    (errors.StorageError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def status_for(exc: errors.TempoError) -> int:
    for exc_type, code in _STATUS_MAP:
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def to_http_exception(exc: errors.TempoError) -> HTTPException:
    """Translates a core failure into the HTTP response the client sees."""
    code = status_for(exc)
    detail: Dict[str, Any] = {"error": type(exc).__name__, "message": exc.message}
    if exc.details:
        detail["details"] = exc.details
    if isinstance(exc, errors.ExternalServiceError):
        detail["retryable"] = exc.retryable
    if code >= 500:
        log.error("Request failed with %s: %s", type(exc).__name__, exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if code == status.HTTP_401_UNAUTHORIZED else None
    return HTTPException(status_code=code, detail=detail, headers=headers)
