"""
Typed failures raised by the core services.

Services and stores only classify a failure; turning it into an HTTP
response is the API layer's job (see ``tempo.api.v1.errors``).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class TempoError(Exception):
    """Base exception for all application-specific exceptions."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# ---- Client-fixable ----

class ValidationError(TempoError):
    """Request data is missing or malformed. Raised before any storage access."""


class SnapshotValidationError(ValidationError):
    """One or more events of a sync snapshot are invalid; nothing was written."""

    def __init__(self, problems: Dict[int, List[str]]):
        self.problems = problems
        indexes = ", ".join(str(i) for i in sorted(problems))
        super().__init__(
            f"Invalid events in snapshot at index(es): {indexes}",
            {"invalidEvents": {str(i): msgs for i, msgs in sorted(problems.items())}},
        )


class OwnershipError(TempoError):
    """The authenticated user may not act on behalf of the requested owner."""


class NotFoundError(TempoError):
    """A requested resource does not exist."""

    def __init__(self, resource: str, identifier: Any):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}", {"resource": resource, "identifier": identifier})


class UserNotFoundError(NotFoundError):
    def __init__(self, identifier: Any):
        super().__init__("User", identifier)


class EventNotFoundError(NotFoundError):
    def __init__(self, identifier: Any):
        super().__init__("Event", identifier)


class DuplicateEventError(TempoError):
    """An event with the same external id already exists for the owner."""

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Event already exists: {event_id}", {"eventId": event_id})


# ---- Server side ----

class SyncBusyError(TempoError):
    """Another sync for the same owner held the lock past the wait limit."""

    def __init__(self, owner_id: Any):
        super().__init__(f"A sync is already running for owner {owner_id}", {"ownerId": owner_id})


class StorageError(TempoError):
    """A transaction failed and was rolled back in full."""


class ExternalServiceError(TempoError):
    """An external collaborator (identity provider, language model) failed."""

    retryable: bool = False

    def __init__(self, service: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.service = service
        details = dict(details or {})
        details["service"] = service
        super().__init__(f"{service} error: {message}", details)


class IdentityError(ExternalServiceError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("Identity", message, details)


class InvalidTokenError(IdentityError):
    pass


class ExpiredTokenError(IdentityError):
    pass


# ---- Intent translation ----

class IntentError(ExternalServiceError):
    """Base of the intent-translation failure taxonomy."""

    kind: str = "upstream"

    def __init__(self, message: str, provider: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        details["kind"] = self.kind
        if provider:
            details["provider"] = provider
        super().__init__("LLM", message, details)


class IntentEmptyOutputError(IntentError):
    kind = "empty_output"
    retryable = True


class IntentMalformedOutputError(IntentError):
    kind = "malformed_output"
    retryable = True


class IntentMissingFieldsError(IntentError):
    """The model answered with JSON that does not carry every required key."""

    kind = "missing_fields"
    retryable = True

    def __init__(self, report: Any, provider: Optional[str] = None):
        self.report = report
        super().__init__(
            f"Intent is missing required fields: {', '.join(report.missing)}",
            provider,
            {"missing": list(report.missing), "unexpected": list(report.unexpected)},
        )


class IntentTimeoutError(IntentError):
    kind = "timeout"
    retryable = True


class IntentUpstreamError(IntentError):
    kind = "upstream"
    retryable = True


class IntentAuthError(IntentUpstreamError):
    kind = "auth"
    retryable = False


class IntentRateLimitError(IntentUpstreamError):
    kind = "rate_limit"
    retryable = True
