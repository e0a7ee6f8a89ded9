"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register one handler per type and
get consistent HTTP status codes everywhere.

Usage:
    from alms.core.exceptions import NotFoundError, TransitionError

    raise NotFoundError(resource="LicenseApplication", resource_id=42)
    raise TransitionError("already_terminal", "Application is already DISPOSE")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "LicenseApplication").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Distinct from HTTP 400 (malformed input, caught in blueprint) — this
    exception signals that the data was well-formed but violated a business
    rule (e.g. invalid state transition, missing mandatory artifact).

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class TransitionError(ValidationError):
    """A workflow action was refused before any state was changed.

    ``reason`` is a stable machine-readable code (``already_terminal``,
    ``not_current_assignee``, ``missing_artifact`` …) so callers can branch
    on it without parsing the message.
    """

    def __init__(self, reason: str, message: str, details: dict | None = None) -> None:
        self.reason = reason
        super().__init__(message, details={"reason": reason, **(details or {})})


class ConflictError(Exception):
    """Raised when a write loses a race against a concurrent write.

    Maps to HTTP 409. The caller may reload and retry; nothing was written.

    Args:
        resource: Model name.
        field: The field whose expected value no longer matched.
        value: The value the writer expected.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} changed concurrently ({field}={value!r} is stale)"
        super().__init__(msg)
