"""
Portal-wide exception hierarchy.

Services raise these; blueprints register one handler per type and map
them to HTTP status codes through ``portal.utils.errors.api_error``.

Usage:
    from portal.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Application", resource_id=42)
    raise ValidationError("reason is required", details={"reason": "empty"})
"""


class NotFoundError(Exception):
    """Raised when a referenced entity does not exist.

    Maps to HTTP 404.

    Args:
        resource: Human-readable entity name (e.g. "Company", "Application").
        resource_id: The key that was looked up.
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
    """Raised when required input is missing or violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class PermissionDenied(PermissionError):
    """Raised when a principal's role or permission level is insufficient.

    Subclasses the builtin PermissionError so callers catching the generic
    type keep working. Maps to HTTP 403.

    Args:
        action: Gate action that was denied (e.g. "archive.manage").
        principal_id: Who asked. Logged, never echoed to other users.
        reason: Optional explanation (e.g. self-targeting).
    """

    def __init__(
        self,
        action: str,
        principal_id: str | None = None,
        reason: str | None = None,
    ) -> None:
        self.action = action
        self.principal_id = principal_id
        self.reason = reason
        msg = f"Permission denied for '{action}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ConflictError(Exception):
    """Raised when a unique value cannot be claimed.

    Used when identifier allocation exhausts its retry budget under
    concurrent creation, and for an already registered member email.
    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field that collided.
        value: The last conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class ConstraintError(Exception):
    """Raised when a permanent delete is blocked by rows that still reference the target.

    Maps to HTTP 409.

    Args:
        message: Summary of the blocked operation.
        offenders: One dict per blocking row, e.g.
                   {"entity_type": "application", "entity_id": 7,
                    "references": "facility:3", "is_archived": False}.
    """

    def __init__(self, message: str, offenders: list[dict] | None = None) -> None:
        self.offenders = offenders or []
        super().__init__(message)
