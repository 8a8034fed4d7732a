"""Standardised API error responses.

Usage
-----
    from portal.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Application not found")
    return api_error(E.CONSTRAINT_BLOCKED, "Delete blocked", details={"offenders": [...]})

``register_error_handlers(bp)`` wires the portal exception hierarchy onto a
blueprint so services can simply raise.
"""

from __future__ import annotations

import logging

from flask import jsonify, request

from portal.core.exceptions import (
    ConflictError,
    ConstraintError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Validation – HTTP 400 / 422
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Auth – HTTP 401 / 403
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONSTRAINT_BLOCKED = "ERR_CONSTRAINT_BLOCKED"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 422,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONSTRAINT_BLOCKED: 409,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override. Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (offender lists, field errors).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)``, drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def register_error_handlers(bp) -> None:
    """Attach handlers for the portal exception hierarchy to a blueprint."""

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(PermissionDenied)
    def _handle_forbidden(error: PermissionDenied):
        logger.warning(
            "Permission denied principal=%s action=%s endpoint=%s",
            error.principal_id, error.action, request.endpoint,
        )
        return api_error(E.FORBIDDEN, str(error), details={"action": error.action})

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error), details={"field": error.field})

    @bp.errorhandler(ConstraintError)
    def _handle_constraint(error: ConstraintError):
        return api_error(
            E.CONSTRAINT_BLOCKED, str(error), details={"offenders": error.offenders},
        )
