"""
Route decorators built on the permission gate.

Usage:
    @bp.route("/api/v1/applications", methods=["POST"])
    @require_principal
    def create_application():
        principal = current_principal()
        ...

    @bp.route("/api/v1/admin/archive/stats", methods=["GET"])
    @require_action("archive.manage")
    def archive_stats():
        ...

Services run the gate themselves; these decorators answer 401 early for
anonymous callers and 403 for actions decidable from the token alone.
"""

import functools
import logging

from flask import g

from portal.services.permission import authorize
from portal.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def current_principal():
    """The Principal set by the JWT middleware, or None."""
    return getattr(g, "principal", None)


def require_principal(f):
    """Decorator: reject requests without a valid bearer token."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if current_principal() is None:
            return api_error(E.UNAUTHENTICATED, "Authentication required")
        return f(*args, **kwargs)

    return decorated


def require_action(action: str):
    """
    Decorator: require the principal to pass the gate for ``action``.

    Args:
        action: Gate action, e.g. "archive.manage"
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            principal = current_principal()
            if principal is None:
                return api_error(E.UNAUTHENTICATED, "Authentication required")
            if not authorize(principal, action):
                logger.warning(
                    "Principal %s denied: action '%s' on %s",
                    principal.id, action, f.__name__,
                )
                return api_error(
                    E.FORBIDDEN, "Permission denied", details={"action": action},
                )
            return f(*args, **kwargs)
        return decorated
    return decorator
