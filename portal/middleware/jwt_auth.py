"""
JWT Auth Middleware — the principal provider.

Parses ``Authorization: Bearer <token>`` on every /api/v1/ request and
sets ``g.principal`` (portal.services.permission.Principal) or None.
Missing, expired and invalid tokens leave g.principal as None; gated
routes answer 401 through ``portal.middleware.permission_required``.
"""

import logging

import jwt as pyjwt
from flask import g, request

from portal.services.jwt_service import decode_access_token, principal_from_payload

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.principal = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]  # Strip "Bearer "

        try:
            g.principal = principal_from_payload(decode_access_token(token))
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired token on %s", path)
        except (pyjwt.InvalidTokenError, ValueError) as exc:
            logger.warning("Invalid token on %s: %s", path, exc)
