"""
JWT Service — access token generation and verification.

Access token:  60 minutes (configurable via JWT_ACCESS_EXPIRES)
Algorithm:     HS256

Token payload:
{
    "sub": <user_id>,
    "role": "team_member",
    "permission_level": "editor",
    "company_id": 3,
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}

Token issuance belongs to the identity provider; generate_access_token()
exists for it and for tests.
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from portal.services.permission import Principal

DEFAULT_ACCESS_EXPIRES = 3600      # 60 minutes
ALGORITHM = "HS256"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)


def generate_access_token(principal: Principal) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": principal.id,
        "role": principal.role,
        "permission_level": principal.permission_level,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=_get_access_expires()),
        "jti": str(uuid.uuid4()),
    }
    if principal.company_id is not None:
        payload["company_id"] = principal.company_id
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Decode and verify an access token.

    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, ...)
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])
    if payload.get("type") != "access":
        raise jwt.InvalidTokenError(f"Expected access token, got {payload.get('type')}")
    return payload


def principal_from_payload(payload: dict) -> Principal:
    """Build the Principal the permission gate works with from token claims."""
    sub = payload.get("sub")
    if not sub:
        raise jwt.InvalidTokenError("Token has no subject")
    company_id = payload.get("company_id")
    return Principal(
        id=str(sub),
        role=payload.get("role") or "team_member",
        permission_level=payload.get("permission_level") or "viewer",
        company_id=int(company_id) if company_id is not None else None,
    )
