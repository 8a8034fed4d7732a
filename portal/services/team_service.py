"""
Team service — invitations, permission-level changes and ownership transfer.

All operations are gated and scoped to the caller's company. A principal
may not change its own permission level (platform administrators excepted).
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import select

from portal.core.exceptions import ConflictError, NotFoundError, PermissionDenied, ValidationError
from portal.models import db
from portal.models.registry import PERMISSION_LEVELS, Company, User
from portal.services.application_service import check_company_scope
from portal.services.permission import (
    Principal,
    check_not_self_target,
    is_administrative,
    rank,
    require,
)

logger = logging.getLogger(__name__)


def _get_user(user_id: str) -> User:
    user = db.session.get(User, str(user_id))
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def list_team(principal: Principal, company_id: int) -> list[dict]:
    require(principal, "record.view")
    check_company_scope(principal, company_id, "record.view")
    users = db.session.execute(
        select(User).where(User.company_id == company_id).order_by(User.email)
    ).scalars().all()
    return [u.to_dict() for u in users]


def invite_member(
    principal: Principal,
    company_id: int,
    email: str,
    permission_level: str = "viewer",
    first_name: str | None = None,
    last_name: str | None = None,
) -> User:
    """Add a user to a company's team.

    Invitees get at most the manager level; owner is only reachable
    through transfer_ownership.
    """
    action = "team.invite"
    require(principal, action)
    check_company_scope(principal, company_id, action)

    email = (email or "").strip().lower()
    if "@" not in email:
        raise ValidationError("A valid email is required", details={"email": "invalid"})
    if permission_level not in PERMISSION_LEVELS or permission_level == "owner":
        raise ValidationError(
            f"Invalid permission level '{permission_level}'",
            details={"permission_level": "must be one of viewer, editor, manager"},
        )

    company = db.session.get(Company, company_id)
    if company is None:
        raise NotFoundError("Company", company_id)
    if company.is_archived:
        raise ValidationError("Cannot invite members to an archived company")
    if db.session.execute(select(User.id).where(User.email == email)).first() is not None:
        raise ConflictError("User", "email", email)

    user = User(
        id=uuid.uuid4().hex,
        email=email,
        first_name=first_name,
        last_name=last_name,
        permission_level=permission_level,
        company_id=company.id,
    )
    db.session.add(user)
    db.session.commit()
    logger.info(
        "User %s invited to company %s as %s", user.id, company.id, permission_level,
        extra={"actor": principal.id},
    )
    return user


def change_permission_level(principal: Principal, target_user_id: str, level: str) -> User:
    """Set a team member's permission level.

    A principal may not grant a level above its own unless it holds an
    administrative role.
    """
    action = "team.change_permission"
    require(principal, action)
    check_not_self_target(principal, target_user_id, action)

    if level not in PERMISSION_LEVELS:
        raise ValidationError(
            f"Invalid permission level '{level}'",
            details={"permission_level": f"must be one of {', '.join(PERMISSION_LEVELS)}"},
        )

    user = _get_user(target_user_id)
    if user.company_id is None:
        raise ValidationError("User is not a member of any company")
    check_company_scope(principal, user.company_id, action)

    if not is_administrative(principal) and rank(level) > rank(principal.permission_level):
        raise PermissionDenied(action, principal.id, reason="cannot grant a level above your own")

    previous = user.permission_level
    user.permission_level = level
    db.session.commit()
    logger.info(
        "Permission level of %s changed %s -> %s", user.id, previous, level,
        extra={"actor": principal.id},
    )
    return user


def transfer_ownership(principal: Principal, company_id: int, new_owner_id: str) -> dict:
    """Hand the owner level to another member of the same company.

    The current owners drop to manager. Only an owner of the company (or an
    administrative role) may transfer.
    """
    action = "team.transfer_ownership"
    require(principal, action)
    check_company_scope(principal, company_id, action)
    if not is_administrative(principal) and principal.permission_level != "owner":
        raise PermissionDenied(action, principal.id, reason="only the owner can transfer ownership")

    new_owner = _get_user(new_owner_id)
    if new_owner.company_id != company_id:
        raise ValidationError(
            "New owner must belong to the same company",
            details={"new_owner_id": new_owner_id},
        )
    if not new_owner.is_active:
        raise ValidationError("New owner must be an active user")
    if new_owner.permission_level == "owner":
        raise ValidationError("User is already an owner")

    previous_owners = db.session.execute(
        select(User).where(
            User.company_id == company_id,
            User.permission_level == "owner",
        )
    ).scalars().all()

    for owner in previous_owners:
        owner.permission_level = "manager"
    new_owner.permission_level = "owner"
    db.session.commit()

    logger.info(
        "Ownership of company %s transferred to %s", company_id, new_owner.id,
        extra={"actor": principal.id},
    )
    return {
        "company_id": company_id,
        "new_owner": new_owner.to_dict(),
        "previous_owners": [o.id for o in previous_owners],
    }
