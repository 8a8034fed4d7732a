"""
Permission Gate — single authorization predicate for every mutating operation.

Replaces the scattered ``role != 'system_admin'`` / permission-level checks
with one matrix. Pure functions: no DB access, no side effects.

Usage:
    from portal.services.permission import Principal, authorize, require

    if authorize(principal, "record.create"):
        ...

    # Raises PermissionDenied when not allowed
    require(principal, "archive.manage")

Levels are ordinal: viewer < editor < manager < owner. A missing or
unknown level ranks as viewer.
"""

from dataclasses import dataclass

from portal.core.exceptions import PermissionDenied

LEVEL_RANK = {
    "viewer": 0,
    "editor": 1,
    "manager": 2,
    "owner": 3,
}

# Roles that manage their own organisation regardless of permission level.
ADMINISTRATIVE_ROLES = frozenset({
    "system_admin",
    "company_admin",
    "contractor_account_owner",
    "contractor_individual",
})

# Top-level administrative role: archive, delete, ghost-id management and
# changing its own permission level.
PLATFORM_ADMIN_ROLES = frozenset({"system_admin"})

# action -> minimum permission level for non-administrative roles.
# None means no level suffices (platform administrators only).
ACTION_MATRIX = {
    "record.view": "viewer",
    "record.create": "editor",
    "record.edit": "editor",
    "team.invite": "manager",
    "team.change_permission": "manager",
    "team.transfer_ownership": "manager",
    "archive.manage": None,
    "archive.restore": None,
    "archive.delete": None,
    "ghost.manage": None,
    "submission.review": None,
}


@dataclass(frozen=True)
class Principal:
    """The authenticated caller, as supplied by the principal provider."""

    id: str
    role: str = "team_member"
    permission_level: str = "viewer"
    company_id: int | None = None

    @classmethod
    def from_user(cls, user) -> "Principal":
        return cls(
            id=str(user.id),
            role=user.role,
            permission_level=user.permission_level or "viewer",
            company_id=user.company_id,
        )


def rank(level: str | None) -> int:
    """Ordinal rank of a permission level; unknown levels rank as viewer."""
    return LEVEL_RANK.get(level or "viewer", 0)


def has_level(principal: Principal, required: str) -> bool:
    """True when the principal's level is at or above ``required``."""
    return rank(principal.permission_level) >= rank(required)


def is_administrative(principal: Principal) -> bool:
    return principal.role in ADMINISTRATIVE_ROLES


def is_platform_admin(principal: Principal) -> bool:
    return principal.role in PLATFORM_ADMIN_ROLES


def authorize(principal: Principal | None, action: str) -> bool:
    """
    Decide whether ``principal`` may perform ``action``.

    Platform administrators may do everything. Administrative roles may do
    everything except the platform-only actions. Everyone else needs the
    minimum level from ACTION_MATRIX. Unknown actions are denied.
    """
    if principal is None or action not in ACTION_MATRIX:
        return False

    if is_platform_admin(principal):
        return True

    required = ACTION_MATRIX[action]
    if required is None:
        return False

    if is_administrative(principal):
        return True

    return has_level(principal, required)


def require(principal: Principal | None, action: str) -> None:
    """
    Assert the principal may perform ``action``.

    Raises:
        PermissionDenied: If authorize() says no.
    """
    if not authorize(principal, action):
        raise PermissionDenied(action, principal.id if principal else None)


def check_not_self_target(principal: Principal, target_user_id: str, action: str) -> None:
    """
    Block a principal from changing its own permission level.

    Platform administrators are exempt.

    Raises:
        PermissionDenied: When target_user_id is the principal itself.
    """
    if str(target_user_id) == str(principal.id) and not is_platform_admin(principal):
        raise PermissionDenied(
            action, principal.id, reason="cannot change your own permission level",
        )


def get_permitted_actions(principal: Principal) -> set[str]:
    """Return every action the principal is allowed to perform."""
    return {action for action in ACTION_MATRIX if authorize(principal, action)}
