"""
Team Blueprint — members, permission levels and ownership.

Endpoints:
    GET    /api/v1/team/<company_id>/members
    POST   /api/v1/team/<company_id>/members           Body: {email, permission_level?}
    PUT    /api/v1/team/members/<user_id>/permission   Body: {permission_level}
    POST   /api/v1/team/<company_id>/transfer-ownership Body: {new_owner_id}
"""

from flask import Blueprint, jsonify

from portal.blueprints import json_body
from portal.core.exceptions import ValidationError
from portal.middleware.permission_required import current_principal, require_principal
from portal.services import team_service
from portal.utils.errors import register_error_handlers

team_bp = Blueprint("team", __name__, url_prefix="/api/v1/team")
register_error_handlers(team_bp)


@team_bp.route("/<int:company_id>/members", methods=["GET"])
@require_principal
def list_members(company_id: int):
    items = team_service.list_team(current_principal(), company_id)
    return jsonify({"items": items, "total": len(items)}), 200


@team_bp.route("/<int:company_id>/members", methods=["POST"])
@require_principal
def invite_member(company_id: int):
    data = json_body()
    user = team_service.invite_member(
        current_principal(),
        company_id,
        data.get("email"),
        data.get("permission_level", "viewer"),
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
    )
    return jsonify(user.to_dict()), 201


@team_bp.route("/members/<user_id>/permission", methods=["PUT"])
@require_principal
def change_permission(user_id: str):
    data = json_body()
    user = team_service.change_permission_level(
        current_principal(), user_id, data.get("permission_level"),
    )
    return jsonify(user.to_dict()), 200


@team_bp.route("/<int:company_id>/transfer-ownership", methods=["POST"])
@require_principal
def transfer_ownership(company_id: int):
    data = json_body()
    new_owner_id = data.get("new_owner_id")
    if not new_owner_id:
        raise ValidationError("Field 'new_owner_id' is required", details={"new_owner_id": "missing"})
    result = team_service.transfer_ownership(current_principal(), company_id, str(new_owner_id))
    return jsonify(result), 200
