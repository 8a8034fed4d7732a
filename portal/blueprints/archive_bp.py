"""
Admin Archive Blueprint — archive, restore, permanent delete, ghost ids.

Platform administrators only. Every route is gated twice: the decorator
answers 401/403 from the token, the service re-checks before writing.

Endpoints:
    GET    /api/v1/admin/archive[?entity_type=company]   open archive records
    GET    /api/v1/admin/archive/stats
    GET    /api/v1/admin/archive/constraint-issues

    POST   /api/v1/admin/archive/<entity_type>
           Body: {ids: [...], reason: "...", include_related: bool}
    POST   /api/v1/admin/archive/<entity_type>/restore
           Body: {ids: [...], include_related: bool}
    POST   /api/v1/admin/archive/<entity_type>/delete
           Body: {ids: [...], include_related: bool}
           Returns 409 with details.offenders when rows still reference a target.

    GET    /api/v1/admin/ghost-ids
    DELETE /api/v1/admin/ghost-ids/<application_id>
    POST   /api/v1/admin/ghost-ids/clear
           Body: {application_ids: [...]}
"""

import logging

from flask import Blueprint, jsonify, request

from portal.blueprints import id_list, json_body
from portal.middleware.permission_required import current_principal, require_action
from portal.services import archive_service
from portal.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

archive_bp = Blueprint("archive", __name__, url_prefix="/api/v1/admin")
register_error_handlers(archive_bp)


# ── Archive ────────────────────────────────────────────────────────────────────


@archive_bp.route("/archive", methods=["GET"])
@require_action("archive.manage")
def list_archived():
    result = archive_service.list_archived(
        current_principal(), entity_type=request.args.get("entity_type") or None,
    )
    return jsonify(result), 200


@archive_bp.route("/archive/stats", methods=["GET"])
@require_action("archive.manage")
def archive_stats():
    return jsonify(archive_service.archive_statistics(current_principal())), 200


@archive_bp.route("/archive/constraint-issues", methods=["GET"])
@require_action("archive.manage")
def constraint_issues():
    return jsonify(archive_service.constraint_issues(current_principal())), 200


@archive_bp.route("/archive/<entity_type>", methods=["POST"])
@require_action("archive.manage")
def bulk_archive(entity_type: str):
    data = json_body()
    result = archive_service.bulk_archive(
        current_principal(),
        entity_type,
        id_list(data),
        data.get("reason"),
        include_related=bool(data.get("include_related", False)),
    )
    return jsonify(result), 200


@archive_bp.route("/archive/<entity_type>/restore", methods=["POST"])
@require_action("archive.restore")
def restore(entity_type: str):
    data = json_body()
    result = archive_service.restore(
        current_principal(),
        entity_type,
        id_list(data),
        include_related=bool(data.get("include_related", False)),
    )
    return jsonify(result), 200


@archive_bp.route("/archive/<entity_type>/delete", methods=["POST"])
@require_action("archive.delete")
def permanently_delete(entity_type: str):
    data = json_body()
    result = archive_service.permanently_delete(
        current_principal(),
        entity_type,
        id_list(data),
        include_related=bool(data.get("include_related", False)),
    )
    return jsonify(result), 200


# ── Ghost identifiers ──────────────────────────────────────────────────────────


@archive_bp.route("/ghost-ids", methods=["GET"])
@require_action("ghost.manage")
def list_ghost_ids():
    return jsonify(archive_service.list_ghost_identifiers(current_principal())), 200


@archive_bp.route("/ghost-ids/<application_id>", methods=["DELETE"])
@require_action("ghost.manage")
def clear_ghost_id(application_id: str):
    result = archive_service.clear_ghost_identifier(current_principal(), application_id)
    return jsonify(result), 200


@archive_bp.route("/ghost-ids/clear", methods=["POST"])
@require_action("ghost.manage")
def clear_ghost_ids():
    data = json_body()
    result = archive_service.clear_ghost_identifiers(
        current_principal(), id_list(data, "application_ids"),
    )
    return jsonify(result), 200
