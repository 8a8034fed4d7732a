"""
Registry Blueprint — company and facility registration.

Endpoints:
    POST   /api/v1/companies                         Body: {name, is_contractor?}
    POST   /api/v1/companies/<company_id>/facilities Body: {name}
    GET    /api/v1/companies/<company_id>/facilities
"""

from flask import Blueprint, jsonify, request

from portal.blueprints import json_body
from portal.middleware.permission_required import current_principal, require_principal
from portal.services import registry_service
from portal.services.application_service import check_company_scope
from portal.services.permission import require
from portal.utils.errors import register_error_handlers

registry_bp = Blueprint("registry", __name__, url_prefix="/api/v1")
register_error_handlers(registry_bp)


@registry_bp.route("/companies", methods=["POST"])
@require_principal
def register_company():
    data = json_body()
    company = registry_service.register_company(
        current_principal(), data.get("name"), is_contractor=bool(data.get("is_contractor", False)),
    )
    return jsonify(company.to_dict()), 201


@registry_bp.route("/companies/<int:company_id>/facilities", methods=["POST"])
@require_principal
def register_facility(company_id: int):
    data = json_body()
    facility = registry_service.register_facility(current_principal(), company_id, data.get("name"))
    return jsonify(facility.to_dict()), 201


@registry_bp.route("/companies/<int:company_id>/facilities", methods=["GET"])
@require_principal
def list_facilities(company_id: int):
    principal = current_principal()
    require(principal, "record.view")
    check_company_scope(principal, company_id, "record.view")
    include_archived = request.args.get("include_archived", "").lower() == "true"
    items = [f.to_dict() for f in registry_service.list_facilities(company_id, include_archived)]
    return jsonify({"items": items, "total": len(items)}), 200
