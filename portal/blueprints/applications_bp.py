"""
Applications Blueprint — creation, identifier preview, status, submissions.

Endpoints:
    POST   /api/v1/applications
           Body: {company_id, facility_id, activity_type, title, description?}
           Returns: 201 with the new application (allocated application_id).

    GET    /api/v1/applications/next-id?company_id=&facility_id=&activity_type=
           Returns: 200 {"application_id": "ACME-001-102"} (no write).

    GET    /api/v1/applications/<id>/status
           Returns: 200 with stored status/phase and the derived detailed_status.

    POST   /api/v1/applications/<id>/transition
           Body: {status?, phase?, notes?}

    GET    /api/v1/companies/<company_id>/applications[?include_archived=true]

    GET    /api/v1/applications/<id>/submissions
    POST   /api/v1/applications/<id>/submissions
           Body: {data, activity_template_id?, submission_id?}
    POST   /api/v1/applications/<id>/submissions/<sid>/submit
    POST   /api/v1/applications/<id>/submissions/<sid>/review
           Body: {outcome: approve|reject|complete, notes?}

Layer contract:
    - Blueprint: parse input, call service, return JSON.
    - Authorization and all writes are owned by the services.
"""

import logging

from flask import Blueprint, jsonify, request

from portal.blueprints import int_field, json_body
from portal.middleware.permission_required import current_principal, require_principal
from portal.services import application_service, submission_service
from portal.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

applications_bp = Blueprint("applications", __name__, url_prefix="/api/v1")
register_error_handlers(applications_bp)


# ── Applications ───────────────────────────────────────────────────────────────


@applications_bp.route("/applications", methods=["POST"])
@require_principal
def create_application():
    data = json_body()
    application = application_service.create_application(
        current_principal(),
        company_id=int_field(data, "company_id"),
        facility_id=int_field(data, "facility_id"),
        activity_type=data.get("activity_type"),
        title=data.get("title"),
        description=data.get("description"),
    )
    return jsonify(application.to_dict()), 201


@applications_bp.route("/applications/next-id", methods=["GET"])
@require_principal
def next_application_id():
    args = request.args
    application_id = application_service.predict_next_application_id(
        int_field(args, "company_id"),
        int_field(args, "facility_id"),
        args.get("activity_type"),
        principal=current_principal(),
    )
    return jsonify({"application_id": application_id}), 200


@applications_bp.route("/applications/<int:application_id>/status", methods=["GET"])
@require_principal
def application_status(application_id: int):
    result = application_service.get_application_detailed_status(
        application_id, principal=current_principal(),
    )
    return jsonify(result), 200


@applications_bp.route("/applications/<int:application_id>/transition", methods=["POST"])
@require_principal
def transition_application(application_id: int):
    data = json_body()
    application = application_service.transition_application(
        current_principal(),
        application_id,
        status=data.get("status"),
        phase=data.get("phase"),
        notes=data.get("notes"),
    )
    return jsonify(application.to_dict()), 200


@applications_bp.route("/companies/<int:company_id>/applications", methods=["GET"])
@require_principal
def company_applications(company_id: int):
    include_archived = request.args.get("include_archived", "").lower() == "true"
    result = application_service.list_company_applications(
        current_principal(), company_id, include_archived=include_archived,
    )
    return jsonify(result), 200


# ── Submissions ────────────────────────────────────────────────────────────────


@applications_bp.route("/applications/<int:application_id>/submissions", methods=["GET"])
@require_principal
def list_submissions(application_id: int):
    items = submission_service.list_submissions(current_principal(), application_id)
    return jsonify({"items": items, "total": len(items)}), 200


@applications_bp.route("/applications/<int:application_id>/submissions", methods=["POST"])
@require_principal
def save_submission(application_id: int):
    data = json_body()
    submission_id = int_field(data, "submission_id", required=False)
    submission = submission_service.save_submission(
        current_principal(),
        application_id,
        data.get("data") or {},
        activity_template_id=int_field(data, "activity_template_id", required=False),
        submission_id=submission_id,
    )
    return jsonify(submission.to_dict()), 200 if submission_id else 201


@applications_bp.route(
    "/applications/<int:application_id>/submissions/<int:submission_id>/submit",
    methods=["POST"],
)
@require_principal
def submit_submission(application_id: int, submission_id: int):
    submission = submission_service.submit_submission(
        current_principal(), application_id, submission_id,
    )
    return jsonify(submission.to_dict()), 200


@applications_bp.route(
    "/applications/<int:application_id>/submissions/<int:submission_id>/review",
    methods=["POST"],
)
@require_principal
def review_submission(application_id: int, submission_id: int):
    data = json_body()
    submission = submission_service.review_submission(
        current_principal(),
        application_id,
        submission_id,
        outcome=data.get("outcome"),
        notes=data.get("notes"),
    )
    return jsonify(submission.to_dict()), 200
