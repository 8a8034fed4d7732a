"""
Activity submission service.

Lifecycle:
    draft ──submit──▶ submitted ──review──▶ approved | rejected | completed

Drafts are editable by anyone holding record.edit on the owning company.
Submitted rows are frozen; only a platform administrator review moves them
on. Rejected submissions drop out of detailed-status derivation.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select

from portal.core.exceptions import NotFoundError, ValidationError
from portal.models import db
from portal.models.application import ActivitySubmission, ActivityTemplate
from portal.services.application_service import check_company_scope, get_application
from portal.services.permission import Principal, require

logger = logging.getLogger(__name__)

REVIEW_OUTCOMES = {
    "approve": "approved",
    "reject": "rejected",
    "complete": "completed",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _get_submission(application_id: int, submission_id: int) -> ActivitySubmission:
    submission = db.session.get(ActivitySubmission, submission_id)
    if submission is None or submission.application_id != application_id:
        raise NotFoundError("ActivitySubmission", submission_id)
    return submission


def _editable_application(principal: Principal, application_id: int):
    require(principal, "record.edit")
    application = get_application(application_id)
    check_company_scope(principal, application.company_id, "record.edit")
    if application.is_archived:
        raise ValidationError("Archived applications cannot be edited")
    return application


def list_submissions(principal: Principal, application_id: int) -> list[dict]:
    require(principal, "record.view")
    application = get_application(application_id)
    check_company_scope(principal, application.company_id, "record.view")
    rows = db.session.execute(
        select(ActivitySubmission)
        .where(ActivitySubmission.application_id == application.id)
        .order_by(ActivitySubmission.id)
    ).scalars().all()
    return [s.to_dict() for s in rows]


def save_submission(
    principal: Principal,
    application_id: int,
    data: dict,
    activity_template_id: int | None = None,
    submission_id: int | None = None,
) -> ActivitySubmission:
    """Create a new draft, or update an existing draft in place.

    activity_type is snapshotted from the template when one is given,
    otherwise taken from the application.
    """
    application = _editable_application(principal, application_id)
    if data is not None and not isinstance(data, dict):
        raise ValidationError("data must be an object", details={"data": "invalid"})

    if submission_id is not None:
        submission = _get_submission(application.id, submission_id)
        if submission.status != "draft":
            raise ValidationError(
                f"Submission {submission.id} is {submission.status} and can no longer be edited",
            )
        submission.data = data or {}
        db.session.commit()
        return submission

    activity_type = application.activity_type
    if activity_template_id is not None:
        template = db.session.get(ActivityTemplate, activity_template_id)
        if template is None:
            raise NotFoundError("ActivityTemplate", activity_template_id)
        activity_type = template.activity_type

    submission = ActivitySubmission(
        application_id=application.id,
        activity_template_id=activity_template_id,
        activity_type=activity_type,
        data=data or {},
        status="draft",
    )
    db.session.add(submission)
    db.session.commit()
    logger.info(
        "Draft submission saved", extra={"application_id": application.application_id},
    )
    return submission


def submit_submission(principal: Principal, application_id: int, submission_id: int) -> ActivitySubmission:
    application = _editable_application(principal, application_id)
    submission = _get_submission(application.id, submission_id)
    if submission.status != "draft":
        raise ValidationError(f"Only drafts can be submitted (current: {submission.status})")

    submission.status = "submitted"
    submission.submitted_by = principal.id
    submission.submitted_at = _utcnow()
    db.session.commit()
    logger.info(
        "Submission %s submitted", submission.id,
        extra={"application_id": application.application_id, "actor": principal.id},
    )
    return submission


def review_submission(
    principal: Principal,
    application_id: int,
    submission_id: int,
    outcome: str,
    notes: str | None = None,
) -> ActivitySubmission:
    """Platform-administrator review: approve, reject or complete.

    Approve / reject act on submitted rows. Complete also accepts an
    approved row.
    """
    require(principal, "submission.review")
    application = get_application(application_id)
    submission = _get_submission(application.id, submission_id)

    new_status = REVIEW_OUTCOMES.get((outcome or "").lower())
    if new_status is None:
        raise ValidationError(
            f"Invalid review outcome '{outcome}'",
            details={"outcome": f"must be one of {', '.join(REVIEW_OUTCOMES)}"},
        )

    allowed_from = ("submitted", "approved") if new_status == "completed" else ("submitted",)
    if submission.status not in allowed_from:
        raise ValidationError(
            f"Cannot {outcome} a {submission.status} submission",
            details={"status": submission.status},
        )
    if new_status == "rejected" and not (notes or "").strip():
        raise ValidationError("Rejection requires review notes", details={"notes": "empty"})

    submission.status = new_status
    submission.reviewed_by = principal.id
    submission.reviewed_at = _utcnow()
    submission.review_notes = notes
    db.session.commit()
    logger.info(
        "Submission %s %s", submission.id, new_status,
        extra={"application_id": application.application_id, "actor": principal.id},
    )
    return submission
