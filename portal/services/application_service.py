"""
Application service — creation, identifier preview, detailed status and
coarse workflow transitions.

Identifier allocation:
    code_generator computes the smallest free candidate. The insert runs in
    a savepoint under the unique constraint on applications.application_id;
    a concurrent writer that claimed the same string makes the flush raise
    IntegrityError, the savepoint is rolled back and the next candidate is
    tried. After ID_ALLOCATION_MAX_ATTEMPTS losses ConflictError is raised.
    An IntegrityError on a candidate nobody holds is not a race and is
    re-raised unchanged.

Company scope:
    Platform administrators act on any company. Everyone else only on the
    company carried by their principal.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import current_app, has_app_context
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from portal.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from portal.models import db
from portal.models.application import (
    ACTIVITY_TYPES,
    APPLICATION_PHASES,
    APPLICATION_STATUSES,
    Application,
)
from portal.models.registry import Company, Facility
from portal.services import code_generator, status_engine
from portal.services.permission import Principal, is_platform_admin, require

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _max_attempts() -> int:
    if has_app_context():
        return int(current_app.config.get("ID_ALLOCATION_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS))
    return DEFAULT_MAX_ATTEMPTS


def check_company_scope(principal: Principal, company_id: int, action: str) -> None:
    """Non-platform principals may only touch their own company."""
    if is_platform_admin(principal):
        return
    if principal.company_id is None or int(principal.company_id) != int(company_id):
        raise PermissionDenied(action, principal.id, reason="company outside your scope")


def _active_company_and_facility(company_id: int, facility_id: int) -> tuple[Company, Facility]:
    company = db.session.get(Company, company_id)
    if company is None:
        raise NotFoundError("Company", company_id)
    facility = db.session.get(Facility, facility_id)
    if facility is None or facility.company_id != company.id:
        raise NotFoundError("Facility", facility_id)
    if company.is_archived or facility.is_archived:
        raise ValidationError(
            "Cannot create applications under an archived company or facility",
            details={"company_id": company_id, "facility_id": facility_id},
        )
    return company, facility


def _validate_activity_type(activity_type: str) -> str:
    value = (activity_type or "").strip().upper()
    if value not in ACTIVITY_TYPES:
        raise ValidationError(
            f"Unknown activity_type '{activity_type}'",
            details={"activity_type": f"must be one of {', '.join(ACTIVITY_TYPES)}"},
        )
    return value


def _identifier_held(candidate: str) -> bool:
    return db.session.execute(
        select(Application.id).where(Application.application_id == candidate).limit(1)
    ).first() is not None


def get_application(application_id: int) -> Application:
    application = db.session.get(Application, application_id)
    if application is None:
        raise NotFoundError("Application", application_id)
    return application


# ── Create ─────────────────────────────────────────────────────────────────────


def create_application(
    principal: Principal,
    company_id: int,
    facility_id: int,
    activity_type: str,
    title: str,
    description: str | None = None,
) -> Application:
    """Create an application with a freshly allocated identifier.

    Raises:
        PermissionDenied: Gate or company scope refused.
        NotFoundError: Company or facility missing.
        ValidationError: Bad activity type, empty title, archived parent.
        ConflictError: Every allocation attempt lost an insert race.
    """
    require(principal, "record.create")
    check_company_scope(principal, company_id, "record.create")

    title = (title or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "empty"})
    activity_type = _validate_activity_type(activity_type)
    company, facility = _active_company_and_facility(company_id, facility_id)

    lost: set[str] = set()
    candidate = None
    for attempt in range(1, _max_attempts() + 1):
        candidate = code_generator.generate_application_id(
            company.short_name, facility.code, activity_type, exclude=lost,
        )
        application = Application(
            application_id=candidate,
            company_id=company.id,
            facility_id=facility.id,
            activity_type=activity_type,
            title=title,
            description=description,
            created_by=principal.id,
        )
        try:
            with db.session.begin_nested():
                db.session.add(application)
                db.session.flush()
        except IntegrityError:
            if not _identifier_held(candidate):
                # not a lost race on application_id (e.g. a parent row vanished)
                db.session.rollback()
                raise
            lost.add(candidate)
            logger.warning(
                "Application id %s claimed concurrently (attempt %d)", candidate, attempt,
                extra={"application_id": candidate},
            )
            continue

        db.session.commit()
        logger.info(
            "Application created", extra={"application_id": candidate, "actor": principal.id},
        )
        return application

    db.session.rollback()
    raise ConflictError("Application", "application_id", candidate)


def predict_next_application_id(
    company_id: int,
    facility_id: int,
    activity_type: str,
    principal: Principal | None = None,
) -> str:
    """Identifier the next create would receive right now. Writes nothing.

    A concurrent create may still take it first; create_application then
    moves on to the next free sequence.
    """
    if principal is not None:
        require(principal, "record.view")
        check_company_scope(principal, company_id, "record.view")
    activity_type = _validate_activity_type(activity_type)
    return code_generator.generate_application_id_for(company_id, facility_id, activity_type)


# ── Status ─────────────────────────────────────────────────────────────────────


def get_application_detailed_status(application_id: int, principal: Principal | None = None) -> dict:
    application = get_application(application_id)
    if principal is not None:
        require(principal, "record.view")
        check_company_scope(principal, application.company_id, "record.view")
    return {
        "application_id": application.application_id,
        "status": application.status,
        "phase": application.phase,
        "detailed_status": status_engine.compute_detailed_status(application.id),
    }


def transition_application(
    principal: Principal,
    application_id: int,
    status: str | None = None,
    phase: str | None = None,
    notes: str | None = None,
) -> Application:
    """Explicit change of the coarse workflow fields.

    Submission history is not consulted; the detailed status stays derived.
    Submitting stamps submitted_by/at, review outcomes stamp reviewed_by/at.
    """
    require(principal, "record.edit")
    application = get_application(application_id)
    check_company_scope(principal, application.company_id, "record.edit")

    if application.is_archived:
        raise ValidationError("Archived applications cannot change status")
    if status is None and phase is None:
        raise ValidationError("status or phase is required", details={"status": "empty"})
    if status is not None and status not in APPLICATION_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'",
            details={"status": f"must be one of {', '.join(APPLICATION_STATUSES)}"},
        )
    if phase is not None and phase not in APPLICATION_PHASES:
        raise ValidationError(
            f"Invalid phase '{phase}'",
            details={"phase": f"must be one of {', '.join(APPLICATION_PHASES)}"},
        )

    previous = application.status
    now = _utcnow()
    if status is not None:
        application.status = status
        if status == "submitted":
            application.submitted_by = principal.id
            application.submitted_at = now
        elif status in ("approved", "rejected", "needs_revision"):
            application.reviewed_by = principal.id
            application.reviewed_at = now
            application.review_notes = notes
    if phase is not None:
        application.phase = phase

    db.session.commit()
    logger.info(
        "Application %s transitioned %s -> %s", application.application_id, previous,
        application.status, extra={"application_id": application.application_id},
    )
    return application


# ── Listing ────────────────────────────────────────────────────────────────────


def list_company_applications(
    principal: Principal,
    company_id: int,
    include_archived: bool = False,
) -> dict:
    """A company's applications with detailed status (one submissions query)."""
    require(principal, "record.view")
    check_company_scope(principal, company_id, "record.view")
    if db.session.get(Company, company_id) is None:
        raise NotFoundError("Company", company_id)

    stmt = select(Application).where(Application.company_id == company_id)
    if not include_archived:
        stmt = stmt.where(Application.is_archived.is_(False))
    applications = db.session.execute(stmt.order_by(Application.id)).scalars().all()

    statuses = status_engine.compute_detailed_statuses([a.id for a in applications])
    items = []
    for application in applications:
        item = application.to_dict()
        item["detailed_status"] = statuses.get(application.id, status_engine.DEFAULT_LABEL)
        items.append(item)
    return {"items": items, "total": len(items)}
