"""
Tests: application creation with identifier allocation, preview,
detailed status and coarse workflow transitions.
"""

from types import SimpleNamespace

import pytest
from sqlalchemy.exc import IntegrityError

from portal.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from portal.models import db as _db
from portal.models.application import Application
from portal.services import application_service, archive_service, code_generator, ghost_ledger
from portal.services.permission import Principal


def _create(principal, company, facility, activity_type="FRA", title="Lighting retrofit"):
    return application_service.create_application(
        principal, company.id, facility.id, activity_type, title,
    )


# ── create_application ───────────────────────────────────────────────────────


def test_create_allocates_first_identifier(editor, company, facility):
    app_row = _create(editor, company, facility)

    assert app_row.application_id == "ACME-001-101"
    assert app_row.status == "draft"
    assert app_row.phase == "pre_activity"
    assert app_row.created_by == editor.id
    assert Application.query.count() == 1


def test_create_sequences_per_activity(editor, company, facility):
    ids = [
        _create(editor, company, facility, "FRA").application_id,
        _create(editor, company, facility, "FRA").application_id,
        _create(editor, company, facility, "EAA").application_id,
    ]
    assert ids == ["ACME-001-101", "ACME-001-102", "ACME-001-201"]


def test_create_normalizes_activity_type(editor, company, facility):
    assert _create(editor, company, facility, " sem ").activity_type == "SEM"


def test_create_skips_open_ghost(editor, company, facility):
    ghost_ledger.record("ACME-001-101", reason="retired")
    _db.session.commit()

    assert _create(editor, company, facility).application_id == "ACME-001-102"


def test_archived_application_identifier_never_reissued(admin, editor, company, facility):
    first = _create(editor, company, facility)
    archive_service.bulk_archive(admin, "application", [first.id], "Duplicate")
    archive_service.permanently_delete(admin, "application", [first.id])

    assert _create(editor, company, facility).application_id == "ACME-001-102"


def test_cleared_ghost_identifier_is_reissued(admin, editor, company, facility):
    first = _create(editor, company, facility)
    archive_service.bulk_archive(admin, "application", [first.id], "Duplicate")
    archive_service.permanently_delete(admin, "application", [first.id])
    archive_service.clear_ghost_identifier(admin, "ACME-001-101")

    assert _create(editor, company, facility).application_id == "ACME-001-101"


def test_create_retries_after_losing_insert_race(editor, company, facility, make_application, monkeypatch):
    make_application(company, facility, "ACME-001-101")
    real = code_generator.generate_application_id
    calls = []

    def stale_first(company_code, facility_code, activity_type, exclude=None):
        calls.append(set(exclude or ()))
        if len(calls) == 1:
            # simulates a concurrent writer claiming the id between read and insert
            return "ACME-001-101"
        return real(company_code, facility_code, activity_type, exclude=exclude)

    monkeypatch.setattr(code_generator, "generate_application_id", stale_first)

    app_row = _create(editor, company, facility)

    assert app_row.application_id == "ACME-001-102"
    assert calls[1] == {"ACME-001-101"}
    assert Application.query.count() == 2


def test_create_gives_up_after_max_attempts(app, editor, company, facility, make_application, monkeypatch):
    make_application(company, facility, "ACME-001-101")
    attempts = []

    def always_taken(company_code, facility_code, activity_type, exclude=None):
        attempts.append(1)
        return "ACME-001-101"

    monkeypatch.setattr(code_generator, "generate_application_id", always_taken)
    monkeypatch.setitem(app.config, "ID_ALLOCATION_MAX_ATTEMPTS", 3)

    with pytest.raises(ConflictError) as exc:
        _create(editor, company, facility)

    assert exc.value.field == "application_id"
    assert len(attempts) == 3
    assert Application.query.count() == 1


def test_create_does_not_retry_non_identifier_integrity_error(editor, company, facility, monkeypatch):
    real = code_generator.generate_application_id
    calls = []

    def counting(company_code, facility_code, activity_type, exclude=None):
        calls.append(1)
        return real(company_code, facility_code, activity_type, exclude=exclude)

    # facility row gone by insert time: foreign key fails, application_id is free
    missing = SimpleNamespace(id=9999, code=facility.code, company_id=company.id)
    monkeypatch.setattr(
        application_service, "_active_company_and_facility", lambda cid, fid: (company, missing),
    )
    monkeypatch.setattr(code_generator, "generate_application_id", counting)

    with pytest.raises(IntegrityError):
        _create(editor, company, facility)

    assert len(calls) == 1
    assert Application.query.count() == 0


def test_create_requires_editor(viewer, company, facility):
    with pytest.raises(PermissionDenied):
        _create(viewer, company, facility)


def test_create_outside_own_company_denied(company, facility, make_company):
    other = make_company("Other")
    outsider = Principal(id="x-1", permission_level="owner", company_id=other.id)
    with pytest.raises(PermissionDenied):
        _create(outsider, company, facility)


def test_platform_admin_creates_for_any_company(admin, company, facility):
    assert _create(admin, company, facility).application_id == "ACME-001-101"


def test_create_validates_input(editor, company, facility):
    with pytest.raises(ValidationError):
        _create(editor, company, facility, title="  ")
    with pytest.raises(ValidationError):
        _create(editor, company, facility, activity_type="XYZ")


def test_create_rejects_foreign_facility(editor, company, make_company, make_facility):
    foreign = make_facility(make_company("Other"))
    with pytest.raises(NotFoundError):
        application_service.create_application(editor, company.id, foreign.id, "FRA", "t")


def test_create_under_archived_facility_rejected(admin, editor, company, facility):
    archive_service.bulk_archive(admin, "facility", [facility.id], "Closed")
    with pytest.raises(ValidationError):
        _create(editor, company, facility)


# ── predict / status ─────────────────────────────────────────────────────────


def test_predict_next_id_matches_create_and_writes_nothing(editor, company, facility):
    predicted = application_service.predict_next_application_id(company.id, facility.id, "CR")

    assert predicted == "ACME-001-501"
    assert Application.query.count() == 0
    assert _create(editor, company, facility, "CR").application_id == predicted


def test_detailed_status_separate_from_stored_status(editor, company, facility, make_submission):
    app_row = _create(editor, company, facility)
    make_submission(app_row, "FRA", status="submitted")

    result = application_service.get_application_detailed_status(app_row.id, principal=editor)

    assert result == {
        "application_id": "ACME-001-101",
        "status": "draft",
        "phase": "pre_activity",
        "detailed_status": "Submitted: FRA",
    }


def test_detailed_status_missing_application():
    with pytest.raises(NotFoundError):
        application_service.get_application_detailed_status(404)


# ── transitions ──────────────────────────────────────────────────────────────


def test_transition_submitted_stamps_submitter(editor, company, facility):
    app_row = _create(editor, company, facility)

    updated = application_service.transition_application(editor, app_row.id, status="submitted")

    assert updated.status == "submitted"
    assert updated.submitted_by == editor.id
    assert updated.submitted_at is not None


def test_transition_review_outcome_records_notes(admin, editor, company, facility):
    app_row = _create(editor, company, facility)
    updated = application_service.transition_application(
        admin, app_row.id, status="needs_revision", phase="post_activity", notes="Missing invoices",
    )
    assert updated.status == "needs_revision"
    assert updated.phase == "post_activity"
    assert updated.review_notes == "Missing invoices"
    assert updated.reviewed_by == admin.id


@pytest.mark.parametrize("kwargs", [{}, {"status": "done"}, {"phase": "during"}])
def test_transition_validates(editor, company, facility, kwargs):
    app_row = _create(editor, company, facility)
    with pytest.raises(ValidationError):
        application_service.transition_application(editor, app_row.id, **kwargs)


def test_transition_requires_edit_permission(editor, viewer, company, facility):
    app_row = _create(editor, company, facility)
    with pytest.raises(PermissionDenied):
        application_service.transition_application(viewer, app_row.id, status="in_progress")


# ── listing ──────────────────────────────────────────────────────────────────


def test_list_company_applications_with_detailed_status(admin, editor, company, facility, make_submission):
    first = _create(editor, company, facility)
    second = _create(editor, company, facility, "EAA")
    third = _create(editor, company, facility, "SEM")
    make_submission(second, "EAA", status="approved")
    archive_service.bulk_archive(admin, "application", [third.id], "Withdrawn")

    result = application_service.list_company_applications(editor, company.id)

    assert result["total"] == 2
    assert [(i["application_id"], i["detailed_status"]) for i in result["items"]] == [
        (first.application_id, "Draft"),
        (second.application_id, "Approved: EAA"),
    ]
    assert application_service.list_company_applications(
        editor, company.id, include_archived=True,
    )["total"] == 3
