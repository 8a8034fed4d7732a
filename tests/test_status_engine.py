"""
Tests: detailed status derivation from submission history.
"""

from datetime import datetime, timedelta, timezone

import pytest

from portal.core.exceptions import NotFoundError
from portal.models import db as _db
from portal.models.application import Application
from portal.services import status_engine

T0 = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


def _sub(status, activity_type, minutes=0, **kwargs):
    at = T0 + timedelta(minutes=minutes)
    row = {"status": status, "activity_type": activity_type, "created_at": at, "updated_at": at}
    if status != "draft":
        row["submitted_at"] = at
    row.update(kwargs)
    return row


# ── Pure derivation ──────────────────────────────────────────────────────────


def test_no_submissions_is_draft():
    assert status_engine.derive_detailed_status([]) == "Draft"


def test_single_submitted():
    assert status_engine.derive_detailed_status([_sub("submitted", "FRA")]) == "Submitted: FRA"


def test_latest_reportable_wins():
    history = [_sub("submitted", "FRA", 0), _sub("approved", "EAA", 10)]
    assert status_engine.derive_detailed_status(history) == "Approved: EAA"


def test_order_of_input_does_not_matter_when_times_differ():
    history = [_sub("approved", "EAA", 10), _sub("submitted", "FRA", 0)]
    assert status_engine.derive_detailed_status(history) == "Approved: EAA"


def test_completed_label():
    assert status_engine.derive_detailed_status([_sub("completed", "CR")]) == "Completed: CR"


def test_rejected_submissions_are_ignored():
    history = [_sub("submitted", "FRA", 0), _sub("rejected", "EAA", 30)]
    assert status_engine.derive_detailed_status(history) == "Submitted: FRA"


def test_only_rejected_falls_back_to_default():
    assert status_engine.derive_detailed_status([_sub("rejected", "FRA")]) == "Draft"


def test_drafts_only_uses_raw_status():
    history = [_sub("draft", "FRA", 0), _sub("draft", "EAA", 5)]
    assert status_engine.derive_detailed_status(history) == "Draft"


def test_reportable_beats_newer_draft():
    history = [_sub("submitted", "FRA", 0), _sub("draft", "EAA", 60)]
    assert status_engine.derive_detailed_status(history) == "Submitted: FRA"


def test_tie_goes_to_later_insert():
    history = [_sub("submitted", "FRA", 0), _sub("submitted", "SEM", 0)]
    assert status_engine.derive_detailed_status(history) == "Submitted: SEM"


def test_missing_submitted_at_falls_back_to_created_at():
    history = [
        _sub("approved", "FRA", 20, submitted_at=None),
        _sub("submitted", "EAA", 10),
    ]
    assert status_engine.derive_detailed_status(history) == "Approved: FRA"


def test_naive_and_aware_timestamps_compare():
    naive_later = (T0 + timedelta(hours=1)).replace(tzinfo=None)
    history = [
        _sub("submitted", "FRA", 0),
        _sub("approved", "EAA", 0, submitted_at=naive_later),
    ]
    assert status_engine.derive_detailed_status(history) == "Approved: EAA"


def test_status_matching_is_case_insensitive():
    assert status_engine.derive_detailed_status([_sub("APPROVED", "SEM")]) == "Approved: SEM"


# ── Database-backed ──────────────────────────────────────────────────────────


def test_compute_detailed_status_reads_submissions(company, facility, make_application, make_submission):
    app_row = make_application(company, facility, "ACME-001-101")
    make_submission(app_row, "FRA", status="submitted", minutes=0)
    make_submission(app_row, "EAA", status="approved", minutes=15)

    assert status_engine.compute_detailed_status(app_row.id) == "Approved: EAA"


def test_compute_detailed_status_never_writes(company, facility, make_application, make_submission):
    app_row = make_application(company, facility, "ACME-001-101")
    make_submission(app_row, "FRA", status="submitted")

    status_engine.compute_detailed_status(app_row.id)

    _db.session.expire_all()
    stored = _db.session.get(Application, app_row.id)
    assert stored.status == "draft"
    assert stored.phase == "pre_activity"


def test_compute_detailed_status_missing_application():
    with pytest.raises(NotFoundError):
        status_engine.compute_detailed_status(12345)


def test_batch_statuses(company, facility, make_application, make_submission):
    a = make_application(company, facility, "ACME-001-101")
    b = make_application(company, facility, "ACME-001-102")
    c = make_application(company, facility, "ACME-001-103")
    make_submission(a, "FRA", status="submitted")
    make_submission(b, "SEM", status="draft")

    result = status_engine.compute_detailed_statuses([a.id, b.id, c.id])

    assert result == {a.id: "Submitted: FRA", b.id: "Draft", c.id: "Draft"}


def test_batch_statuses_empty_input():
    assert status_engine.compute_detailed_statuses([]) == {}
