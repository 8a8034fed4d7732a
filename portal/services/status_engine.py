"""
Status Derivation Engine — detailed application status from submission history.

The label is computed on every read and never written back:

    submitted / approved / completed submissions exist
        → newest one wins: "Submitted: FRA", "Approved: EAA", "Completed: SEM"
    only drafts exist
        → raw status of the most recently updated draft ("Draft")
    nothing
        → "Draft"

"Newest" means latest submitted_at (falling back to created_at); ties go to
the later insert. Rejected submissions never contribute.

Application.status / Application.phase are a different concept (coarse
workflow state) and are not read or written here.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone

from sqlalchemy import select

from portal.core.exceptions import NotFoundError
from portal.models import db
from portal.models.application import ActivitySubmission, Application

DEFAULT_LABEL = "Draft"

_REPORTABLE = {
    "submitted": "Submitted",
    "approved": "Approved",
    "completed": "Completed",
}

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _as_utc(value: datetime | None) -> datetime:
    # SQLite hands back naive datetimes; freshly built rows carry aware ones.
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _get(submission, key):
    if isinstance(submission, dict):
        return submission.get(key)
    return getattr(submission, key, None)


def _status(submission) -> str:
    return (_get(submission, "status") or "").lower()


def derive_detailed_status(submissions) -> str:
    """
    Pure derivation over an iterable of submissions (ORM rows or dicts).

    Dict keys / attributes read: status, activity_type, submitted_at,
    created_at, updated_at. Position in the iterable is the insertion order.
    """
    indexed = list(enumerate(submissions))

    reportable = [(pos, s) for pos, s in indexed if _status(s) in _REPORTABLE]
    if reportable:
        pos, latest = max(
            reportable,
            key=lambda item: (
                _as_utc(_get(item[1], "submitted_at") or _get(item[1], "created_at")),
                item[0],
            ),
        )
        return f"{_REPORTABLE[_status(latest)]}: {_get(latest, 'activity_type')}"

    drafts = [(pos, s) for pos, s in indexed if _status(s) == "draft"]
    if drafts:
        pos, latest = max(
            drafts,
            key=lambda item: (
                _as_utc(_get(item[1], "updated_at") or _get(item[1], "created_at")),
                item[0],
            ),
        )
        raw = _get(latest, "status") or ""
        return raw.replace("_", " ").title() or DEFAULT_LABEL

    return DEFAULT_LABEL


def _submissions_for(application_ids):
    return db.session.execute(
        select(ActivitySubmission)
        .where(ActivitySubmission.application_id.in_(application_ids))
        .order_by(ActivitySubmission.id.asc())
    ).scalars().all()


def compute_detailed_status(application_id: int) -> str:
    """
    Fetch every submission of one application and derive its label.

    Raises:
        NotFoundError: If the application does not exist.
    """
    if db.session.get(Application, application_id) is None:
        raise NotFoundError("Application", application_id)
    return derive_detailed_status(_submissions_for([application_id]))


def compute_detailed_statuses(application_ids: list[int]) -> dict[int, str]:
    """
    Batch variant for list views: one submissions query for many applications.

    Applications without submissions map to "Draft".
    """
    ids = list(dict.fromkeys(application_ids))
    if not ids:
        return {}

    grouped: dict[int, list] = defaultdict(list)
    for submission in _submissions_for(ids):
        grouped[submission.application_id].append(submission)

    return {app_id: derive_detailed_status(grouped.get(app_id, [])) for app_id in ids}
