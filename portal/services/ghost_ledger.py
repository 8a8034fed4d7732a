"""
Ghost Identifier Ledger — retired application identifiers that block reuse.

Rules:
  - record() is idempotent. An open entry is left alone; a cleared entry
    is re-opened, because the identifier has been retired again.
  - clear() / clear_many() only flip is_cleared. Clearing an absent or
    already-cleared identifier is a no-op, never an error.
  - Rows are never deleted; cleared entries keep the audit trail.
  - The ledger never commits. Callers own the transaction, so a ghost write
    rolls back together with the archive that caused it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select

from portal.models import db
from portal.models.ghost import GhostIdentifier
from portal.models.registry import Company, Facility

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _get_entry(application_id: str) -> GhostIdentifier | None:
    return db.session.execute(
        select(GhostIdentifier).where(GhostIdentifier.application_id == application_id)
    ).scalar_one_or_none()


def record(
    application_id: str,
    *,
    company_id: int | None = None,
    facility_id: int | None = None,
    activity_type: str | None = None,
    original_title: str | None = None,
    reason: str | None = None,
) -> GhostIdentifier:
    """Retire ``application_id`` so the allocator never issues it again.

    Returns:
        The (new, re-opened or untouched) ledger entry.
    """
    entry = _get_entry(application_id)
    if entry is None:
        entry = GhostIdentifier(
            application_id=application_id,
            company_id=company_id,
            facility_id=facility_id,
            activity_type=activity_type,
            original_title=original_title,
            reason=reason,
        )
        db.session.add(entry)
        db.session.flush()
        logger.info("Ghost identifier recorded", extra={"application_id": application_id})
        return entry

    if entry.is_cleared:
        entry.is_cleared = False
        entry.cleared_at = None
        entry.cleared_by = None
        entry.recorded_at = _utcnow()
        entry.reason = reason or entry.reason
        db.session.flush()
        logger.info("Ghost identifier re-opened", extra={"application_id": application_id})

    return entry


def record_application(application, reason: str | None = None) -> GhostIdentifier:
    """Convenience wrapper that snapshots an Application row into the ledger."""
    return record(
        application.application_id,
        company_id=application.company_id,
        facility_id=application.facility_id,
        activity_type=application.activity_type,
        original_title=application.title,
        reason=reason,
    )


def clear(application_id: str, actor: str | None = None) -> int:
    """Release one identifier. Returns 1 if an open entry was cleared, else 0."""
    return clear_many([application_id], actor)


def clear_many(application_ids: list[str], actor: str | None = None) -> int:
    """Release several identifiers.

    Absent and already-cleared identifiers are skipped silently.

    Returns:
        Number of entries that moved from open to cleared.
    """
    ids = {a for a in application_ids if a}
    if not ids:
        return 0

    entries = db.session.execute(
        select(GhostIdentifier).where(
            GhostIdentifier.application_id.in_(ids),
            GhostIdentifier.is_cleared.is_(False),
        )
    ).scalars().all()

    now = _utcnow()
    for entry in entries:
        entry.is_cleared = True
        entry.cleared_at = now
        entry.cleared_by = actor
    db.session.flush()

    if entries:
        logger.info(
            "Cleared %d ghost identifier(s)", len(entries),
            extra={"actor": actor, "application_ids": sorted(e.application_id for e in entries)},
        )
    return len(entries)


def is_open(application_id: str) -> bool:
    entry = _get_entry(application_id)
    return entry is not None and not entry.is_cleared


def open_identifiers(prefix: str | None = None) -> set[str]:
    """Set of identifier strings that are currently blocked.

    Args:
        prefix: Optional ``COMPANY-FACILITY-`` prefix to narrow the scan.
    """
    stmt = select(GhostIdentifier.application_id).where(GhostIdentifier.is_cleared.is_(False))
    if prefix:
        stmt = stmt.where(GhostIdentifier.application_id.startswith(prefix))
    return set(db.session.execute(stmt).scalars().all())


def list_open() -> dict:
    """All open ghost entries with company / facility context, newest first.

    Returns:
        {"items": [...], "total": int}
    """
    rows = db.session.execute(
        select(GhostIdentifier, Company.short_name, Company.name, Facility.name)
        .outerjoin(Company, GhostIdentifier.company_id == Company.id)
        .outerjoin(Facility, GhostIdentifier.facility_id == Facility.id)
        .where(GhostIdentifier.is_cleared.is_(False))
        .order_by(GhostIdentifier.recorded_at.desc(), GhostIdentifier.id.desc())
    ).all()

    items = []
    for entry, short_name, company_name, facility_name in rows:
        item = entry.to_dict()
        item["company_short_name"] = short_name
        item["company_name"] = company_name
        item["facility_name"] = facility_name
        items.append(item)
    return {"items": items, "total": len(items)}
