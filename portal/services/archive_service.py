"""
Archive Manager — soft archive, restore and permanent delete with cascade.

Design decisions:
    - Every public operation is gated (platform administrators only) and
      owns exactly one transaction: one commit on success, rollback on any
      failure. Partial cascades are never observable.
    - The cascade closure (company → facilities → applications) is resolved
      completely before the first write.
    - Each archived entity gets its own ArchiveRecord. Dependents pulled in
      by a cascade remember the root in ``cascade_root`` so a cascading
      restore brings back exactly what the cascade took.
    - Every archived application is written to the ghost ledger. Neither
      restore nor permanent delete touches the ledger; only an explicit
      ghost clear releases an identifier.
    - Permanent delete requires an open ArchiveRecord and no remaining
      references from rows outside the deletion set. An application's own
      activity submissions are deleted with it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, func, select

from portal.core.exceptions import ConstraintError, NotFoundError, ValidationError
from portal.models import db
from portal.models.application import ActivitySubmission, Application
from portal.models.archive import ARCHIVABLE_ENTITY_TYPES, ArchiveRecord
from portal.models.ghost import GhostIdentifier
from portal.models.registry import Company, Facility, User
from portal.services import ghost_ledger
from portal.services.permission import Principal, require

logger = logging.getLogger(__name__)

ENTITY_MODELS = {
    "company": Company,
    "facility": Facility,
    "application": Application,
}

# Top-down order used for closures; deletes run in reverse.
_ORDER = {"company": 0, "facility": 1, "application": 2}

_ALIASES = {
    "companies": "company",
    "facilities": "facility",
    "applications": "application",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Private helpers ────────────────────────────────────────────────────────────


def _normalize_entity_type(entity_type: str) -> str:
    value = (entity_type or "").strip().lower()
    value = _ALIASES.get(value, value)
    if value not in ARCHIVABLE_ENTITY_TYPES:
        raise ValidationError(
            f"Unsupported entity_type '{entity_type}'",
            details={"entity_type": f"must be one of {', '.join(ARCHIVABLE_ENTITY_TYPES)}"},
        )
    return value


def _normalize_ids(ids) -> list[int]:
    if not ids:
        raise ValidationError("At least one id is required", details={"ids": "empty"})
    try:
        return list(dict.fromkeys(int(i) for i in ids))
    except (TypeError, ValueError):
        raise ValidationError("ids must be integers", details={"ids": "invalid"}) from None


def _label(entity_type: str, row) -> str:
    if entity_type == "application":
        return row.application_id
    return row.name


def _load_rows(entity_type: str, ids: list[int]) -> list:
    model = ENTITY_MODELS[entity_type]
    rows = db.session.execute(select(model).where(model.id.in_(ids))).scalars().all()
    found = {row.id for row in rows}
    missing = [i for i in ids if i not in found]
    if missing:
        raise NotFoundError(model.__name__, missing[0] if len(missing) == 1 else missing)
    by_id = {row.id: row for row in rows}
    return [by_id[i] for i in ids]


def _open_records(entity_type: str, ids) -> dict[int, ArchiveRecord]:
    ids = list(ids)
    if not ids:
        return {}
    records = db.session.execute(
        select(ArchiveRecord).where(
            ArchiveRecord.entity_type == entity_type,
            ArchiveRecord.entity_id.in_(ids),
            ArchiveRecord.restored_at.is_(None),
            ArchiveRecord.purged_at.is_(None),
        )
    ).scalars().all()
    return {r.entity_id: r for r in records}


def _dependents(entity_type: str, ids: list[int]) -> list[tuple[str, object]]:
    """Direct and transitive dependents, top-down, regardless of archive state."""
    if entity_type == "company":
        facilities = db.session.execute(
            select(Facility).where(Facility.company_id.in_(ids)).order_by(Facility.id)
        ).scalars().all()
        applications = db.session.execute(
            select(Application).where(Application.company_id.in_(ids)).order_by(Application.id)
        ).scalars().all()
        return [("facility", f) for f in facilities] + [("application", a) for a in applications]
    if entity_type == "facility":
        applications = db.session.execute(
            select(Application).where(Application.facility_id.in_(ids)).order_by(Application.id)
        ).scalars().all()
        return [("application", a) for a in applications]
    return []


def _parent_refs(entity_type: str, row) -> list[tuple[str, int]]:
    if entity_type == "facility":
        return [("company", row.company_id)]
    if entity_type == "application":
        return [("company", row.company_id), ("facility", row.facility_id)]
    return []


# ── Archive ────────────────────────────────────────────────────────────────────


def resolve_closure(entity_type: str, ids: list[int], include_related: bool) -> list[dict]:
    """
    Compute the full archive closure without writing anything.

    Roots must be active. Dependents that are already archived keep their
    own open record and are left out.

    Returns:
        [{"entity_type", "row", "cascade_root"}] ordered company → facility → application.
    """
    entity_type = _normalize_entity_type(entity_type)
    ids = _normalize_ids(ids)
    roots = _load_rows(entity_type, ids)

    already = [row.id for row in roots if row.is_archived]
    if already:
        raise ValidationError(
            f"{len(already)} {entity_type}(s) already archived",
            details={"already_archived": already},
        )

    closure = [{"entity_type": entity_type, "row": row, "cascade_root": None} for row in roots]
    seen = {(entity_type, row.id) for row in roots}

    if include_related:
        for dep_type, dep in _dependents(entity_type, ids):
            if (dep_type, dep.id) in seen or dep.is_archived:
                continue
            seen.add((dep_type, dep.id))
            parent_id = dep.company_id if entity_type == "company" else dep.facility_id
            closure.append({
                "entity_type": dep_type,
                "row": dep,
                "cascade_root": f"{entity_type}:{parent_id}",
            })

    closure.sort(key=lambda item: (_ORDER[item["entity_type"]], item["row"].id))
    return closure


def bulk_archive(
    principal: Principal,
    entity_type: str,
    ids: list[int],
    reason: str,
    include_related: bool = False,
) -> dict:
    """Archive entities (and optionally their dependents) in one transaction.

    Business rules enforced here:
    - reason must be non-empty; ids must be non-empty.
    - Every root must exist and be active.
    - One ArchiveRecord per archived entity; one ghost entry per archived
      application. Any failure rolls everything back.

    Returns:
        {"entity_type", "ids", "archived": [...], "archived_count", "ghosted": [...]}

    Raises:
        PermissionDenied, ValidationError, NotFoundError.
    """
    require(principal, "archive.manage")

    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("An archive reason is required", details={"reason": "empty"})

    try:
        entity_type = _normalize_entity_type(entity_type)
        ids = _normalize_ids(ids)
        closure = resolve_closure(entity_type, ids, include_related)

        now = _utcnow()
        archived = []
        ghosted = []
        for item in closure:
            item_type, row = item["entity_type"], item["row"]
            record = ArchiveRecord(
                entity_type=item_type,
                entity_id=row.id,
                entity_label=_label(item_type, row),
                reason=reason,
                cascade_root=item["cascade_root"],
                archived_by=principal.id,
                archived_at=now,
            )
            db.session.add(record)
            row.mark_archived(now)

            if item_type == "application":
                ghost_ledger.record_application(row, reason=f"archived: {reason}")
                ghosted.append(row.application_id)

            archived.append({"entity_type": item_type, "entity_id": row.id, "record": record})

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Archived %d entities (root %s %s, include_related=%s)",
        len(archived), entity_type, ids, include_related,
        extra={"entity_type": entity_type, "actor": principal.id},
    )
    return {
        "entity_type": entity_type,
        "ids": ids,
        "archived": [
            {"entity_type": a["entity_type"], "entity_id": a["entity_id"], "record_id": a["record"].id}
            for a in archived
        ],
        "archived_count": len(archived),
        "ghosted": ghosted,
    }


# ── Restore ────────────────────────────────────────────────────────────────────


def restore(
    principal: Principal,
    entity_type: str,
    ids: list[int],
    include_related: bool = False,
) -> dict:
    """Close the open ArchiveRecord of each entity and make it active again.

    With include_related, dependents archived by the same cascade
    (cascade_root = "<entity_type>:<id>") come back as well. Ghost entries
    are never removed.

    Raises:
        NotFoundError: Entity missing, or not currently archived.
        ValidationError: A restored child would point at an archived parent.
    """
    require(principal, "archive.restore")

    try:
        entity_type = _normalize_entity_type(entity_type)
        ids = _normalize_ids(ids)
        roots = _load_rows(entity_type, ids)

        open_records = _open_records(entity_type, ids)
        not_archived = [i for i in ids if i not in open_records]
        if not_archived:
            raise NotFoundError("ArchiveRecord", f"{entity_type}:{not_archived[0]}")

        targets = [(entity_type, row, open_records[row.id]) for row in roots]

        if include_related:
            roots_keys = [f"{entity_type}:{i}" for i in ids]
            cascaded = db.session.execute(
                select(ArchiveRecord).where(
                    ArchiveRecord.cascade_root.in_(roots_keys),
                    ArchiveRecord.restored_at.is_(None),
                    ArchiveRecord.purged_at.is_(None),
                )
            ).scalars().all()
            for record in cascaded:
                row = db.session.get(ENTITY_MODELS[record.entity_type], record.entity_id)
                if row is not None:
                    targets.append((record.entity_type, row, record))

        restoring = {(t, row.id) for t, row, _ in targets}
        blocked = []
        for item_type, row, _ in targets:
            for parent_type, parent_id in _parent_refs(item_type, row):
                if (parent_type, parent_id) in restoring:
                    continue
                parent = db.session.get(ENTITY_MODELS[parent_type], parent_id)
                if parent is not None and parent.is_archived:
                    blocked.append({
                        "entity_type": item_type,
                        "entity_id": row.id,
                        "archived_parent": f"{parent_type}:{parent_id}",
                    })
        if blocked:
            raise ValidationError(
                "Cannot restore entities whose parent is still archived",
                details={"blocked": blocked},
            )

        now = _utcnow()
        restored = []
        for item_type, row, record in sorted(targets, key=lambda t: (_ORDER[t[0]], t[1].id)):
            record.restored_at = now
            record.restored_by = principal.id
            row.mark_restored()
            restored.append({"entity_type": item_type, "entity_id": row.id})

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Restored %d entities", len(restored),
        extra={"entity_type": entity_type, "actor": principal.id},
    )
    return {"restored": restored, "restored_count": len(restored)}


# ── Permanent delete ───────────────────────────────────────────────────────────


def _blocking_references(targets: dict[str, set[int]]) -> list[dict]:
    """Rows outside the deletion set that still reference a target."""
    offenders = []

    company_ids = targets["company"]
    facility_ids = targets["facility"]
    application_ids = targets["application"]

    if company_ids:
        for facility in db.session.execute(
            select(Facility).where(Facility.company_id.in_(sorted(company_ids)))
        ).scalars():
            if facility.id not in facility_ids:
                offenders.append({
                    "entity_type": "facility",
                    "entity_id": facility.id,
                    "references": f"company:{facility.company_id}",
                    "is_archived": facility.is_archived,
                })
        for application in db.session.execute(
            select(Application).where(Application.company_id.in_(sorted(company_ids)))
        ).scalars():
            if application.id not in application_ids:
                offenders.append({
                    "entity_type": "application",
                    "entity_id": application.id,
                    "references": f"company:{application.company_id}",
                    "is_archived": application.is_archived,
                })
        for user in db.session.execute(
            select(User).where(User.company_id.in_(sorted(company_ids)))
        ).scalars():
            offenders.append({
                "entity_type": "user",
                "entity_id": user.id,
                "references": f"company:{user.company_id}",
                "is_archived": False,
            })

    if facility_ids:
        for application in db.session.execute(
            select(Application).where(Application.facility_id.in_(sorted(facility_ids)))
        ).scalars():
            if application.id not in application_ids:
                offenders.append({
                    "entity_type": "application",
                    "entity_id": application.id,
                    "references": f"facility:{application.facility_id}",
                    "is_archived": application.is_archived,
                })

    # Same row can be reported against both its company and facility.
    unique = {}
    for item in offenders:
        unique.setdefault((item["entity_type"], item["entity_id"], item["references"]), item)
    return list(unique.values())


def permanently_delete(
    principal: Principal,
    entity_type: str,
    ids: list[int],
    include_related: bool = False,
) -> dict:
    """Irreversibly remove archived entities.

    Business rules enforced here:
    - Every target must currently be archived (open ArchiveRecord).
    - include_related adds the archived dependents of each target.
    - Any row outside the deletion set that references a target blocks the
      whole batch with ConstraintError listing the offenders.
    - Activity submissions of deleted applications are deleted with them.
    - ArchiveRecords are stamped purged_at; ghost entries are untouched.

    Raises:
        PermissionDenied, NotFoundError, ValidationError, ConstraintError.
    """
    require(principal, "archive.delete")

    try:
        entity_type = _normalize_entity_type(entity_type)
        ids = _normalize_ids(ids)
        _load_rows(entity_type, ids)

        open_records = _open_records(entity_type, ids)
        not_archived = [i for i in ids if i not in open_records]
        if not_archived:
            raise ValidationError(
                "Only archived entities can be permanently deleted",
                details={"not_archived": not_archived},
            )

        targets: dict[str, set[int]] = {t: set() for t in ARCHIVABLE_ENTITY_TYPES}
        targets[entity_type].update(ids)
        if include_related:
            for dep_type, dep in _dependents(entity_type, ids):
                if dep.is_archived:
                    targets[dep_type].add(dep.id)

        offenders = _blocking_references(targets)
        if offenders:
            raise ConstraintError(
                f"{len(offenders)} row(s) still reference the {entity_type}(s) being deleted",
                offenders=offenders,
            )

        records = []
        for t, t_ids in targets.items():
            records.extend(_open_records(t, t_ids).values())

        submissions_deleted = 0
        if targets["application"]:
            submissions_deleted = db.session.execute(
                delete(ActivitySubmission).where(
                    ActivitySubmission.application_id.in_(sorted(targets["application"]))
                )
            ).rowcount or 0
            db.session.execute(delete(Application).where(Application.id.in_(sorted(targets["application"]))))
        if targets["facility"]:
            db.session.execute(delete(Facility).where(Facility.id.in_(sorted(targets["facility"]))))
        if targets["company"]:
            db.session.execute(delete(Company).where(Company.id.in_(sorted(targets["company"]))))

        now = _utcnow()
        for record in records:
            record.purged_at = now

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    deleted = [
        {"entity_type": t, "entity_id": i}
        for t in ARCHIVABLE_ENTITY_TYPES
        for i in sorted(targets[t])
    ]
    logger.warning(
        "Permanently deleted %d entities (%d submissions)", len(deleted), submissions_deleted,
        extra={"entity_type": entity_type, "actor": principal.id},
    )
    return {
        "deleted": deleted,
        "deleted_count": len(deleted),
        "submissions_deleted": submissions_deleted,
    }


# ── Diagnostics ────────────────────────────────────────────────────────────────


def _issue(entity_type, entity_id, label, ref_type, ref_id, parent) -> dict:
    return {
        "entity_type": entity_type,
        "entity_id": entity_id,
        "entity_label": label,
        "references_type": ref_type,
        "references_id": ref_id,
        "problem": "missing" if parent is None else "archived",
    }


def find_constraint_issues() -> list[dict]:
    """Active rows whose foreign references point at archived or missing rows.

    Advisory only; nothing is changed. Run before permanently_delete().
    """
    issues = []

    rows = db.session.execute(
        select(Facility, Company)
        .outerjoin(Company, Facility.company_id == Company.id)
        .where(Facility.is_archived.is_(False))
    ).all()
    for facility, company in rows:
        if company is None or company.is_archived:
            issues.append(_issue("facility", facility.id, facility.name,
                                 "company", facility.company_id, company))

    rows = db.session.execute(
        select(Application, Company, Facility)
        .outerjoin(Company, Application.company_id == Company.id)
        .outerjoin(Facility, Application.facility_id == Facility.id)
        .where(Application.is_archived.is_(False))
    ).all()
    for application, company, facility in rows:
        if company is None or company.is_archived:
            issues.append(_issue("application", application.id, application.application_id,
                                 "company", application.company_id, company))
        if facility is None or facility.is_archived:
            issues.append(_issue("application", application.id, application.application_id,
                                 "facility", application.facility_id, facility))

    rows = db.session.execute(
        select(ActivitySubmission, Application)
        .outerjoin(Application, ActivitySubmission.application_id == Application.id)
    ).all()
    for submission, application in rows:
        if application is None or application.is_archived:
            issues.append(_issue("activity_submission", submission.id, submission.activity_type,
                                 "application", submission.application_id, application))

    return issues


def constraint_issues(principal: Principal) -> dict:
    """Gated wrapper around find_constraint_issues()."""
    require(principal, "archive.manage")
    issues = find_constraint_issues()
    return {"items": issues, "total": len(issues)}


def archive_statistics(principal: Principal) -> dict:
    """Counts for the admin archive page."""
    require(principal, "archive.manage")

    def _count(model):
        return db.session.execute(
            select(func.count(model.id)).where(model.is_archived.is_(True))
        ).scalar() or 0

    open_ghosts = db.session.execute(
        select(func.count(GhostIdentifier.id)).where(GhostIdentifier.is_cleared.is_(False))
    ).scalar() or 0

    return {
        "companies": _count(Company),
        "facilities": _count(Facility),
        "applications": _count(Application),
        "ghost_identifiers": open_ghosts,
    }


def list_archived(principal: Principal, entity_type: str | None = None) -> dict:
    """Open archive records, newest first."""
    require(principal, "archive.manage")

    stmt = select(ArchiveRecord).where(
        ArchiveRecord.restored_at.is_(None),
        ArchiveRecord.purged_at.is_(None),
    )
    if entity_type:
        stmt = stmt.where(ArchiveRecord.entity_type == _normalize_entity_type(entity_type))
    records = db.session.execute(
        stmt.order_by(ArchiveRecord.archived_at.desc(), ArchiveRecord.id.desc())
    ).scalars().all()
    return {"items": [r.to_dict() for r in records], "total": len(records)}


# ── Ghost identifier administration ────────────────────────────────────────────


def list_ghost_identifiers(principal: Principal) -> dict:
    require(principal, "ghost.manage")
    return ghost_ledger.list_open()


def clear_ghost_identifier(principal: Principal, application_id: str) -> dict:
    """Release one retired identifier. Idempotent."""
    return clear_ghost_identifiers(principal, [application_id])


def clear_ghost_identifiers(principal: Principal, application_ids: list[str]) -> dict:
    """Release retired identifiers. Absent / already-cleared ids are skipped."""
    require(principal, "ghost.manage")
    ids = [a.strip() for a in (application_ids or []) if a and a.strip()]
    if not ids:
        raise ValidationError("At least one application id is required",
                              details={"application_ids": "empty"})
    try:
        cleared = ghost_ledger.clear_many(ids, actor=principal.id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return {"requested": len(ids), "cleared": cleared}
