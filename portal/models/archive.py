"""
Archive support: soft deletion for companies, facilities and applications.

ArchivableMixin mirrors the entity's open ArchiveRecord onto the row itself
so that "active" listings stay a single indexed filter:

    Company.query_active().all()      # hides archived companies

ArchiveRecord is the source of truth. One row is written per archive event
and is closed either by ``restored_at`` (restore) or by ``purged_at``
(permanent delete). Only archive_service writes to either side, always in
the same transaction.
"""

from datetime import datetime, timezone

from portal.models import db

ARCHIVABLE_ENTITY_TYPES = ("company", "facility", "application")


class ArchivableMixin:
    """Mixin that adds archive flags to any SQLAlchemy model."""

    is_archived = db.Column(db.Boolean, nullable=False, default=False, index=True)
    archived_at = db.Column(db.DateTime, nullable=True, default=None)

    def mark_archived(self, when=None):
        """Flag this row as archived."""
        self.is_archived = True
        self.archived_at = when or datetime.now(timezone.utc)

    def mark_restored(self):
        """Make this row active again."""
        self.is_archived = False
        self.archived_at = None

    @classmethod
    def query_active(cls):
        """Return a query that excludes archived rows."""
        return cls.query.filter(cls.is_archived.is_(False))


class ArchiveRecord(db.Model):
    """
    One archive event for one entity.

    Business rules:
    - reason is mandatory (validated in archive_service, NOT NULL here).
    - At most one open record (restored_at IS NULL AND purged_at IS NULL)
      exists per (entity_type, entity_id).
    - Records are never deleted; permanent deletion of the entity stamps
      purged_at so the audit trail survives the row it describes.
    """

    __tablename__ = "archive_records"

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(
        db.String(20),
        nullable=False,
        comment="company | facility | application",
    )
    entity_id = db.Column(db.Integer, nullable=False)
    entity_label = db.Column(
        db.String(255),
        nullable=True,
        comment="Name / application id captured at archive time",
    )
    reason = db.Column(db.Text, nullable=False)
    cascade_root = db.Column(
        db.String(40),
        nullable=True,
        comment="'<type>:<id>' of the entity whose archive pulled this one in",
    )

    archived_by = db.Column(db.String(64), nullable=True)
    archived_at = db.Column(
        db.DateTime,
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    restored_by = db.Column(db.String(64), nullable=True)
    restored_at = db.Column(db.DateTime, nullable=True)
    purged_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        db.Index("ix_archive_entity", "entity_type", "entity_id"),
    )

    @property
    def is_open(self) -> bool:
        return self.restored_at is None and self.purged_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "entity_label": self.entity_label,
            "reason": self.reason,
            "cascade_root": self.cascade_root,
            "archived_by": self.archived_by,
            "archived_at": self.archived_at.isoformat() if self.archived_at else None,
            "restored_by": self.restored_by,
            "restored_at": self.restored_at.isoformat() if self.restored_at else None,
            "purged_at": self.purged_at.isoformat() if self.purged_at else None,
            "is_open": self.is_open,
        }

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<ArchiveRecord #{self.id} {self.entity_type}/{self.entity_id} {state}>"
