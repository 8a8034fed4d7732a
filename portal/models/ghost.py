"""
Ghost application identifiers.

A ghost is an application identifier that was retired by archiving or
deleting its application. While the entry is open (is_cleared = False)
the identifier allocator must never hand the string out again. Only an
explicit admin clear releases it; the row itself stays for the audit trail.
"""

from datetime import datetime, timezone

from portal.models import db


class GhostIdentifier(db.Model):
    __tablename__ = "ghost_application_ids"

    id = db.Column(db.Integer, primary_key=True)
    application_id = db.Column(db.String(50), nullable=False, unique=True)

    # Context snapshot for the admin view. Plain integers, no FK: the
    # company or facility may be permanently deleted later.
    company_id = db.Column(db.Integer, nullable=True, index=True)
    facility_id = db.Column(db.Integer, nullable=True)
    activity_type = db.Column(db.String(10), nullable=True)
    original_title = db.Column(db.String(255), nullable=True)
    reason = db.Column(db.Text, nullable=True)

    recorded_at = db.Column(
        db.DateTime,
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    is_cleared = db.Column(db.Boolean, nullable=False, default=False, index=True)
    cleared_at = db.Column(db.DateTime, nullable=True)
    cleared_by = db.Column(db.String(64), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "application_id": self.application_id,
            "company_id": self.company_id,
            "facility_id": self.facility_id,
            "activity_type": self.activity_type,
            "original_title": self.original_title,
            "reason": self.reason,
            "recorded_at": self.recorded_at.isoformat() if self.recorded_at else None,
            "is_cleared": self.is_cleared,
            "cleared_at": self.cleared_at.isoformat() if self.cleared_at else None,
            "cleared_by": self.cleared_by,
        }

    def __repr__(self) -> str:
        state = "cleared" if self.is_cleared else "open"
        return f"<GhostIdentifier {self.application_id} {state}>"
