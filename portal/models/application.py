"""
Application models: applications, activity templates, activity submissions.

Two status concepts live side by side and must not be merged:

    Application.status / Application.phase
        Coarse workflow state. Changed only by explicit transitions in
        application_service.

    status_engine.compute_detailed_status(application_id)
        Human-facing label derived from ActivitySubmission history at read
        time. Never stored.
"""

from datetime import datetime, timezone

from portal.models import db
from portal.models.archive import ArchivableMixin

# ── Constants ─────────────────────────────────────────────────────────────────

ACTIVITY_TYPES = ("FRA", "EAA", "SEM", "EMIS", "CR")

# Digit embedded in the application identifier: ACME-001-101 is the first FRA.
ACTIVITY_DIGITS = {
    "FRA": "1",
    "EAA": "2",
    "SEM": "3",
    "EMIS": "4",
    "CR": "5",
}

APPLICATION_STATUSES = (
    "draft",
    "in_progress",
    "submitted",
    "under_review",
    "approved",
    "rejected",
    "needs_revision",
)

APPLICATION_PHASES = ("pre_activity", "post_activity")


def _utcnow():
    return datetime.now(timezone.utc)


class Application(ArchivableMixin, db.Model):
    __tablename__ = "applications"

    id = db.Column(db.Integer, primary_key=True)
    application_id = db.Column(
        db.String(50),
        nullable=False,
        unique=True,
        comment="Human-readable identifier, e.g. ACME-001-101",
    )
    company_id = db.Column(
        db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True
    )
    facility_id = db.Column(
        db.Integer, db.ForeignKey("facilities.id"), nullable=False, index=True
    )
    activity_type = db.Column(db.String(10), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    phase = db.Column(db.String(20), nullable=False, default="pre_activity")
    status = db.Column(db.String(20), nullable=False, default="draft")

    submitted_by = db.Column(db.String(64))
    submitted_at = db.Column(db.DateTime)
    reviewed_by = db.Column(db.String(64))
    reviewed_at = db.Column(db.DateTime)
    review_notes = db.Column(db.Text)

    created_by = db.Column(db.String(64))
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    submissions = db.relationship(
        "ActivitySubmission", back_populates="application", lazy="dynamic",
    )

    __table_args__ = (
        db.Index("ix_application_facility_activity", "facility_id", "activity_type"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "application_id": self.application_id,
            "company_id": self.company_id,
            "facility_id": self.facility_id,
            "activity_type": self.activity_type,
            "title": self.title,
            "description": self.description,
            "phase": self.phase,
            "status": self.status,
            "submitted_by": self.submitted_by,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "review_notes": self.review_notes,
            "is_archived": self.is_archived,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Application {self.id} {self.application_id}>"


class ActivityTemplate(db.Model):
    __tablename__ = "activity_templates"

    id = db.Column(db.Integer, primary_key=True)
    activity_type = db.Column(db.String(10), nullable=False)
    template_name = db.Column(db.String(255), nullable=False)
    display_order = db.Column(db.Integer, nullable=False, default=1)
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "activity_type": self.activity_type,
            "template_name": self.template_name,
            "display_order": self.display_order,
            "description": self.description,
            "is_active": self.is_active,
        }


class ActivitySubmission(db.Model):
    """
    One saved activity form for an application.

    Business rules:
    - Created as 'draft' on every user save; edits are allowed while draft.
    - Once 'submitted' the payload is frozen. Only admin review moves it on
      (approved / rejected / completed).
    - activity_type is snapshotted from the template so detailed-status
      labels survive template edits.
    """

    __tablename__ = "activity_submissions"

    id = db.Column(db.Integer, primary_key=True)
    application_id = db.Column(
        db.Integer, db.ForeignKey("applications.id"), nullable=False, index=True
    )
    activity_template_id = db.Column(
        db.Integer, db.ForeignKey("activity_templates.id"), nullable=True
    )
    activity_type = db.Column(db.String(10), nullable=False)
    data = db.Column(db.JSON, nullable=False, default=dict)
    status = db.Column(
        db.String(20),
        nullable=False,
        default="draft",
        comment="draft | submitted | approved | rejected | completed",
    )
    submitted_by = db.Column(db.String(64))
    submitted_at = db.Column(db.DateTime)
    reviewed_by = db.Column(db.String(64))
    reviewed_at = db.Column(db.DateTime)
    review_notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    application = db.relationship("Application", back_populates="submissions")
    template = db.relationship("ActivityTemplate")

    def to_dict(self):
        return {
            "id": self.id,
            "application_id": self.application_id,
            "activity_template_id": self.activity_template_id,
            "activity_type": self.activity_type,
            "data": self.data or {},
            "status": self.status,
            "submitted_by": self.submitted_by,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "review_notes": self.review_notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ActivitySubmission {self.id} app={self.application_id} {self.status}>"
