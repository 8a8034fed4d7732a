"""
Registry models: companies, facilities, users.

Companies and facilities are owned by the registration workflow. The
lifecycle subsystem only reads their short codes (for identifier
allocation) and archives them. Users carry the role and permission level
the principal provider hands to the permission gate.
"""

from datetime import datetime, timezone

from portal.models import db
from portal.models.archive import ArchivableMixin

PERMISSION_LEVELS = ("viewer", "editor", "manager", "owner")


def _utcnow():
    return datetime.now(timezone.utc)


class Company(ArchivableMixin, db.Model):
    __tablename__ = "companies"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    short_name = db.Column(
        db.String(6),
        nullable=False,
        index=True,
        comment="Derived code, unique among active companies",
    )
    is_contractor = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    facilities = db.relationship(
        "Facility", back_populates="company", lazy="dynamic",
        order_by="Facility.id",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "short_name": self.short_name,
            "is_contractor": self.is_contractor,
            "is_active": self.is_active,
            "is_archived": self.is_archived,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Company {self.id} {self.short_name}>"


class Facility(ArchivableMixin, db.Model):
    __tablename__ = "facilities"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(
        db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True
    )
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(
        db.String(3),
        nullable=False,
        comment="Zero-padded registration sequence within the company: 001, 002, ...",
    )
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    company = db.relationship("Company", back_populates="facilities")

    __table_args__ = (
        db.UniqueConstraint("company_id", "code", name="uq_facility_company_code"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "code": self.code,
            "is_archived": self.is_archived,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Facility {self.id} {self.code}>"


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(64), primary_key=True)
    email = db.Column(db.String(200), nullable=False, unique=True)
    first_name = db.Column(db.String(100))
    last_name = db.Column(db.String(100))
    role = db.Column(db.String(40), nullable=False, default="team_member")
    permission_level = db.Column(db.String(20), nullable=False, default="viewer")
    company_id = db.Column(
        db.Integer, db.ForeignKey("companies.id"), nullable=True, index=True
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "role": self.role,
            "permission_level": self.permission_level or "viewer",
            "company_id": self.company_id,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<User {self.id} {self.role}/{self.permission_level}>"
