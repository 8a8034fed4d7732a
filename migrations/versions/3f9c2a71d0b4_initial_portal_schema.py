"""initial_portal_schema

Creates the application identity & lifecycle tables:
  - companies, facilities, users        — registry
  - applications                        — unique application_id (allocator relies on it)
  - activity_templates, activity_submissions
  - ghost_application_ids               — retired identifiers
  - archive_records                     — soft-deletion audit trail

Revision ID: 3f9c2a71d0b4
Revises:
Create Date: 2026-10-19 09:12:40.118273
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f9c2a71d0b4'
down_revision = None
branch_labels = None
depends_on = None


def _archive_columns():
    return [
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("archived_at", sa.DateTime(), nullable=True),
    ]


def upgrade():
    # ── Registry ──────────────────────────────────────────────────────────
    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("short_name", sa.String(length=6), nullable=False,
                  comment="Derived code, unique among active companies"),
        sa.Column("is_contractor", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_archive_columns(),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_companies_short_name", "companies", ["short_name"])
    op.create_index("ix_companies_is_archived", "companies", ["is_archived"])

    op.create_table(
        "facilities",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=3), nullable=False,
                  comment="Zero-padded registration sequence within the company: 001, 002, ..."),
        *_archive_columns(),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("company_id", "code", name="uq_facility_company_code"),
    )
    op.create_index("ix_facilities_company_id", "facilities", ["company_id"])
    op.create_index("ix_facilities_is_archived", "facilities", ["is_archived"])

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("email", sa.String(length=200), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=True),
        sa.Column("last_name", sa.String(length=100), nullable=True),
        sa.Column("role", sa.String(length=40), nullable=False, server_default="team_member"),
        sa.Column("permission_level", sa.String(length=20), nullable=False, server_default="viewer"),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_users_company_id", "users", ["company_id"])

    # ── Applications ──────────────────────────────────────────────────────
    op.create_table(
        "applications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("application_id", sa.String(length=50), nullable=False,
                  comment="Human-readable identifier, e.g. ACME-001-101"),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("facility_id", sa.Integer(), nullable=False),
        sa.Column("activity_type", sa.String(length=10), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("phase", sa.String(length=20), nullable=False, server_default="pre_activity"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        sa.Column("submitted_by", sa.String(length=64), nullable=True),
        sa.Column("submitted_at", sa.DateTime(), nullable=True),
        sa.Column("reviewed_by", sa.String(length=64), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("review_notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        *_archive_columns(),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"]),
        sa.ForeignKeyConstraint(["facility_id"], ["facilities.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("application_id"),
    )
    op.create_index("ix_applications_company_id", "applications", ["company_id"])
    op.create_index("ix_applications_facility_id", "applications", ["facility_id"])
    op.create_index("ix_applications_is_archived", "applications", ["is_archived"])
    op.create_index("ix_application_facility_activity", "applications", ["facility_id", "activity_type"])

    op.create_table(
        "activity_templates",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("activity_type", sa.String(length=10), nullable=False),
        sa.Column("template_name", sa.String(length=255), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "activity_submissions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("application_id", sa.Integer(), nullable=False),
        sa.Column("activity_template_id", sa.Integer(), nullable=True),
        sa.Column("activity_type", sa.String(length=10), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft",
                  comment="draft | submitted | approved | rejected | completed"),
        sa.Column("submitted_by", sa.String(length=64), nullable=True),
        sa.Column("submitted_at", sa.DateTime(), nullable=True),
        sa.Column("reviewed_by", sa.String(length=64), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("review_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"]),
        sa.ForeignKeyConstraint(["activity_template_id"], ["activity_templates.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_activity_submissions_application_id", "activity_submissions", ["application_id"])

    # ── Lifecycle integrity ───────────────────────────────────────────────
    op.create_table(
        "ghost_application_ids",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("application_id", sa.String(length=50), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("facility_id", sa.Integer(), nullable=True),
        sa.Column("activity_type", sa.String(length=10), nullable=True),
        sa.Column("original_title", sa.String(length=255), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("recorded_at", sa.DateTime(), nullable=False),
        sa.Column("is_cleared", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("cleared_at", sa.DateTime(), nullable=True),
        sa.Column("cleared_by", sa.String(length=64), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("application_id"),
    )
    op.create_index("ix_ghost_application_ids_company_id", "ghost_application_ids", ["company_id"])
    op.create_index("ix_ghost_application_ids_is_cleared", "ghost_application_ids", ["is_cleared"])

    op.create_table(
        "archive_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("entity_type", sa.String(length=20), nullable=False,
                  comment="company | facility | application"),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("entity_label", sa.String(length=255), nullable=True,
                  comment="Name / application id captured at archive time"),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("cascade_root", sa.String(length=40), nullable=True,
                  comment="'<type>:<id>' of the entity whose archive pulled this one in"),
        sa.Column("archived_by", sa.String(length=64), nullable=True),
        sa.Column("archived_at", sa.DateTime(), nullable=False),
        sa.Column("restored_by", sa.String(length=64), nullable=True),
        sa.Column("restored_at", sa.DateTime(), nullable=True),
        sa.Column("purged_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_archive_entity", "archive_records", ["entity_type", "entity_id"])


def downgrade():
    op.drop_index("ix_archive_entity", table_name="archive_records")
    op.drop_table("archive_records")
    op.drop_index("ix_ghost_application_ids_is_cleared", table_name="ghost_application_ids")
    op.drop_index("ix_ghost_application_ids_company_id", table_name="ghost_application_ids")
    op.drop_table("ghost_application_ids")
    op.drop_index("ix_activity_submissions_application_id", table_name="activity_submissions")
    op.drop_table("activity_submissions")
    op.drop_table("activity_templates")
    op.drop_index("ix_application_facility_activity", table_name="applications")
    op.drop_index("ix_applications_is_archived", table_name="applications")
    op.drop_index("ix_applications_facility_id", table_name="applications")
    op.drop_index("ix_applications_company_id", table_name="applications")
    op.drop_table("applications")
    op.drop_index("ix_users_company_id", table_name="users")
    op.drop_table("users")
    op.drop_index("ix_facilities_is_archived", table_name="facilities")
    op.drop_index("ix_facilities_company_id", table_name="facilities")
    op.drop_table("facilities")
    op.drop_index("ix_companies_is_archived", table_name="companies")
    op.drop_index("ix_companies_short_name", table_name="companies")
    op.drop_table("companies")
