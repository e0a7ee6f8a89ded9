"""licence_workflow_tables

Creates the licence review workflow tables:
  - roles                 — reviewing roles with capability flags
  - role_hierarchy        — allowed (from_role → to_role) forward pairs
  - users                 — reviewing officers
  - license_applications  — the file under review (status, holder, flags, version)
  - workflow_history      — append-only audit trail, one row per accepted action

Tables created conditionally (IF NOT EXISTS semantics) so the revision can run
against a development database that already received them via db.create_all().

Revision ID: 7c1e2a9d4b10
Revises:
Create Date: 2026-10-19 09:12:40.118305
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '7c1e2a9d4b10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Roles ─────────────────────────────────────────────────────────────
    if "roles" not in existing:
        op.create_table(
            "roles",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("code", sa.String(length=30), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("hierarchy_rank", sa.Integer(), nullable=False, server_default="0",
                      comment="lower = more senior"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("can_forward", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("can_re_enquiry", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("can_generate_ground_report", sa.Boolean(), nullable=False,
                      server_default=sa.false()),
            sa.Column("can_flaf", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("can_approve_final", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("can_red_flag", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("can_close", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("code"),
        )

    # ── Users ─────────────────────────────────────────────────────────────
    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("username", sa.String(length=100), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=True),
            sa.Column("full_name", sa.String(length=200), nullable=True),
            sa.Column("role_id", sa.Integer(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("username"),
        )
        op.create_index("ix_users_role_id", "users", ["role_id"])

    # ── Role hierarchy (flow mapping) ─────────────────────────────────────
    if "role_hierarchy" not in existing:
        op.create_table(
            "role_hierarchy",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("from_role_id", sa.Integer(), nullable=False),
            sa.Column("to_role_id", sa.Integer(), nullable=False),
            sa.Column("created_by", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["from_role_id"], ["roles.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["to_role_id"], ["roles.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("from_role_id", "to_role_id", name="uq_role_hierarchy_pair"),
        )

    # ── Licence applications ──────────────────────────────────────────────
    if "license_applications" not in existing:
        op.create_table(
            "license_applications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("applicant_name", sa.String(length=200), nullable=False),
            sa.Column("licence_type", sa.String(length=50), nullable=True),
            sa.Column("status_code", sa.Integer(), nullable=False, server_default="12",
                      comment="StatusCode id; 12 = DRAFT"),
            sa.Column("current_user_id", sa.Integer(), nullable=True),
            sa.Column("current_role_id", sa.Integer(), nullable=True),
            sa.Column("previous_user_id", sa.Integer(), nullable=True),
            sa.Column("previous_role_id", sa.Integer(), nullable=True),
            sa.Column("is_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_rejected", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_pending", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_re_enquiry", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_re_enquiry_done", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_ground_report_generated", sa.Boolean(), nullable=False,
                      server_default=sa.false()),
            sa.Column("is_flaf_generated", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("remarks", sa.Text(), nullable=True,
                      comment="Remarks of the latest accepted action"),
            sa.Column("attachments", sa.JSON(), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["current_user_id"], ["users.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["current_role_id"], ["roles.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["previous_user_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["previous_role_id"], ["roles.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_application_status", "license_applications", ["status_code"])
        op.create_index("idx_application_current_user", "license_applications", ["current_user_id"])
        op.create_index("idx_application_previous_user", "license_applications", ["previous_user_id"])

    # ── Workflow history ──────────────────────────────────────────────────
    if "workflow_history" not in existing:
        op.create_table(
            "workflow_history",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("application_id", sa.Integer(), nullable=False),
            sa.Column("previous_user_id", sa.Integer(), nullable=True, comment="Officer who acted"),
            sa.Column("previous_role_id", sa.Integer(), nullable=True),
            sa.Column("action_taken", sa.String(length=30), nullable=False),
            sa.Column("from_status", sa.Integer(), nullable=False),
            sa.Column("to_status", sa.Integer(), nullable=False),
            sa.Column("next_user_id", sa.Integer(), nullable=True),
            sa.Column("next_role_id", sa.Integer(), nullable=True),
            sa.Column("remarks", sa.Text(), nullable=False),
            sa.Column("attachments", sa.JSON(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["application_id"], ["license_applications.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_history_application", "workflow_history", ["application_id", "id"])
        op.create_index("idx_history_previous_user", "workflow_history", ["previous_user_id"])


def downgrade():
    op.drop_index("idx_history_previous_user", table_name="workflow_history")
    op.drop_index("idx_history_application", table_name="workflow_history")
    op.drop_table("workflow_history")
    op.drop_index("idx_application_previous_user", table_name="license_applications")
    op.drop_index("idx_application_current_user", table_name="license_applications")
    op.drop_index("idx_application_status", table_name="license_applications")
    op.drop_table("license_applications")
    op.drop_index("ix_users_role_id", table_name="users")
    op.drop_table("users")
    op.drop_table("role_hierarchy")
    op.drop_table("roles")
