"""Initial schema: companies, plants, users, forms, submissions, notification logs

Revision ID: 0001
Revises: None
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables."""

    # --- companies (no FK deps) ---
    op.create_table(
        "companies",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("settings", sa.JSON(), server_default="{}"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_companies"),
        sa.UniqueConstraint("slug", name="uq_companies_slug"),
    )
    op.create_index("ix_companies_slug", "companies", ["slug"])

    # --- plants (FK -> companies) ---
    op.create_table(
        "plants",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("plant_number", sa.String(50), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("code", sa.String(20), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_plants"),
        sa.UniqueConstraint("code", name="uq_plants_code"),
        sa.ForeignKeyConstraint(
            ["company_id"],
            ["companies.id"],
            name="fk_plants_company_id_companies",
        ),
    )
    op.create_index("ix_plants_company_id", "plants", ["company_id"])

    # --- users (FK -> companies, plants) ---
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("role", sa.String(50), nullable=False),
        sa.Column("position", sa.String(255), nullable=True),
        sa.Column("company_id", sa.Uuid(), nullable=True),
        sa.Column("plant_id", sa.Uuid(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], name="fk_users_company_id_companies"),
        sa.ForeignKeyConstraint(["plant_id"], ["plants.id"], name="fk_users_plant_id_plants"),
    )
    op.create_index("ix_users_email", "users", ["email"])
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_company_id", "users", ["company_id"])
    op.create_index("ix_users_plant_id", "users", ["plant_id"])

    # --- form_templates (FK -> companies, plants, users) ---
    op.create_table(
        "form_templates",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("plant_id", sa.Uuid(), nullable=True),
        sa.Column("template_name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("sections", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("workflow", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("status", sa.String(50), nullable=False, server_default="PUBLISHED"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_form_templates"),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], name="fk_form_templates_company_id_companies"),
        sa.ForeignKeyConstraint(["plant_id"], ["plants.id"], name="fk_form_templates_plant_id_plants"),
        sa.ForeignKeyConstraint(
            ["created_by"], ["users.id"],
            name="fk_form_templates_created_by_users", ondelete="SET NULL",
        ),
    )
    op.create_index("ix_form_templates_company_id", "form_templates", ["company_id"])
    op.create_index("ix_form_templates_plant_id", "form_templates", ["plant_id"])

    # --- forms (FK -> companies, plants, users) ---
    op.create_table(
        "forms",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("numerical_id", sa.Integer(), nullable=True),
        sa.Column("form_code", sa.String(100), nullable=True),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("plant_id", sa.Uuid(), nullable=True),
        sa.Column("form_name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("fields", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("sections", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("approval_flow", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("status", sa.String(50), nullable=False, server_default="DRAFT"),
        sa.Column("is_template", sa.Boolean(), server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("archived_at", sa.DateTime(), nullable=True),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_forms"),
        sa.UniqueConstraint("numerical_id", name="uq_forms_numerical_id"),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], name="fk_forms_company_id_companies"),
        sa.ForeignKeyConstraint(["plant_id"], ["plants.id"], name="fk_forms_plant_id_plants"),
        sa.ForeignKeyConstraint(
            ["created_by"], ["users.id"],
            name="fk_forms_created_by_users", ondelete="SET NULL",
        ),
    )
    op.create_index("ix_forms_form_code", "forms", ["form_code"])
    op.create_index("ix_forms_company_id", "forms", ["company_id"])
    op.create_index("ix_forms_plant_id", "forms", ["plant_id"])
    op.create_index("ix_forms_status", "forms", ["status"])
    op.create_index("ix_forms_created_at", "forms", ["created_at"])

    # --- form_submissions (FK -> companies, plants, users) ---
    op.create_table(
        "form_submissions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("numerical_id", sa.Integer(), nullable=True),
        sa.Column("template_kind", sa.String(50), nullable=False, server_default="FORM_TEMPLATE"),
        sa.Column("template_id", sa.Uuid(), nullable=False),
        sa.Column("template_name", sa.String(255), nullable=True),
        sa.Column("form_numerical_id", sa.Integer(), nullable=True),
        sa.Column("company_id", sa.Uuid(), nullable=True),
        sa.Column("plant_id", sa.Uuid(), nullable=True),
        sa.Column("submitted_by", sa.Uuid(), nullable=True),
        sa.Column("data", sa.JSON(), nullable=False, server_default="{}"),
        sa.Column("files", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("status", sa.String(50), nullable=False, server_default="PENDING_APPROVAL"),
        sa.Column("current_level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("submitted_at", sa.DateTime(), nullable=True),
        sa.Column("approved_by", sa.Uuid(), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("rejected_by", sa.Uuid(), nullable=True),
        sa.Column("rejected_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_form_submissions"),
        sa.UniqueConstraint("numerical_id", name="uq_form_submissions_numerical_id"),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], name="fk_form_submissions_company_id_companies"),
        sa.ForeignKeyConstraint(["plant_id"], ["plants.id"], name="fk_form_submissions_plant_id_plants"),
        sa.ForeignKeyConstraint(
            ["submitted_by"], ["users.id"],
            name="fk_form_submissions_submitted_by_users", ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["approved_by"], ["users.id"],
            name="fk_form_submissions_approved_by_users", ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["rejected_by"], ["users.id"],
            name="fk_form_submissions_rejected_by_users", ondelete="SET NULL",
        ),
    )
    op.create_index("ix_form_submissions_template_id", "form_submissions", ["template_id"])
    op.create_index("ix_form_submissions_form_numerical_id", "form_submissions", ["form_numerical_id"])
    op.create_index("ix_form_submissions_company_id", "form_submissions", ["company_id"])
    op.create_index("ix_form_submissions_plant_id", "form_submissions", ["plant_id"])
    op.create_index("ix_form_submissions_submitted_by", "form_submissions", ["submitted_by"])
    op.create_index("ix_form_submissions_status", "form_submissions", ["status"])
    op.create_index("ix_form_submissions_submitted_at", "form_submissions", ["submitted_at"])
    op.create_index("ix_form_submissions_created_at", "form_submissions", ["created_at"])
    op.create_index("ix_form_submissions_template_status", "form_submissions", ["template_id", "status"])
    op.create_index("ix_form_submissions_level_status", "form_submissions", ["current_level", "status"])

    # --- submission_history (FK -> form_submissions, users) ---
    op.create_table(
        "submission_history",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("submission_id", sa.Uuid(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("approver_id", sa.Uuid(), nullable=True),
        sa.Column("status", sa.String(50), nullable=False),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("actioned_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_submission_history"),
        sa.ForeignKeyConstraint(
            ["submission_id"], ["form_submissions.id"],
            name="fk_submission_history_submission_id_form_submissions", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["approver_id"], ["users.id"],
            name="fk_submission_history_approver_id_users", ondelete="SET NULL",
        ),
    )
    op.create_index("ix_submission_history_submission_id", "submission_history", ["submission_id"])
    op.create_index("ix_submission_history_approver_id", "submission_history", ["approver_id"])
    op.create_index("ix_submission_history_actioned_at", "submission_history", ["actioned_at"])

    # --- notification_logs (FK -> companies, users, form_submissions) ---
    op.create_table(
        "notification_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=True),
        sa.Column("channel", sa.String(50), nullable=False),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("recipient", sa.String(255), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("submission_id", sa.Uuid(), nullable=True),
        sa.Column("subject", sa.String(512), nullable=True),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), server_default="0"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_notification_logs"),
        sa.ForeignKeyConstraint(
            ["company_id"], ["companies.id"],
            name="fk_notification_logs_company_id_companies", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"],
            name="fk_notification_logs_user_id_users", ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["submission_id"], ["form_submissions.id"],
            name="fk_notification_logs_submission_id_form_submissions", ondelete="SET NULL",
        ),
    )
    op.create_index("ix_notification_logs_company_id", "notification_logs", ["company_id"])
    op.create_index("ix_notification_logs_submission_id", "notification_logs", ["submission_id"])
    op.create_index("ix_notification_logs_created_at", "notification_logs", ["created_at"])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_table("notification_logs")
    op.drop_table("submission_history")
    op.drop_table("form_submissions")
    op.drop_table("forms")
    op.drop_table("form_templates")
    op.drop_table("users")
    op.drop_table("plants")
    op.drop_table("companies")
