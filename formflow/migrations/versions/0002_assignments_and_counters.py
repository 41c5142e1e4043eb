"""Template assignments and locked id counters

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0002"
down_revision: Union[str, Sequence[str], None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create assignments and id_counters, link submissions to assignments."""

    # --- id_counters, seeded from the numbers already handed out ---
    op.create_table(
        "id_counters",
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("value", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("name", name="pk_id_counters"),
    )
    op.execute(
        "INSERT INTO id_counters (name, value) "
        "SELECT 'submission', COALESCE(MAX(numerical_id), 0) FROM form_submissions"
    )
    op.execute(
        "INSERT INTO id_counters (name, value) "
        "SELECT 'form', COALESCE(MAX(numerical_id), 0) FROM forms"
    )

    # --- assignments (FK -> users, companies, plants, form_submissions) ---
    op.create_table(
        "assignments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("template_kind", sa.String(50), nullable=False),
        sa.Column("template_id", sa.Uuid(), nullable=False),
        sa.Column("employee_id", sa.Uuid(), nullable=False),
        sa.Column("assigned_by", sa.Uuid(), nullable=True),
        sa.Column("company_id", sa.Uuid(), nullable=True),
        sa.Column("plant_id", sa.Uuid(), nullable=True),
        sa.Column("due_date", sa.DateTime(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("submission_id", sa.Uuid(), nullable=True),
        sa.Column("filled_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_assignments"),
        sa.ForeignKeyConstraint(
            ["employee_id"], ["users.id"],
            name="fk_assignments_employee_id_users", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["assigned_by"], ["users.id"],
            name="fk_assignments_assigned_by_users", ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], name="fk_assignments_company_id_companies"),
        sa.ForeignKeyConstraint(["plant_id"], ["plants.id"], name="fk_assignments_plant_id_plants"),
        sa.ForeignKeyConstraint(
            ["submission_id"], ["form_submissions.id"],
            name="fk_assignments_submission_id_form_submissions", ondelete="SET NULL",
        ),
    )
    op.create_index("ix_assignments_template_id", "assignments", ["template_id"])
    op.create_index("ix_assignments_employee_id", "assignments", ["employee_id"])
    op.create_index("ix_assignments_company_id", "assignments", ["company_id"])
    op.create_index("ix_assignments_plant_id", "assignments", ["plant_id"])
    op.create_index("ix_assignments_status", "assignments", ["status"])
    op.create_index("ix_assignments_created_at", "assignments", ["created_at"])

    # --- form_submissions.assignment_id ---
    op.add_column("form_submissions", sa.Column("assignment_id", sa.Uuid(), nullable=True))
    op.create_index("ix_form_submissions_assignment_id", "form_submissions", ["assignment_id"])


def downgrade() -> None:
    """Drop the assignment link, assignments and id_counters."""
    op.drop_index("ix_form_submissions_assignment_id", table_name="form_submissions")
    op.drop_column("form_submissions", "assignment_id")
    op.drop_table("assignments")
    op.drop_table("id_counters")
