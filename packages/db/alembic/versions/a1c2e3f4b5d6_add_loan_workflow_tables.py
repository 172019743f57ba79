# This project was developed with assistance from AI tools.
"""add loan workflow tables

Revision ID: a1c2e3f4b5d6
Revises:
Create Date: 2026-10-17 09:12:41.204133

"""

import sqlalchemy as sa
from alembic import op

revision = "a1c2e3f4b5d6"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "loan_applications",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column("borrower_email", sa.String(255), nullable=False, server_default=""),
        sa.Column("current_stage_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("pre_approval_decision", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_event_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "current_stage_index BETWEEN 0 AND 5", name="ck_loan_applications_stage_range"
        ),
    )
    op.create_index("ix_loan_applications_borrower_email", "loan_applications", ["borrower_email"])
    op.create_index("ix_loan_applications_last_event_at", "loan_applications", ["last_event_at"])

    op.create_table(
        "underwriting_settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("rules", sa.JSON(), nullable=False),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("underwriting_settings")
    op.drop_index("ix_loan_applications_last_event_at", table_name="loan_applications")
    op.drop_index("ix_loan_applications_borrower_email", table_name="loan_applications")
    op.drop_table("loan_applications")
