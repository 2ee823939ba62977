"""initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _key_value_columns() -> list[sa.Column]:
    return [
        sa.Column("PK", sa.String(length=255), nullable=False),
        sa.Column("SK", sa.String(length=255), nullable=False),
        sa.Column("attributes", sa.JSON(), nullable=False),
        sa.Column("written_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "assessments",
        *_key_value_columns(),
        sa.PrimaryKeyConstraint("PK", "SK"),
    )
    op.create_table(
        "assessment_question_batches",
        *_key_value_columns(),
        sa.PrimaryKeyConstraint("PK", "SK"),
    )


def downgrade() -> None:
    op.drop_table("assessment_question_batches")
    op.drop_table("assessments")
