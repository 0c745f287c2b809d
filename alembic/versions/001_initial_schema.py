"""initial schema: participants and score records

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "participants",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("age", sa.Integer(), nullable=True),
        sa.Column("country", sa.String(), nullable=False, server_default="Unknown"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_participants_email", "participants", ["email"], unique=True)
    op.create_index("ix_participants_created_at", "participants", ["created_at"])

    op.create_table(
        "score_records",
        sa.Column("participant_id", sa.String(), primary_key=True),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("image_ref", sa.String(), nullable=True),
        sa.Column("country", sa.String(), nullable=True),
        sa.Column("current_score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("best_score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("best_score_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_score_records_best_score", "score_records", ["best_score"])
    op.create_index("ix_score_records_created_at", "score_records", ["created_at"])
    op.create_index("ix_score_records_updated_at", "score_records", ["updated_at"])


def downgrade() -> None:
    op.drop_table("score_records")
    op.drop_table("participants")
