"""
001_initial_schema.py

Domains, tests, questions, options and test attempts

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create exam tables."""

    # Subject domains
    op.create_table(
        "domains",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("display_name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("config", sa.JSON(), nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
        ),
    )

    # Tests
    op.create_table(
        "tests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "domain_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("domains.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("creator_id", sa.String(64), nullable=True),
        sa.Column(
            "status",
            sa.String(20),
            sa.CheckConstraint(
                "status IN ('DRAFT', 'PENDING_REVIEW', 'PUBLISHED', 'REJECTED', 'ARCHIVED')"
            ),
            nullable=False,
            server_default="DRAFT",
        ),
        sa.Column(
            "pass_percentage",
            sa.Numeric(5, 2),
            sa.CheckConstraint("pass_percentage BETWEEN 1 AND 100"),
            nullable=False,
        ),
        sa.Column("time_limit_minutes", sa.Integer(), nullable=True),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("settings", sa.JSON(), nullable=False),
        sa.Column("submission_note", sa.Text(), nullable=True),
        sa.Column("reviewer_id", sa.String(64), nullable=True),
        sa.Column("review_note", sa.Text(), nullable=True),
        sa.Column("reviewed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("published_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )

    # Questions
    op.create_table(
        "questions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "test_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("tests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("stem", sa.Text(), nullable=False),
        sa.Column(
            "question_type",
            sa.String(20),
            sa.CheckConstraint(
                "question_type IN ('SINGLE_CHOICE', 'MULTIPLE_CHOICE', 'TRUE_FALSE', "
                "'FILL_IN_BLANK', 'ESSAY')"
            ),
            nullable=False,
        ),
        sa.Column("explanation", sa.Text(), nullable=True),
        sa.Column(
            "points",
            sa.Numeric(8, 2),
            sa.CheckConstraint("points > 0"),
            nullable=False,
        ),
        sa.Column("difficulty", sa.String(10), nullable=False, server_default="MEDIUM"),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
    )

    # Options
    op.create_table(
        "options",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "question_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("questions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("label", sa.Text(), nullable=False),
        sa.Column("is_correct", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
    )

    # Attempts
    op.create_table(
        "test_attempts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "test_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("tests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("session_id", sa.String(64), nullable=True),
        sa.Column(
            "status",
            sa.String(20),
            sa.CheckConstraint(
                "status IN ('IN_PROGRESS', 'COMPLETED', 'ABANDONED', 'TIMED_OUT')"
            ),
            nullable=False,
            server_default="IN_PROGRESS",
        ),
        sa.Column("answers", sa.JSON(), nullable=False),
        sa.Column("started_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("time_spent_seconds", sa.Integer(), nullable=True),
        sa.Column("score", sa.Numeric(10, 2), nullable=True),
        sa.Column("percentage", sa.Numeric(6, 2), nullable=True),
        sa.Column("passed", sa.Boolean(), nullable=True),
        sa.Column("evaluation", sa.JSON(), nullable=True),
        # Either a signed-in learner or a guest session
        sa.CheckConstraint(
            "user_id IS NOT NULL OR session_id IS NOT NULL",
            name="ck_test_attempts_owner",
        ),
    )

    # Indexes
    op.create_index("ix_tests_status_domain", "tests", ["status", "domain_id"])
    op.create_index("ix_questions_test_id", "questions", ["test_id"])
    op.create_index("ix_options_question_id", "options", ["question_id"])
    op.create_index("ix_test_attempts_user_status", "test_attempts", ["user_id", "status"])
    op.create_index("ix_test_attempts_test_user", "test_attempts", ["test_id", "user_id"])


def downgrade() -> None:
    """Drop exam tables."""

    op.drop_index("ix_test_attempts_test_user", table_name="test_attempts")
    op.drop_index("ix_test_attempts_user_status", table_name="test_attempts")
    op.drop_index("ix_options_question_id", table_name="options")
    op.drop_index("ix_questions_test_id", table_name="questions")
    op.drop_index("ix_tests_status_domain", table_name="tests")

    op.drop_table("test_attempts")
    op.drop_table("options")
    op.drop_table("questions")
    op.drop_table("tests")
    op.drop_table("domains")
