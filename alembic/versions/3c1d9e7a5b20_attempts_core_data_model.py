"""attempts_core_data_model

Revision ID: 3c1d9e7a5b20
Revises:
Create Date: 2026-10-18 09:30:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "3c1d9e7a5b20"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("username", sa.Text(), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("quizzes_attempted", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_correct", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("points >= 0", name="ck_users_points_non_negative"),
        sa.CheckConstraint("quizzes_attempted >= 0", name="ck_users_quizzes_attempted_non_negative"),
        sa.CheckConstraint("total_correct >= 0", name="ck_users_total_correct_non_negative"),
    )
    op.create_index("idx_users_username", "users", ["username"], unique=True)
    op.create_index("idx_users_points", "users", ["points"])

    op.create_table(
        "quizzes",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column(
            "questions",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("attempt_duration_seconds", sa.Integer(), nullable=True),
        sa.Column("time_limit_seconds", sa.Integer(), nullable=True),
        sa.Column("shuffle_questions", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "attempt_duration_seconds IS NULL OR attempt_duration_seconds >= 0",
            name="ck_quizzes_attempt_duration_non_negative",
        ),
        sa.CheckConstraint(
            "start_at IS NULL OR end_at IS NULL OR start_at <= end_at",
            name="ck_quizzes_window_order",
        ),
    )

    op.create_table(
        "quiz_attempts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("quiz_id", sa.BigInteger(), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("username", sa.Text(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("attempt_duration_seconds", sa.Integer(), nullable=True),
        sa.Column("auto_submitted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("question_snapshot", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column(
            "answers",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("score", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_questions", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('IN_PROGRESS','FINISHED','TIMED_OUT')",
            name="ck_quiz_attempts_status",
        ),
        sa.CheckConstraint("score >= 0", name="ck_quiz_attempts_score_non_negative"),
        sa.CheckConstraint(
            "total_questions >= 0",
            name="ck_quiz_attempts_total_questions_non_negative",
        ),
        sa.CheckConstraint(
            "(status = 'IN_PROGRESS' AND finished_at IS NULL) "
            "OR (status != 'IN_PROGRESS' AND finished_at IS NOT NULL)",
            name="ck_quiz_attempts_finished_at_consistency",
        ),
        sa.ForeignKeyConstraint(["quiz_id"], ["quizzes.id"]),
    )
    op.create_index(
        "idx_quiz_attempts_quiz_user_status",
        "quiz_attempts",
        ["quiz_id", "user_id", "status"],
    )
    op.create_index("idx_quiz_attempts_status_expires", "quiz_attempts", ["status", "expires_at"])
    op.create_index("idx_quiz_attempts_user_finished", "quiz_attempts", ["user_id", "finished_at"])


def downgrade() -> None:
    op.drop_index("idx_quiz_attempts_user_finished", table_name="quiz_attempts")
    op.drop_index("idx_quiz_attempts_status_expires", table_name="quiz_attempts")
    op.drop_index("idx_quiz_attempts_quiz_user_status", table_name="quiz_attempts")
    op.drop_table("quiz_attempts")
    op.drop_table("quizzes")
    op.drop_index("idx_users_points", table_name="users")
    op.drop_index("idx_users_username", table_name="users")
    op.drop_table("users")
