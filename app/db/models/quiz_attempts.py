from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    String,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class QuizAttempt(Base):
    __tablename__ = "quiz_attempts"
    __table_args__ = (
        CheckConstraint(
            "status IN ('IN_PROGRESS','FINISHED','TIMED_OUT')",
            name="ck_quiz_attempts_status",
        ),
        CheckConstraint("score >= 0", name="ck_quiz_attempts_score_non_negative"),
        CheckConstraint(
            "total_questions >= 0",
            name="ck_quiz_attempts_total_questions_non_negative",
        ),
        CheckConstraint(
            "(status = 'IN_PROGRESS' AND finished_at IS NULL) "
            "OR (status != 'IN_PROGRESS' AND finished_at IS NOT NULL)",
            name="ck_quiz_attempts_finished_at_consistency",
        ),
        Index("idx_quiz_attempts_quiz_user_status", "quiz_id", "user_id", "status"),
        Index("idx_quiz_attempts_status_expires", "status", "expires_at"),
        Index("idx_quiz_attempts_user_finished", "user_id", "finished_at"),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    quiz_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("quizzes.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    username: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    attempt_duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    auto_submitted: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
    )
    question_snapshot: Mapped[list[dict[str, object]]] = mapped_column(JSONB, nullable=False)
    answers: Mapped[list[dict[str, object]]] = mapped_column(
        JSONB,
        nullable=False,
        server_default=text("'[]'::jsonb"),
    )
    score: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    total_questions: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
