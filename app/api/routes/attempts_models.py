from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

AnswerValuePayload = int | float | str | bool | None


class AnswersRequest(BaseModel):
    answers: list[dict[str, Any]] | dict[str, AnswerValuePayload] | None = None


class StartAttemptResponse(BaseModel):
    attempt_id: UUID
    quiz_id: int
    started_at: datetime
    expires_at: datetime | None = None
    attempt_duration_seconds: int | None = None
    total_questions: int = Field(ge=0)
    questions: list[dict[str, Any]]


class SaveProgressResponse(BaseModel):
    attempt_id: UUID
    answers_count: int = Field(ge=0)
    saved_at: datetime


class GradeDetailResponse(BaseModel):
    qid: str
    question: str
    is_correct: bool
    expected: str | None = None
    user_answer: AnswerValuePayload = None
    explanation: str = ""


class SubmitAttemptResponse(BaseModel):
    attempt_id: UUID
    quiz_id: int
    status: str
    score: int = Field(ge=0)
    total_questions: int = Field(ge=0)
    auto_submitted: bool
    finished_at: datetime
    details: list[GradeDetailResponse]


class AttemptResponse(BaseModel):
    attempt_id: UUID
    quiz_id: int
    status: str
    started_at: datetime
    expires_at: datetime | None = None
    finished_at: datetime | None = None
    attempt_duration_seconds: int | None = None
    total_questions: int = Field(ge=0)
    questions: list[dict[str, Any]]
    answers: dict[str, Any]
    score: int | None = None
    auto_submitted: bool = False
    review: list[GradeDetailResponse] | None = None


class AttemptHistoryItemResponse(BaseModel):
    attempt_id: UUID
    quiz_id: int
    status: str
    score: int = Field(ge=0)
    total_questions: int = Field(ge=0)
    auto_submitted: bool
    started_at: datetime
    finished_at: datetime | None = None


class AttemptHistoryResponse(BaseModel):
    items: list[AttemptHistoryItemResponse]
