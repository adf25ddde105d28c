from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

# Raw value a client sends for one question: an index for mcq, text (or a bool) otherwise.
AnswerValue = int | float | str | bool | None


@dataclass(frozen=True, slots=True)
class QuestionSnapshot:
    qid: str
    type: str
    question: str
    difficulty: str | int | None = None
    choices: tuple[str, ...] = ()
    answer_index: int | None = None
    answer_text: str | None = None
    explanation: str = ""


@dataclass(frozen=True, slots=True)
class GradingPolicy:
    fuzzy_threshold: float = 0.8
    numeric_tolerance: float = 1e-9


@dataclass(frozen=True, slots=True)
class GradeResult:
    is_correct: bool
    expected: str | None
    strategy: str
    similarity: float | None = None
    numeric_match: bool = False


@dataclass(frozen=True, slots=True)
class GradeDetail:
    qid: str
    is_correct: bool
    expected: str | None
    user_answer: AnswerValue
    question: str
    explanation: str
    similarity: float | None = None
    numeric_match: bool = False


@dataclass(frozen=True, slots=True)
class GradeSummary:
    total_correct: int
    details: list[GradeDetail]


@dataclass(slots=True)
class StartAttemptResult:
    attempt_id: UUID
    quiz_id: int
    started_at: datetime
    expires_at: datetime | None
    attempt_duration_seconds: int | None
    total_questions: int
    questions: list[dict[str, object]]


@dataclass(slots=True)
class SaveProgressResult:
    attempt_id: UUID
    answers_count: int
    saved_at: datetime


@dataclass(slots=True)
class FinalizeAttemptResult:
    attempt_id: UUID
    quiz_id: int
    user_id: int
    status: str
    score: int
    total_questions: int
    auto_submitted: bool
    finished_at: datetime
    details: list[GradeDetail] = field(default_factory=list)


@dataclass(slots=True)
class ReviewItem:
    qid: str
    question: str
    is_correct: bool
    expected: str | None
    user_answer: AnswerValue
    explanation: str


@dataclass(slots=True)
class AttemptView:
    attempt_id: UUID
    quiz_id: int
    status: str
    started_at: datetime
    expires_at: datetime | None
    finished_at: datetime | None
    attempt_duration_seconds: int | None
    total_questions: int
    questions: list[dict[str, object]]
    answers: dict[str, object]
    score: int | None = None
    auto_submitted: bool = False
    review: list[ReviewItem] | None = None


@dataclass(slots=True)
class AttemptHistoryItem:
    attempt_id: UUID
    quiz_id: int
    status: str
    score: int
    total_questions: int
    auto_submitted: bool
    started_at: datetime
    finished_at: datetime | None
