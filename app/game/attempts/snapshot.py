from __future__ import annotations

import random
from collections.abc import Iterable, Mapping, Sequence

from app.game.attempts.constants import QUESTION_TYPE_SHORT
from app.game.attempts.types import QuestionSnapshot


def _positional_qid(index: int) -> str:
    return f"q{index + 1}"


def _optional_int(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _optional_text(value: object) -> str | None:
    if value is None:
        return None
    return str(value)


def question_from_payload(raw: Mapping[str, object], *, index: int) -> QuestionSnapshot:
    qid = raw.get("qid") or raw.get("id")
    raw_choices = raw.get("choices") or []
    choices = tuple(str(choice) for choice in raw_choices) if isinstance(raw_choices, list | tuple) else ()
    difficulty = raw.get("difficulty")
    return QuestionSnapshot(
        qid=str(qid) if qid else _positional_qid(index),
        type=str(raw.get("type") or QUESTION_TYPE_SHORT).strip().lower(),
        question=str(raw.get("question") or ""),
        difficulty=difficulty if isinstance(difficulty, str | int) else None,
        choices=choices,
        answer_index=_optional_int(raw.get("answer_index")),
        answer_text=_optional_text(raw.get("answer_text")),
        explanation=str(raw.get("explanation") or ""),
    )


def build_question_snapshot(
    raw_questions: Iterable[Mapping[str, object]],
    *,
    shuffle: bool,
    rng: random.Random | None = None,
) -> list[QuestionSnapshot]:
    """Copy quiz questions into an attempt; qids are assigned before shuffling."""
    snapshot = [
        question_from_payload(raw, index=index) for index, raw in enumerate(raw_questions)
    ]
    if shuffle:
        (rng or random.SystemRandom()).shuffle(snapshot)
    return snapshot


def snapshot_to_payload(snapshot: Sequence[QuestionSnapshot]) -> list[dict[str, object]]:
    return [
        {
            "qid": question.qid,
            "type": question.type,
            "difficulty": question.difficulty,
            "question": question.question,
            "choices": list(question.choices),
            "answer_index": question.answer_index,
            "answer_text": question.answer_text,
            "explanation": question.explanation,
        }
        for question in snapshot
    ]


def snapshot_from_payload(payload: Sequence[Mapping[str, object]]) -> list[QuestionSnapshot]:
    return [question_from_payload(raw, index=index) for index, raw in enumerate(payload)]


def public_question_view(question: QuestionSnapshot) -> dict[str, object]:
    return {
        "qid": question.qid,
        "type": question.type,
        "difficulty": question.difficulty,
        "question": question.question,
        "choices": list(question.choices),
    }


def review_question_view(question: QuestionSnapshot) -> dict[str, object]:
    view = public_question_view(question)
    view.update(
        {
            "answer_index": question.answer_index,
            "answer_text": question.answer_text,
            "explanation": question.explanation,
        }
    )
    return view
