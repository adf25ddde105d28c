"""Server-side grading of attempt answers.

Everything here is pure: no I/O, no settings lookups. Thresholds arrive through
``GradingPolicy`` so callers decide how strict free-text matching is.

Short answers go through three strategies and the first success wins:
exact first token, numeric equivalence (``"5"`` == ``"five"``), then a
normalized Levenshtein similarity against ``policy.fuzzy_threshold``.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping, Sequence

from rapidfuzz.distance import Levenshtein

from app.game.attempts.constants import QUESTION_TYPE_MCQ, QUESTION_TYPE_TRUE_FALSE
from app.game.attempts.types import (
    AnswerValue,
    GradeDetail,
    GradeResult,
    GradeSummary,
    GradingPolicy,
    QuestionSnapshot,
)

DEFAULT_GRADING_POLICY = GradingPolicy()

STRATEGY_MISSING = "missing"
STRATEGY_CHOICE = "choice"
STRATEGY_BOOLEAN = "boolean"
STRATEGY_TEXT = "text"
STRATEGY_EXACT = "exact"
STRATEGY_NUMERIC = "numeric"
STRATEGY_FUZZY = "fuzzy"

TRUTHY_TOKENS = frozenset({"true", "t", "1", "yes", "y"})
FALSY_TOKENS = frozenset({"false", "f", "0", "no", "n"})

_QUOTES_TRANSLATION = str.maketrans({"“": "'", "”": "'", "‘": "'", "’": "'"})
_STRIP_PUNCTUATION_RE = re.compile(r"[^\w\s'-]")
_WHITESPACE_RE = re.compile(r"\s+")
_NUMBER_WORD_SEPARATORS_RE = re.compile(r"[-,]")

SMALL_NUMBER_WORDS = {
    "zero": 0,
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
    "eleven": 11,
    "twelve": 12,
    "thirteen": 13,
    "fourteen": 14,
    "fifteen": 15,
    "sixteen": 16,
    "seventeen": 17,
    "eighteen": 18,
    "nineteen": 19,
}
TENS_NUMBER_WORDS = {
    "twenty": 20,
    "thirty": 30,
    "forty": 40,
    "fifty": 50,
    "sixty": 60,
    "seventy": 70,
    "eighty": 80,
    "ninety": 90,
}


def _as_text(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def normalize_text(value: object) -> str:
    if value is None:
        return ""
    text = _as_text(value).strip().lower().translate(_QUOTES_TRANSLATION)
    text = _STRIP_PUNCTUATION_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def sanitize_short_answer(value: object) -> str:
    """First whitespace-delimited token, lowercased."""
    if value is None:
        return ""
    parts = _as_text(value).split()
    return parts[0].lower() if parts else ""


def _parse_numeral(token: str) -> float | None:
    try:
        number = float(token)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def word_to_number(text: str) -> float | None:
    """Parse English number words, e.g. ``"one hundred twenty three"`` -> 123.

    Any token outside the vocabulary aborts parsing and yields None, never zero.
    """
    if not text:
        return None
    tokens = _NUMBER_WORD_SEPARATORS_RE.sub(" ", text.lower().strip()).split()
    if not tokens:
        return None

    total = 0.0
    current = 0.0
    for token in tokens:
        if token in SMALL_NUMBER_WORDS:
            current += SMALL_NUMBER_WORDS[token]
        elif token in TENS_NUMBER_WORDS:
            current += TENS_NUMBER_WORDS[token]
        elif token == "hundred":
            current = (current or 1) * 100
        elif token == "thousand":
            total += (current or 1) * 1000
            current = 0.0
        else:
            numeral = _parse_numeral(token)
            if numeral is None:
                return None
            current += numeral
    return total + current


def parse_maybe_number(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    text = _as_text(value).strip().lower()
    if not text:
        return None
    numeral = _parse_numeral(text)
    if numeral is not None:
        return numeral
    return word_to_number(text)


def _coerce_choice_index(value: AnswerValue) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        numeral = _parse_numeral(value.strip())
        if numeral is not None and numeral.is_integer():
            return int(numeral)
    return None


def _expected_choice_text(question: QuestionSnapshot) -> str | None:
    index = question.answer_index
    if index is None or not 0 <= index < len(question.choices):
        return None
    return question.choices[index]


def _to_boolean(token: str) -> bool | None:
    if token in TRUTHY_TOKENS:
        return True
    if token in FALSY_TOKENS:
        return False
    return None


def _grade_mcq(question: QuestionSnapshot, user_answer: AnswerValue) -> GradeResult:
    selected = _coerce_choice_index(user_answer)
    return GradeResult(
        is_correct=selected is not None and selected == question.answer_index,
        expected=_expected_choice_text(question),
        strategy=STRATEGY_CHOICE,
    )


def _grade_true_false(question: QuestionSnapshot, user_answer: AnswerValue) -> GradeResult:
    expected_token = normalize_text(question.answer_text)
    user_token = normalize_text(user_answer)
    expected_bool = _to_boolean(expected_token)
    user_bool = _to_boolean(user_token)

    if expected_bool is not None and user_bool is not None:
        return GradeResult(
            is_correct=expected_bool == user_bool,
            expected=question.answer_text,
            strategy=STRATEGY_BOOLEAN,
        )
    return GradeResult(
        is_correct=expected_token == user_token,
        expected=question.answer_text,
        strategy=STRATEGY_TEXT,
    )


def _grade_short(
    question: QuestionSnapshot,
    user_answer: AnswerValue,
    policy: GradingPolicy,
) -> GradeResult:
    expected_raw = question.answer_text or ""
    expected_parts = normalize_text(expected_raw).split(" ")
    expected_token = expected_parts[0] if expected_parts else ""
    user_token = sanitize_short_answer(user_answer)

    if expected_token and user_token == expected_token:
        return GradeResult(is_correct=True, expected=question.answer_text, strategy=STRATEGY_EXACT)

    expected_number = parse_maybe_number(expected_raw)
    user_number = parse_maybe_number(user_token)
    if (
        expected_number is not None
        and user_number is not None
        and abs(expected_number - user_number) <= policy.numeric_tolerance
    ):
        return GradeResult(
            is_correct=True,
            expected=question.answer_text,
            strategy=STRATEGY_NUMERIC,
            numeric_match=True,
        )

    score = Levenshtein.normalized_similarity(expected_token, user_token)
    return GradeResult(
        is_correct=score >= policy.fuzzy_threshold,
        expected=question.answer_text,
        strategy=STRATEGY_FUZZY,
        similarity=score,
    )


def expected_value(question: QuestionSnapshot) -> str | None:
    if question.type == QUESTION_TYPE_MCQ:
        return _expected_choice_text(question)
    return question.answer_text


def grade_question(
    question: QuestionSnapshot,
    user_answer: AnswerValue,
    policy: GradingPolicy = DEFAULT_GRADING_POLICY,
) -> GradeResult:
    if user_answer is None:
        return GradeResult(
            is_correct=False,
            expected=expected_value(question),
            strategy=STRATEGY_MISSING,
        )
    if question.type == QUESTION_TYPE_MCQ:
        return _grade_mcq(question, user_answer)
    if question.type == QUESTION_TYPE_TRUE_FALSE:
        return _grade_true_false(question, user_answer)
    # short, and any type the quiz author invented, is matched as free text
    return _grade_short(question, user_answer, policy)


def grade_all(
    questions: Sequence[QuestionSnapshot],
    answers_by_qid: Mapping[str, AnswerValue],
    policy: GradingPolicy = DEFAULT_GRADING_POLICY,
) -> GradeSummary:
    details: list[GradeDetail] = []
    total_correct = 0
    for question in questions:
        user_answer = answers_by_qid.get(question.qid)
        result = grade_question(question, user_answer, policy)
        if result.is_correct:
            total_correct += 1
        details.append(
            GradeDetail(
                qid=question.qid,
                is_correct=result.is_correct,
                expected=result.expected,
                user_answer=user_answer,
                question=question.question,
                explanation=question.explanation,
                similarity=result.similarity,
                numeric_match=result.numeric_match,
            )
        )
    return GradeSummary(total_correct=total_correct, details=details)
