from __future__ import annotations

ATTEMPT_STATUS_IN_PROGRESS = "IN_PROGRESS"
ATTEMPT_STATUS_FINISHED = "FINISHED"
ATTEMPT_STATUS_TIMED_OUT = "TIMED_OUT"
ATTEMPT_TERMINAL_STATUSES = frozenset({ATTEMPT_STATUS_FINISHED, ATTEMPT_STATUS_TIMED_OUT})

# Wire spelling used in API payloads.
ATTEMPT_STATUS_PUBLIC_NAMES = {
    ATTEMPT_STATUS_IN_PROGRESS: "in-progress",
    ATTEMPT_STATUS_FINISHED: "finished",
    ATTEMPT_STATUS_TIMED_OUT: "timed-out",
}

FINALIZE_TRIGGER_USER = "user"
FINALIZE_TRIGGER_EXPIRY = "expiry"
FINALIZE_TRIGGERS = frozenset({FINALIZE_TRIGGER_USER, FINALIZE_TRIGGER_EXPIRY})

QUESTION_TYPE_MCQ = "mcq"
QUESTION_TYPE_TRUE_FALSE = "tf"
QUESTION_TYPE_SHORT = "short"

HISTORY_MIN_LIMIT = 1
HISTORY_MAX_LIMIT = 50
