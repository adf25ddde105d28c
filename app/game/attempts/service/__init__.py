from __future__ import annotations

from .answers_payload import merge_answer_entries, parse_answers_payload
from .attempts_finalize import finalize_attempt
from .attempts_read import list_user_attempts, read_attempt
from .attempts_save import save_progress
from .attempts_start import start_attempt

__all__ = [
    "finalize_attempt",
    "list_user_attempts",
    "merge_answer_entries",
    "parse_answers_payload",
    "read_attempt",
    "save_progress",
    "start_attempt",
]
