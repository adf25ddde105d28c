from __future__ import annotations

from collections.abc import Iterable, Mapping

from app.game.attempts.errors import AttemptInvalidInputError
from app.game.attempts.types import AnswerValue

_SCALAR_ANSWER_TYPES = (str, int, float, bool)


def _validate_answer_value(qid: str, value: object) -> AnswerValue:
    if value is None or isinstance(value, _SCALAR_ANSWER_TYPES):
        return value
    raise AttemptInvalidInputError(f"Answer for question '{qid}' must be a number or text")


def _validate_time_taken(qid: str, value: object) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int | float) or value < 0:
        raise AttemptInvalidInputError(f"timeTakenSeconds for question '{qid}' must be >= 0")
    return int(value)


def parse_answers_payload(payload: object) -> list[dict[str, object]]:
    """Accept ``{qid: value}`` or ``[{"qid", "userAnswer", "timeTakenSeconds"?}]``.

    Entries without a qid are skipped; a later entry for the same qid wins.
    ``timeTakenSeconds`` is only present on entries that carried one.
    """
    entries: dict[str, dict[str, object]] = {}
    if payload is None:
        return []
    if isinstance(payload, Mapping):
        for raw_qid, value in payload.items():
            qid = str(raw_qid)
            if not qid:
                continue
            entries[qid] = {
                "qid": qid,
                "userAnswer": _validate_answer_value(qid, value),
            }
        return list(entries.values())
    if isinstance(payload, list):
        for item in payload:
            if not isinstance(item, Mapping):
                raise AttemptInvalidInputError("Each answer entry must be an object with a qid")
            raw_qid = item.get("qid")
            if not raw_qid:
                continue
            qid = str(raw_qid)
            entry: dict[str, object] = {
                "qid": qid,
                "userAnswer": _validate_answer_value(qid, item.get("userAnswer")),
            }
            time_taken = _validate_time_taken(qid, item.get("timeTakenSeconds"))
            if time_taken is not None:
                entry["timeTakenSeconds"] = time_taken
            entries[qid] = entry
        return list(entries.values())
    raise AttemptInvalidInputError


def ensure_known_qids(entries: Iterable[Mapping[str, object]], *, known_qids: set[str]) -> None:
    unknown = sorted({str(entry["qid"]) for entry in entries} - known_qids)
    if unknown:
        raise AttemptInvalidInputError(f"Unknown question ids: {', '.join(unknown)}")


def merge_answer_entries(
    existing: Iterable[Mapping[str, object]],
    incoming: Iterable[Mapping[str, object]],
) -> list[dict[str, object]]:
    """Last write wins per qid; qids absent from ``incoming`` are kept untouched.

    An incoming entry without ``timeTakenSeconds`` keeps the recorded time.
    """
    merged: dict[str, dict[str, object]] = {}
    for entry in existing:
        qid = entry.get("qid")
        if qid:
            merged[str(qid)] = {
                "qid": str(qid),
                "userAnswer": entry.get("userAnswer"),
                "timeTakenSeconds": int(entry.get("timeTakenSeconds") or 0),
            }
    for entry in incoming:
        qid = str(entry["qid"])
        time_taken = entry.get("timeTakenSeconds")
        if time_taken is None:
            time_taken = merged.get(qid, {}).get("timeTakenSeconds", 0)
        merged[qid] = {
            "qid": qid,
            "userAnswer": entry.get("userAnswer"),
            "timeTakenSeconds": int(time_taken),
        }
    return list(merged.values())


def answers_by_qid(entries: Iterable[Mapping[str, object]]) -> dict[str, AnswerValue]:
    return {
        str(entry["qid"]): entry.get("userAnswer")  # type: ignore[misc]
        for entry in entries
        if entry.get("qid")
    }
