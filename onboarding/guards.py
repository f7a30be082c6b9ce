"""Completeness predicates gating checkpoint transitions.

Every guard in the flow reduces to ``missing_fields``; ``is_complete`` is
derived from it so the two can never disagree.
"""
from __future__ import annotations

from typing import Any, Mapping

from onboarding import checkpoints
from onboarding.state import Checkpoint

ADDRESS_PARTS = ("street", "city", "state", "zip")
BOOLEAN_FIELDS = frozenset({"greeted", "confirmed"})


def _normalize(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    return value


def _has_value(value: Any) -> bool:
    value = _normalize(value)
    if value is None:
        return False
    if isinstance(value, bool):
        return True
    if isinstance(value, (str, list, tuple, dict)):
        return len(value) > 0
    return True


def field_satisfied(checkpoint: Checkpoint, field: str, data: Mapping[str, Any] | None) -> bool:
    value = _normalize((data or {}).get(field))

    if field == "address":
        if not isinstance(value, Mapping):
            return False
        return all(_has_value(value.get(part)) for part in ADDRESS_PARTS)

    if field == "services":
        return isinstance(value, (list, tuple)) and any(_has_value(v) for v in value)

    if field in BOOLEAN_FIELDS:
        return value is True

    allowed = checkpoints.allowed_values(checkpoint).get(field)
    if allowed is not None:
        return value in allowed

    return _has_value(value)


def missing_fields(checkpoint: Checkpoint, data: Mapping[str, Any] | None) -> list[str]:
    return [f for f in checkpoints.required_fields(checkpoint) if not field_satisfied(checkpoint, f, data)]


def is_complete(checkpoint: Checkpoint, data: Mapping[str, Any] | None) -> bool:
    return not missing_fields(checkpoint, data)
