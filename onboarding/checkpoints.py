from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from onboarding.errors import InvalidRequest
from onboarding.state import Checkpoint

with open(Path(__file__).with_name("checkpoints.json"), encoding="utf-8") as f:
    CHECKPOINTS: list[dict[str, Any]] = sorted(json.load(f)["checkpoints"], key=lambda c: c["order"])

CHECKPOINTS_BY_ID: dict[Checkpoint, dict[str, Any]] = {Checkpoint(c["id"]): c for c in CHECKPOINTS}
FLOW: list[Checkpoint] = [Checkpoint(c["id"]) for c in CHECKPOINTS]
_FLOW_INDEX: dict[Checkpoint, int] = {cp: i for i, cp in enumerate(FLOW)}

_FIELD_OWNERS: dict[str, Checkpoint] = {}
for _cp in FLOW:
    for _field in [*CHECKPOINTS_BY_ID[_cp].get("required", []), *CHECKPOINTS_BY_ID[_cp].get("optional", [])]:
        _FIELD_OWNERS.setdefault(_field, _cp)


def order() -> list[Checkpoint]:
    return list(FLOW)


def get_checkpoint(checkpoint: Checkpoint) -> dict[str, Any]:
    return CHECKPOINTS_BY_ID[Checkpoint(checkpoint)]


def required_fields(checkpoint: Checkpoint) -> list[str]:
    return list(get_checkpoint(checkpoint).get("required") or [])


def optional_fields(checkpoint: Checkpoint) -> list[str]:
    return list(get_checkpoint(checkpoint).get("optional") or [])


def allowed_values(checkpoint: Checkpoint) -> dict[str, list[Any]]:
    return dict(get_checkpoint(checkpoint).get("allowed") or {})


def label(checkpoint: Checkpoint) -> str:
    cp = get_checkpoint(checkpoint)
    return str(cp.get("label") or cp["id"])


def description(checkpoint: Checkpoint) -> str:
    return str(get_checkpoint(checkpoint).get("description") or "")


def completion_percentage(checkpoint: Checkpoint) -> int:
    return int(get_checkpoint(checkpoint).get("completion") or 0)


def index(checkpoint: Checkpoint) -> int:
    return _FLOW_INDEX[Checkpoint(checkpoint)]


def next_checkpoint(checkpoint: Checkpoint) -> Checkpoint | None:
    i = index(checkpoint)
    return FLOW[i + 1] if i + 1 < len(FLOW) else None


def previous_checkpoint(checkpoint: Checkpoint) -> Checkpoint | None:
    i = index(checkpoint)
    return FLOW[i - 1] if i > 0 else None


def owner_of(field: str) -> Checkpoint | None:
    return _FIELD_OWNERS.get(field)


def parse_checkpoint(value: Any) -> Checkpoint:
    if isinstance(value, Checkpoint):
        return value
    candidate = str(value or "").strip().upper()
    try:
        return Checkpoint(candidate)
    except ValueError:
        raise InvalidRequest(
            "Unknown checkpoint",
            target=value,
            allowed=[cp.value for cp in FLOW],
        ) from None


def describe() -> list[dict[str, Any]]:
    return [
        {
            "id": cp.value,
            "label": label(cp),
            "description": description(cp),
            "requiredFields": required_fields(cp),
            "optionalFields": optional_fields(cp),
            "completionPercentage": completion_percentage(cp),
        }
        for cp in FLOW
    ]
