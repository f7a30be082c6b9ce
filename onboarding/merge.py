from __future__ import annotations

import copy
from typing import Any, Mapping


def _union(existing: list[Any], incoming: list[Any]) -> list[Any]:
    merged = copy.deepcopy(existing)
    for item in incoming:
        if item not in merged:
            merged.append(copy.deepcopy(item))
    return merged


def merge_data(existing: Mapping[str, Any] | None, incoming: Mapping[str, Any] | None) -> dict[str, Any]:
    """Fold newly extracted fields into the data bag.

    Lists are unioned (existing order first, new unique items appended),
    mappings are merged recursively and anything else is overwritten. ``None``
    values in ``incoming`` leave the existing value alone, so a merge never
    drops a key. Neither argument is mutated.
    """
    merged: dict[str, Any] = copy.deepcopy(dict(existing or {}))
    if not incoming:
        return merged

    for key, value in incoming.items():
        if value is None:
            continue
        current = merged.get(key)
        if isinstance(value, list) and isinstance(current, list):
            merged[key] = _union(current, value)
        elif isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = merge_data(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def changed_fields(before: Mapping[str, Any] | None, after: Mapping[str, Any] | None) -> set[str]:
    before = before or {}
    after = after or {}
    return {k for k in set(before) | set(after) if before.get(k) != after.get(k)}
