"""Checkpoint transition graph.

The machine is a pure function of ``(checkpoint, event, data)``. It knows
nothing about storage; callers persist history and the session after a
successful ``apply``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from onboarding import checkpoints
from onboarding.errors import GuardRejected
from onboarding.guards import missing_fields
from onboarding.state import Checkpoint

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    NEXT = "NEXT"
    BACK = "BACK"
    GOTO = "GOTO"
    COMPLETE = "COMPLETE"


@dataclass(frozen=True)
class Event:
    type: EventType
    target: Checkpoint | None = None

    @classmethod
    def next(cls) -> "Event":
        return cls(EventType.NEXT)

    @classmethod
    def back(cls) -> "Event":
        return cls(EventType.BACK)

    @classmethod
    def goto(cls, target: Checkpoint | str) -> "Event":
        return cls(EventType.GOTO, checkpoints.parse_checkpoint(target))

    @classmethod
    def complete(cls) -> "Event":
        return cls(EventType.COMPLETE)


@dataclass(frozen=True)
class TransitionCheck:
    allowed: bool
    source: Checkpoint
    target: Checkpoint
    reason: str | None = None
    missing: list[str] = field(default_factory=list)


def _reject(current: Checkpoint, reason: str, missing: list[str] | None = None) -> TransitionCheck:
    return TransitionCheck(False, current, current, reason, list(missing or []))


def _check_complete(current: Checkpoint, data: Mapping[str, Any]) -> TransitionCheck:
    if current != Checkpoint.REVIEW:
        return _reject(current, "Can only complete from REVIEW checkpoint")
    if data.get("confirmed") is not True:
        return _reject(current, "Must confirm before completing", missing_fields(current, data))
    return TransitionCheck(True, current, Checkpoint.COMPLETED)


def evaluate(current: Checkpoint, event: Event, data: Mapping[str, Any] | None) -> TransitionCheck:
    current = Checkpoint(current)
    data = data or {}

    if current == Checkpoint.COMPLETED:
        return _reject(current, "Onboarding is already complete")

    if event.type == EventType.NEXT:
        missing = missing_fields(current, data)
        if missing:
            return _reject(current, "Cannot advance: missing required fields", missing)
        return TransitionCheck(True, current, checkpoints.next_checkpoint(current) or current)

    if event.type == EventType.BACK:
        previous = checkpoints.previous_checkpoint(current)
        if previous is None:
            return _reject(current, "Already at the first checkpoint")
        return TransitionCheck(True, current, previous)

    if event.type == EventType.GOTO:
        if event.target is None:
            return _reject(current, "A target checkpoint is required")
        target = Checkpoint(event.target)
        if checkpoints.index(target) <= checkpoints.index(current):
            return TransitionCheck(True, current, target)
        if current == Checkpoint.REVIEW:
            return _check_complete(current, data)
        return _reject(current, "Cannot skip ahead to future checkpoints", missing_fields(current, data))

    if event.type == EventType.COMPLETE:
        return _check_complete(current, data)

    return _reject(current, f"Unsupported event {event.type}")


def can_transition(current: Checkpoint, event: Event, data: Mapping[str, Any] | None) -> bool:
    return evaluate(current, event, data).allowed


def transition(current: Checkpoint, event: Event, data: Mapping[str, Any] | None) -> Checkpoint:
    check = evaluate(current, event, data)
    if not check.allowed:
        raise GuardRejected(check.reason or "Transition not allowed", checkpoint=check.source.value, missing_fields=check.missing)
    if check.target != check.source:
        logger.info("checkpoint %s -> %s (%s)", check.source.value, check.target.value, event.type.value)
    return check.target


@dataclass(frozen=True)
class CheckpointMachine:
    """In-memory projection of a session: where it is and what it knows."""

    checkpoint: Checkpoint
    data: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.checkpoint == Checkpoint.COMPLETED

    @property
    def missing_fields(self) -> list[str]:
        return missing_fields(self.checkpoint, self.data)

    def can(self, event: Event) -> bool:
        return can_transition(self.checkpoint, event, self.data)

    def apply(self, event: Event) -> "CheckpointMachine":
        return CheckpointMachine(transition(self.checkpoint, event, self.data), self.data)
