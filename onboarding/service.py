"""Session lifecycle: create/resume, checkpoint transitions and chat turns.

Every accepted transition is committed synchronously, history first and the
session second. The destination entry is logged before the previous one is
closed, so history always holds an open entry. If a process dies part way
through, the next load adopts the newest open entry, or reopens the session's
checkpoint when none is open.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Mapping

from onboarding import checkpoints, guards, machine
from onboarding.engine import ConversationEngine
from onboarding.errors import InvalidRequest, SessionNotFound
from onboarding.extraction import normalize_extracted
from onboarding.machine import Event
from onboarding.merge import changed_fields, merge_data
from onboarding.state import (
    Checkpoint,
    CheckpointStatus,
    ConversationContext,
    MessageResult,
    MessageRole,
    OnboardingSession,
    TransitionResult,
    utcnow,
)
from onboarding.storage import HistoryStore, MessageStore, SessionStore

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

ACTIONS = ("next", "back", "goto", "complete")


def _event_for(action: str, target: Any = None) -> Event:
    name = str(action or "").strip().lower()
    if name == "next":
        return Event.next()
    if name == "back":
        return Event.back()
    if name == "complete":
        return Event.complete()
    if name == "goto":
        if target is None or target == "":
            raise InvalidRequest("A target checkpoint is required for goto", action=action)
        return Event.goto(target)
    raise InvalidRequest("Unknown action", action=action, allowed=list(ACTIONS))


class OnboardingService:
    def __init__(
        self,
        sessions: SessionStore,
        history: HistoryStore,
        messages: MessageStore,
        engine: ConversationEngine,
        *,
        context_messages: int = 30,
    ) -> None:
        self.sessions = sessions
        self.history = history
        self.messages = messages
        self.engine = engine
        self.context_messages = context_messages

    # -- sessions -----------------------------------------------------------

    def create_session(self, email: str, name: str | None = None) -> tuple[OnboardingSession, bool]:
        email = (email or "").strip()
        if not _EMAIL_RE.match(email):
            raise InvalidRequest("Invalid input", email="Must be a valid email address")
        name = (name or "").strip() or None

        existing = self.sessions.find_active(email)
        if existing is not None:
            session = self.sessions.update(existing.id, last_activity_at=utcnow())
            logger.info("resuming session %s for %s", session.id, email)
            return self._reconcile(session), True

        session = self.sessions.create(email, name)
        self.history.append(session.id, Checkpoint.WELCOME)
        logger.info("created session %s for %s", session.id, email)
        return session, False

    def get_session(self, session_id: str) -> dict[str, Any]:
        session = self._load(session_id)
        data = session.checkpoint_data
        return {
            "sessionId": session.id,
            "clientId": session.client_id,
            "clientName": session.client_name or data.get("firstName") or data.get("clientName"),
            "clientEmail": session.client_email,
            "businessName": data.get("businessName"),
            "currentCheckpoint": session.current_checkpoint.value,
            "completionPercentage": checkpoints.completion_percentage(session.current_checkpoint),
            "checkpointData": data,
            "reviewReached": session.review_reached,
            "messages": [m.to_payload() for m in self.messages.all(session.id)],
            "startedAt": session.started_at.isoformat(),
            "lastActivityAt": session.last_activity_at.isoformat(),
            "completedAt": session.completed_at.isoformat() if session.completed_at else None,
        }

    def greeting(self, session: OnboardingSession) -> str:
        return self.engine.welcome_message(session.client_name)

    def status(self, session_id: str) -> CheckpointStatus:
        session = self._load(session_id)
        current = session.current_checkpoint
        data = session.checkpoint_data
        return CheckpointStatus(
            session_id=session.id,
            current_checkpoint=current,
            is_complete=session.completed_at is not None,
            completion_percentage=checkpoints.completion_percentage(current),
            can_advance=machine.can_transition(current, Event.next(), data),
            required_fields=checkpoints.required_fields(current),
            missing_fields=guards.missing_fields(current, data),
            checkpoint_data=data,
            last_activity_at=session.last_activity_at,
        )

    # -- transitions --------------------------------------------------------

    def transition(
        self,
        session_id: str,
        action: str,
        target: Any = None,
        data: Mapping[str, Any] | None = None,
    ) -> TransitionResult:
        event = _event_for(action, target)
        session = self._load(session_id)
        previous = session.current_checkpoint

        patch = normalize_extracted(dict(data)) if data else None
        merged = merge_data(session.checkpoint_data, patch)
        merged = self._reset_confirmation(session, merged, patch)

        destination = machine.transition(previous, event, merged)
        session = self._commit(session, destination, merged)
        return self._transition_result(previous, session)

    def next(self, session_id: str, data: Mapping[str, Any] | None = None) -> TransitionResult:
        return self.transition(session_id, "next", data=data)

    def back(self, session_id: str, data: Mapping[str, Any] | None = None) -> TransitionResult:
        return self.transition(session_id, "back", data=data)

    def goto(self, session_id: str, target: Any, data: Mapping[str, Any] | None = None) -> TransitionResult:
        return self.transition(session_id, "goto", target=target, data=data)

    def complete(self, session_id: str, data: Mapping[str, Any] | None = None) -> TransitionResult:
        return self.transition(session_id, "complete", data=data)

    # -- conversation -------------------------------------------------------

    def handle_message(self, session_id: str, content: str, is_voice: bool = False) -> MessageResult:
        content = (content or "").strip()
        if not content:
            raise InvalidRequest("Invalid input", content="Message content must not be empty")

        session = self._load(session_id)
        current = session.current_checkpoint
        recent = self.messages.recent(session.id, self.context_messages)
        self.messages.append(session.id, MessageRole.USER, content, is_voice=is_voice)

        result = self.engine.process_message(content, self._context(session, recent))

        reply = self.messages.append(
            session.id,
            MessageRole.ASSISTANT,
            result.message,
            extracted_data=result.extracted_data,
            tokens_used=result.tokens_used,
        )

        merged = self._reset_confirmation(session, result.merged_data, result.extracted_data)
        destination = current
        if result.should_advance:
            # Re-check against the bag as it will be committed.
            check = machine.evaluate(current, Event.next(), merged)
            if check.allowed:
                destination = check.target
            else:
                logger.info("session %s: advance withdrawn, missing %s", session.id, check.missing)

        self._commit(session, destination, merged)
        return MessageResult(
            message_id=reply.id,
            message=result.message,
            extracted_data=result.extracted_data,
            confirmation_needed=result.confirmation_needed,
            ui_action=result.ui_action,
            checkpoint=destination,
            advanced=destination != current,
            tokens_used=result.tokens_used,
        )

    # -- internals ----------------------------------------------------------

    def _load(self, session_id: str) -> OnboardingSession:
        if not session_id:
            raise InvalidRequest("Session ID is required")
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return self._reconcile(session)

    def _reconcile(self, session: OnboardingSession) -> OnboardingSession:
        entry = self.history.open_entry(session.id)
        if entry is None:
            if session.current_checkpoint != Checkpoint.COMPLETED:
                logger.warning(
                    "session %s: no open history entry; reopening %s",
                    session.id,
                    session.current_checkpoint.value,
                )
                self.history.append(session.id, session.current_checkpoint)
            return session
        if entry.checkpoint == session.current_checkpoint:
            return session

        logger.warning(
            "session %s: stored checkpoint %s disagrees with history %s; recovering",
            session.id,
            session.current_checkpoint.value,
            entry.checkpoint.value,
        )
        self.history.close_open_entry(session.id, session.current_checkpoint, session.checkpoint_data)
        closed = self.history.last_closed_entry(session.id)
        patch: dict[str, Any] = {
            "current_checkpoint": entry.checkpoint,
            "checkpoint_data": merge_data(session.checkpoint_data, closed.data if closed else None),
        }
        if checkpoints.index(entry.checkpoint) >= checkpoints.index(Checkpoint.REVIEW):
            patch["review_reached"] = True
        if entry.checkpoint == Checkpoint.COMPLETED and session.completed_at is None:
            patch["completed_at"] = entry.entered_at
        return self.sessions.update(session.id, **patch)

    def _reset_confirmation(
        self,
        session: OnboardingSession,
        merged: dict[str, Any],
        patch: Mapping[str, Any] | None,
    ) -> dict[str, Any]:
        """Drop an earlier confirmation once data it covered has changed."""
        if not session.review_reached or merged.get("confirmed") is not True:
            return merged
        if patch and "confirmed" in patch:
            return merged

        review_index = checkpoints.index(Checkpoint.REVIEW)
        for name in changed_fields(session.checkpoint_data, merged):
            owner = checkpoints.owner_of(name)
            if owner is None or checkpoints.index(owner) < review_index:
                logger.info("session %s: %s changed after review; confirmation reset", session.id, name)
                return {**merged, "confirmed": False}
        return merged

    def _commit(self, session: OnboardingSession, destination: Checkpoint, data: dict[str, Any]) -> OnboardingSession:
        now = utcnow()
        patch: dict[str, Any] = {"checkpoint_data": data, "last_activity_at": now}

        if destination != session.current_checkpoint:
            self.history.append(session.id, destination)
            self.history.close_open_entry(session.id, session.current_checkpoint, data)
            patch["current_checkpoint"] = destination
            if destination == Checkpoint.REVIEW:
                patch["review_reached"] = True
            if destination == Checkpoint.COMPLETED:
                patch["completed_at"] = now
                logger.info("session %s completed onboarding", session.id)

        return self.sessions.update(session.id, **patch)

    def _context(self, session: OnboardingSession, recent: list) -> ConversationContext:
        data = session.checkpoint_data
        address = data.get("address")
        return ConversationContext(
            session_id=session.id,
            checkpoint=session.current_checkpoint,
            checkpoint_data=data,
            message_history=recent,
            client_name=session.client_name or data.get("firstName") or data.get("clientName"),
            business_name=data.get("businessName"),
            address=address if isinstance(address, dict) else None,
        )

    @staticmethod
    def _transition_result(previous: Checkpoint, session: OnboardingSession) -> TransitionResult:
        current = session.current_checkpoint
        data = session.checkpoint_data
        return TransitionResult(
            transitioned=current != previous,
            previous_checkpoint=previous,
            current_checkpoint=current,
            completion_percentage=checkpoints.completion_percentage(current),
            is_complete=current == Checkpoint.COMPLETED,
            can_advance=machine.can_transition(current, Event.next(), data),
            required_fields=checkpoints.required_fields(current),
            missing_fields=guards.missing_fields(current, data),
        )
