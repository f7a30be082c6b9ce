from __future__ import annotations

import logging
import threading
from typing import Any, Callable, TypeVar

import redis

from onboarding.errors import SessionNotFound, StoreFailure
from onboarding.state import (
    ChatMessage,
    Checkpoint,
    CheckpointHistoryEntry,
    MessageRole,
    OnboardingSession,
    utcnow,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PREFIX = "onboarding"


def _session_key(session_id: str) -> str:
    return f"{_PREFIX}:session:{session_id}"


def _client_key(email: str) -> str:
    return f"{_PREFIX}:client:{email.strip().lower()}"


def _history_key(session_id: str) -> str:
    return f"{_PREFIX}:history:{session_id}"


def _messages_key(session_id: str) -> str:
    return f"{_PREFIX}:messages:{session_id}"


class MemoryBackend:
    """In-process stand-in exposing the handful of Redis calls the stores use."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}
        self._lists: dict[str, list[str]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._values.get(key)

    def set(self, key: str, value: str) -> bool:
        with self._lock:
            self._values[key] = value
        return True

    def delete(self, *keys: str) -> int:
        removed = 0
        with self._lock:
            for key in keys:
                removed += int(self._values.pop(key, None) is not None)
                removed += int(self._lists.pop(key, None) is not None)
        return removed

    def rpush(self, key: str, *values: str) -> int:
        with self._lock:
            items = self._lists.setdefault(key, [])
            items.extend(values)
            return len(items)

    def llen(self, key: str) -> int:
        with self._lock:
            return len(self._lists.get(key, []))

    def lrange(self, key: str, start: int, end: int) -> list[str]:
        with self._lock:
            items = self._lists.get(key, [])
            size = len(items)
            if start < 0:
                start = max(size + start, 0)
            if end < 0:
                end = size + end
            return list(items[start : end + 1])

    def lset(self, key: str, index: int, value: str) -> bool:
        with self._lock:
            items = self._lists.get(key)
            if items is None:
                raise redis.ResponseError("no such key")
            try:
                items[index] = value
            except IndexError:
                raise redis.ResponseError("index out of range") from None
            return True


def open_backend(redis_url: str | None) -> Any:
    if not redis_url:
        return MemoryBackend()
    logger.info("using redis store at %s", redis_url)
    return redis.Redis.from_url(redis_url, decode_responses=True)


def _guard(action: str, fn: Callable[[], T]) -> T:
    try:
        return fn()
    except redis.RedisError as exc:
        logger.error("store failure while trying to %s: %s", action, exc)
        raise StoreFailure(f"Failed to {action}") from exc


class SessionStore:
    def __init__(self, backend: Any) -> None:
        self.backend = backend

    def create(self, email: str, name: str | None = None) -> OnboardingSession:
        session = OnboardingSession(
            client_email=email.strip().lower(),
            client_name=name or None,
            checkpoint_data={"clientName": name} if name else {},
        )
        self._save(session)
        _guard("index client", lambda: self.backend.set(_client_key(email), session.id))
        return session

    def get(self, session_id: str) -> OnboardingSession | None:
        raw = _guard("load session", lambda: self.backend.get(_session_key(session_id)))
        if not raw:
            return None
        return OnboardingSession.model_validate_json(raw)

    def update(self, session_id: str, **patch: Any) -> OnboardingSession:
        session = self.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        updated = session.model_copy(update=patch)
        self._save(updated)
        return updated

    def find_active(self, email: str) -> OnboardingSession | None:
        session_id = _guard("look up client", lambda: self.backend.get(_client_key(email)))
        if not session_id:
            return None
        session = self.get(session_id)
        if session is None or session.completed_at is not None:
            return None
        return session

    def _save(self, session: OnboardingSession) -> None:
        payload = session.model_dump_json()
        _guard("save session", lambda: self.backend.set(_session_key(session.id), payload))


class HistoryStore:
    def __init__(self, backend: Any) -> None:
        self.backend = backend

    def append(self, session_id: str, checkpoint: Checkpoint) -> CheckpointHistoryEntry:
        entry = CheckpointHistoryEntry(session_id=session_id, checkpoint=checkpoint)
        _guard("log checkpoint", lambda: self.backend.rpush(_history_key(session_id), entry.model_dump_json()))
        return entry

    def entries(self, session_id: str) -> list[CheckpointHistoryEntry]:
        raw = _guard("load history", lambda: self.backend.lrange(_history_key(session_id), 0, -1))
        return [CheckpointHistoryEntry.model_validate_json(item) for item in raw]

    def open_entry(self, session_id: str) -> CheckpointHistoryEntry | None:
        for entry in reversed(self.entries(session_id)):
            if entry.is_open:
                return entry
        return None

    def last_closed_entry(self, session_id: str) -> CheckpointHistoryEntry | None:
        for entry in reversed(self.entries(session_id)):
            if not entry.is_open:
                return entry
        return None

    def close_open_entry(
        self, session_id: str, checkpoint: Checkpoint, snapshot: dict[str, Any]
    ) -> CheckpointHistoryEntry | None:
        entries = self.entries(session_id)
        for i in range(len(entries) - 1, -1, -1):
            entry = entries[i]
            if entry.is_open and entry.checkpoint == checkpoint:
                closed = entry.model_copy(update={"exited_at": utcnow(), "data": dict(snapshot)})
                _guard(
                    "close checkpoint",
                    lambda: self.backend.lset(_history_key(session_id), i, closed.model_dump_json()),
                )
                return closed
        return None


class MessageStore:
    def __init__(self, backend: Any) -> None:
        self.backend = backend

    def append(
        self,
        session_id: str,
        role: MessageRole,
        content: str,
        *,
        is_voice: bool = False,
        extracted_data: dict[str, Any] | None = None,
        tokens_used: int | None = None,
    ) -> ChatMessage:
        message = ChatMessage(
            session_id=session_id,
            role=role,
            content=content,
            is_voice=is_voice,
            extracted_data=extracted_data,
            tokens_used=tokens_used,
        )
        _guard("save message", lambda: self.backend.rpush(_messages_key(session_id), message.model_dump_json()))
        return message

    def recent(self, session_id: str, limit: int) -> list[ChatMessage]:
        if limit <= 0:
            return []
        raw = _guard("load messages", lambda: self.backend.lrange(_messages_key(session_id), -limit, -1))
        return [ChatMessage.model_validate_json(item) for item in raw]

    def all(self, session_id: str) -> list[ChatMessage]:
        raw = _guard("load messages", lambda: self.backend.lrange(_messages_key(session_id), 0, -1))
        return [ChatMessage.model_validate_json(item) for item in raw]
