import pytest
import redis

from onboarding.errors import SessionNotFound, StoreFailure
from onboarding.state import Checkpoint, MessageRole
from onboarding.storage import HistoryStore, MemoryBackend, SessionStore, open_backend


class TestMemoryBackend:
    def test_lrange_follows_redis_semantics(self, backend):
        backend.rpush("k", "a", "b", "c", "d")
        assert backend.lrange("k", 0, -1) == ["a", "b", "c", "d"]
        assert backend.lrange("k", -2, -1) == ["c", "d"]
        assert backend.lrange("k", -10, 1) == ["a", "b"]
        assert backend.lrange("missing", 0, -1) == []
        assert backend.llen("k") == 4

    def test_lset_and_delete(self, backend):
        backend.rpush("k", "a")
        backend.lset("k", 0, "z")
        assert backend.lrange("k", 0, -1) == ["z"]
        with pytest.raises(redis.ResponseError):
            backend.lset("k", 5, "y")
        backend.set("v", "1")
        assert backend.delete("k", "v") == 2
        assert backend.get("v") is None


def test_open_backend_without_url():
    assert isinstance(open_backend(None), MemoryBackend)


class TestSessionStore:
    def test_create_and_get(self, sessions):
        session = sessions.create("Owner@Acme.com", "Dana")
        loaded = sessions.get(session.id)
        assert loaded == session
        assert loaded.client_email == "owner@acme.com"
        assert loaded.checkpoint_data == {"clientName": "Dana"}
        assert loaded.current_checkpoint == Checkpoint.WELCOME

    def test_update(self, sessions):
        session = sessions.create("a@b.co")
        updated = sessions.update(session.id, current_checkpoint=Checkpoint.GBP, checkpoint_data={"x": 1})
        assert sessions.get(session.id) == updated
        assert updated.current_checkpoint == Checkpoint.GBP

    def test_update_unknown(self, sessions):
        with pytest.raises(SessionNotFound):
            sessions.update("nope", review_reached=True)

    def test_find_active_skips_completed(self, sessions):
        session = sessions.create("a@b.co")
        assert sessions.find_active("A@B.co").id == session.id
        sessions.update(session.id, completed_at=session.started_at)
        assert sessions.find_active("a@b.co") is None
        assert sessions.find_active("other@b.co") is None


class TestHistoryStore:
    def test_close_open_entry_records_snapshot(self, history):
        history.append("s1", Checkpoint.WELCOME)
        closed = history.close_open_entry("s1", Checkpoint.WELCOME, {"greeted": True})
        history.append("s1", Checkpoint.BUSINESS_INFO)

        entries = history.entries("s1")
        assert [e.checkpoint for e in entries] == [Checkpoint.WELCOME, Checkpoint.BUSINESS_INFO]
        assert entries[0].data == {"greeted": True}
        assert entries[0].exited_at == closed.exited_at
        assert history.open_entry("s1").checkpoint == Checkpoint.BUSINESS_INFO
        assert history.last_closed_entry("s1").checkpoint == Checkpoint.WELCOME

    def test_close_without_match(self, history):
        history.append("s1", Checkpoint.WELCOME)
        assert history.close_open_entry("s1", Checkpoint.GBP, {}) is None
        assert history.open_entry("s1").checkpoint == Checkpoint.WELCOME
        assert history.last_closed_entry("s1") is None


class TestMessageStore:
    def test_recent_is_oldest_first(self, messages):
        for i in range(5):
            messages.append("s1", MessageRole.USER, f"m{i}")
        assert [m.content for m in messages.recent("s1", 3)] == ["m2", "m3", "m4"]
        assert [m.content for m in messages.all("s1")] == ["m0", "m1", "m2", "m3", "m4"]
        assert messages.recent("s1", 0) == []

    def test_assistant_metadata(self, messages):
        stored = messages.append(
            "s1", MessageRole.ASSISTANT, "hi", extracted_data={"greeted": True}, tokens_used=7
        )
        loaded = messages.all("s1")[0]
        assert loaded.id == stored.id
        assert loaded.extracted_data == {"greeted": True}
        assert loaded.tokens_used == 7


class BrokenBackend(MemoryBackend):
    def get(self, key):
        raise redis.ConnectionError("down")

    def rpush(self, key, *values):
        raise redis.ConnectionError("down")


def test_backend_errors_become_store_failures():
    backend = BrokenBackend()
    with pytest.raises(StoreFailure) as info:
        SessionStore(backend).get("s1")
    assert info.value.message == "Failed to load session"
    with pytest.raises(StoreFailure):
        HistoryStore(backend).append("s1", Checkpoint.WELCOME)
