"""Shared fixtures: in-memory stores, scripted providers and a wired service."""

import json

import pytest
from fastapi.testclient import TestClient

from onboarding.engine import ConversationEngine
from onboarding.errors import ProviderFailure
from onboarding.main import create_app
from onboarding.providers import RuleBasedProvider
from onboarding.service import OnboardingService
from onboarding.state import Completion
from onboarding.storage import HistoryStore, MemoryBackend, MessageStore, SessionStore

BUSINESS_INFO = {
    "businessName": "Acme Plumbing",
    "email": "info@acme.com",
    "phone": "(555) 123-4567",
    "address": {"street": "123 Main St", "city": "Springfield", "state": "IL", "zip": "62701"},
    "services": ["drain cleaning", "pipe repair"],
}


class ScriptedProvider:
    """Returns queued replies in order and records what it was asked."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    def complete(self, system_instructions, history, user_text, *, checkpoint=None):
        self.calls.append(
            {
                "instructions": system_instructions,
                "history": list(history),
                "user_text": user_text,
                "checkpoint": checkpoint,
            }
        )
        reply = self.replies.pop(0) if self.replies else {"message": "ok"}
        text = reply if isinstance(reply, str) else json.dumps(reply)
        return Completion(text=text, tokens_used=12)


class FailingProvider:
    def __init__(self, exc=None):
        self.exc = exc or ProviderFailure("model unavailable")
        self.calls = 0

    def complete(self, system_instructions, history, user_text, *, checkpoint=None):
        self.calls += 1
        raise self.exc


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def sessions(backend):
    return SessionStore(backend)


@pytest.fixture
def history(backend):
    return HistoryStore(backend)


@pytest.fixture
def messages(backend):
    return MessageStore(backend)


@pytest.fixture
def engine():
    return ConversationEngine(RuleBasedProvider())


@pytest.fixture
def service(sessions, history, messages, engine):
    return OnboardingService(sessions, history, messages, engine)


@pytest.fixture
def session(service):
    created, _ = service.create_session("owner@acme.com", "Dana")
    return created


@pytest.fixture
def client(service):
    return TestClient(create_app(service))


@pytest.fixture
def at_review(service, session):
    """A session walked through every checkpoint up to REVIEW."""
    service.next(session.id, data={"greeted": True})
    service.next(session.id, data=BUSINESS_INFO)
    service.next(session.id, data={"domainStatus": "has_domain", "domainName": "acmeplumbing.com"})
    service.next(session.id, data={"gbpStatus": "found"})
    service.next(session.id, data={"photoStatus": "deferred"})
    return session
