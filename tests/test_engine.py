import pytest

from onboarding.engine import ConversationEngine
from onboarding.state import ChatMessage, Checkpoint, ConversationContext, MessageRole
from tests.conftest import BUSINESS_INFO, FailingProvider, ScriptedProvider


def _context(checkpoint, data=None, history=()):
    return ConversationContext(
        session_id="s1",
        checkpoint=checkpoint,
        checkpoint_data=data or {},
        message_history=list(history),
    )


class TestFallback:
    def test_provider_unavailable_at_welcome(self):
        provider = FailingProvider()
        engine = ConversationEngine(provider)

        result = engine.process_message("hi there", _context(Checkpoint.WELCOME))

        assert provider.calls == 1
        assert result.source == "fallback"
        assert result.extracted_data == {"greeted": True}
        assert result.merged_data == {"greeted": True}
        assert result.should_advance is True
        assert result.next_checkpoint == Checkpoint.BUSINESS_INFO
        assert result.tokens_used is None

    def test_unexpected_provider_errors_also_fall_back(self):
        engine = ConversationEngine(FailingProvider(RuntimeError("boom")))
        result = engine.process_message("hello", _context(Checkpoint.WELCOME))
        assert result.source == "fallback"
        assert result.should_advance

    def test_no_provider_uses_rules(self):
        result = ConversationEngine().process_message("hi", _context(Checkpoint.WELCOME))
        assert result.source == "fallback"
        assert result.next_checkpoint == Checkpoint.BUSINESS_INFO


class TestAdvanceDecision:
    def test_model_and_guards_agree(self):
        provider = ScriptedProvider(
            {
                "message": "Got it all!",
                "extractedData": {**BUSINESS_INFO, "phone": "5551234567"},
                "readyToAdvance": True,
            }
        )
        result = ConversationEngine(provider).process_message("...", _context(Checkpoint.BUSINESS_INFO))

        assert result.source == "llm"
        assert result.tokens_used == 12
        assert result.merged_data["phone"] == "(555) 123-4567"
        assert result.should_advance is True
        assert result.next_checkpoint == Checkpoint.DOMAIN_ACCESS

    def test_model_ready_but_fields_missing(self):
        provider = ScriptedProvider({"message": "Thanks", "extractedData": {"businessName": "Acme"}, "readyToAdvance": True})
        result = ConversationEngine(provider).process_message("Acme", _context(Checkpoint.BUSINESS_INFO))
        assert result.merged_data == {"businessName": "Acme"}
        assert result.should_advance is False
        assert result.next_checkpoint is None

    def test_fields_present_but_model_not_ready(self):
        provider = ScriptedProvider({"message": "Anything else?", "readyToAdvance": False})
        result = ConversationEngine(provider).process_message("no", _context(Checkpoint.BUSINESS_INFO, BUSINESS_INFO))
        assert result.should_advance is False


class TestReplies:
    def test_plain_text_reply_is_kept_as_message(self):
        provider = ScriptedProvider("Happy to help with that.")
        result = ConversationEngine(provider).process_message("hi", _context(Checkpoint.GBP, {"gbpStatus": "found"}))
        assert result.message == "Happy to help with that."
        assert result.extracted_data is None
        assert result.merged_data == {"gbpStatus": "found"}
        assert result.should_advance is False

    def test_lists_are_unioned_into_the_bag(self):
        provider = ScriptedProvider({"message": "ok", "extractedData": {"services": ["cuts", "color"]}})
        result = ConversationEngine(provider).process_message("x", _context(Checkpoint.BUSINESS_INFO, {"services": ["cuts"]}))
        assert result.merged_data["services"] == ["cuts", "color"]

    def test_completed_sessions_are_not_merged(self):
        provider = ScriptedProvider({"message": "Bye", "extractedData": {"phone": "555"}, "readyToAdvance": True})
        result = ConversationEngine(provider).process_message("x", _context(Checkpoint.COMPLETED, {"confirmed": True}))
        assert result.merged_data == {"confirmed": True}
        assert result.should_advance is False

    def test_ui_action_and_confirmations_pass_through(self):
        provider = ScriptedProvider(
            {
                "message": "Is this you?",
                "confirmationNeeded": [{"field": "gbpName", "value": "Acme", "question": "Is this your listing?"}],
                "uiAction": {"type": "show_business_search"},
            }
        )
        result = ConversationEngine(provider).process_message("x", _context(Checkpoint.GBP))
        assert result.ui_action.type == "show_business_search"
        assert result.confirmation_needed[0].field == "gbpName"


class TestPromptAndHistory:
    def test_provider_sees_instructions_and_trimmed_history(self):
        history = [
            ChatMessage(session_id="s1", role=MessageRole.USER, content="one"),
            ChatMessage(session_id="s1", role=MessageRole.ASSISTANT, content="two"),
            ChatMessage(session_id="s1", role=MessageRole.SYSTEM, content="note"),
            ChatMessage(session_id="s1", role=MessageRole.USER, content="three"),
        ]
        provider = ScriptedProvider({"message": "ok"})
        ConversationEngine(provider, max_history_messages=2).process_message(
            "four", _context(Checkpoint.GBP, history=history)
        )

        call = provider.calls[0]
        assert "CURRENT CHECKPOINT: GBP" in call["instructions"]
        assert [m.content for m in call["history"]] == ["two", "three"]
        assert call["user_text"] == "four"
        assert call["checkpoint"] == Checkpoint.GBP


def test_welcome_message():
    assert ConversationEngine.welcome_message("Dana").startswith("Hi Dana! Welcome")
    assert ConversationEngine.welcome_message().startswith("Hi! Welcome")


@pytest.mark.parametrize("checkpoint", list(Checkpoint))
def test_every_checkpoint_produces_a_reply(checkpoint):
    result = ConversationEngine(FailingProvider()).process_message("hello", _context(checkpoint))
    assert result.message
