from __future__ import annotations

from onboarding.graph import DEFAULT_MAX_HISTORY, turn_graph
from onboarding.providers import RuleBasedProvider, TextCompletionProvider
from onboarding.state import ConversationContext, ConversationResult, TurnState


class ConversationEngine:
    """Turns one user utterance into one assistant reply plus an advance decision.

    The provider is chosen by the caller. ``None`` (or a ``RuleBasedProvider``)
    means every reply comes from the deterministic fallback.
    """

    def __init__(
        self,
        provider: TextCompletionProvider | None = None,
        *,
        fallback: RuleBasedProvider | None = None,
        max_history_messages: int = DEFAULT_MAX_HISTORY,
    ) -> None:
        self.provider = provider
        self.fallback = fallback or RuleBasedProvider()
        self.max_history_messages = max_history_messages

    def process_message(self, user_message: str, context: ConversationContext) -> ConversationResult:
        state = TurnState(context=context, user_message=user_message)
        result = turn_graph.invoke(
            state,
            config={
                "configurable": {
                    "provider": self.provider,
                    "fallback": self.fallback,
                    "max_history_messages": self.max_history_messages,
                }
            },
        )
        if not isinstance(result, TurnState):
            result = TurnState.model_validate(result)

        reply = result.reply
        return ConversationResult(
            message=reply.message if reply else "",
            extracted_data=reply.extracted_data if reply else None,
            confirmation_needed=reply.confirmation_needed if reply else [],
            ui_action=reply.ui_action if reply else None,
            merged_data=result.merged_data,
            should_advance=result.should_advance,
            next_checkpoint=result.next_checkpoint,
            tokens_used=result.tokens_used,
            source=result.source,
        )

    @staticmethod
    def welcome_message(client_name: str | None = None) -> str:
        name = f" {client_name}" if client_name else ""
        return (
            f"Hi{name}! Welcome to Set Forget Grow!\n\n"
            "I'm here to help you through our quick onboarding process. This usually takes about "
            "10-15 minutes, and you can type or use the mic button to talk - whatever's easier for you.\n\n"
            "Let's start with your business. What's the name of your business and what do you do?"
        )
