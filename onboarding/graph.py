from __future__ import annotations

import logging
from typing import Any

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, START, StateGraph

from onboarding import checkpoints
from onboarding.errors import ProviderFailure
from onboarding.extraction import normalize_extracted, parse_ai_reply
from onboarding.machine import Event, can_transition
from onboarding.merge import merge_data
from onboarding.prompts import build_instructions
from onboarding.providers import RuleBasedProvider
from onboarding.state import Checkpoint, MessageRole, TurnState

logger = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY = 20


def build_prompt(state: TurnState) -> dict[str, Any]:
    ctx = state.context
    instructions = build_instructions(
        ctx.checkpoint,
        ctx.checkpoint_data,
        client_name=ctx.client_name,
        business_name=ctx.business_name,
        address=ctx.address,
    )
    logger.debug("instructions for %s:\n%s", ctx.checkpoint.value, instructions)
    return {"instructions": instructions}


def respond(state: TurnState, config: RunnableConfig) -> dict[str, Any]:
    options = (config or {}).get("configurable", {})
    provider = options.get("provider")
    fallback = options.get("fallback")
    if fallback is None:
        fallback = provider if isinstance(provider, RuleBasedProvider) else RuleBasedProvider()
    max_history = int(options.get("max_history_messages") or DEFAULT_MAX_HISTORY)

    ctx = state.context
    history = [m for m in ctx.message_history if m.role != MessageRole.SYSTEM][-max_history:]

    if provider is not None and not isinstance(provider, RuleBasedProvider):
        try:
            completion = provider.complete(state.instructions, history, state.user_message, checkpoint=ctx.checkpoint)
            return {"raw_reply": completion.text, "tokens_used": completion.tokens_used, "source": "llm"}
        except ProviderFailure as exc:
            logger.warning("provider failed for session %s: %s; using fallback reply", ctx.session_id, exc.message)
        except Exception:
            logger.exception("provider raised for session %s; using fallback reply", ctx.session_id)

    completion = fallback.complete(state.instructions, history, state.user_message, checkpoint=ctx.checkpoint)
    return {"raw_reply": completion.text, "tokens_used": None, "source": "fallback"}


def merge(state: TurnState) -> dict[str, Any]:
    ctx = state.context
    reply = parse_ai_reply(state.raw_reply)
    extracted = normalize_extracted(reply.extracted_data)
    reply = reply.model_copy(update={"extracted_data": extracted})

    if ctx.checkpoint == Checkpoint.COMPLETED:
        merged = dict(ctx.checkpoint_data)
    else:
        merged = merge_data(ctx.checkpoint_data, extracted)
    return {"reply": reply, "merged_data": merged}


def decide(state: TurnState) -> dict[str, Any]:
    checkpoint = state.context.checkpoint
    # Both the model and the guards must agree before the flow moves on.
    advance = bool(state.reply and state.reply.ready_to_advance) and can_transition(
        checkpoint, Event.next(), state.merged_data
    )
    return {
        "should_advance": advance,
        "next_checkpoint": checkpoints.next_checkpoint(checkpoint) if advance else None,
    }


builder = StateGraph(TurnState)
builder.add_node("build_prompt", build_prompt)
builder.add_node("respond", respond)
builder.add_node("merge", merge)
builder.add_node("decide", decide)

builder.add_edge(START, "build_prompt")
builder.add_edge("build_prompt", "respond")
builder.add_edge("respond", "merge")
builder.add_edge("merge", "decide")
builder.add_edge("decide", END)

turn_graph = builder.compile()
