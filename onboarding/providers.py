from __future__ import annotations

import logging
import re
from typing import Any, Protocol, Sequence

from google import genai
from google.genai import types

from onboarding import registrars
from onboarding.config import Settings
from onboarding.errors import ProviderFailure
from onboarding.extraction import (
    extract_domain,
    extract_email,
    extract_phone,
    extract_services,
    parse_address,
    parse_business_hours,
)
from onboarding.prompts import REQUIRED_PHOTO_CATEGORIES
from onboarding.state import AIReply, ChatMessage, Checkpoint, Completion, MessageRole, UIAction

logger = logging.getLogger(__name__)


class TextCompletionProvider(Protocol):
    def complete(
        self,
        system_instructions: str,
        history: Sequence[ChatMessage],
        user_text: str,
        *,
        checkpoint: Checkpoint | None = None,
    ) -> Completion: ...


# ---------------------------------------------------------------------------
# Live provider
# ---------------------------------------------------------------------------


class GeminiProvider:
    def __init__(
        self,
        api_key: str | None = None,
        *,
        model: str = "gemini-2.5-flash",
        max_output_tokens: int = 1024,
        client: Any | None = None,
    ) -> None:
        if client is None and not api_key:
            raise ValueError("GeminiProvider needs an api_key or a client")
        self.client = client or genai.Client(api_key=api_key)
        self.model = model
        self.max_output_tokens = max_output_tokens

    @staticmethod
    def _contents(history: Sequence[ChatMessage], user_text: str) -> list[types.Content]:
        contents: list[types.Content] = []
        for msg in history:
            if msg.role == MessageRole.USER:
                role = "user"
            elif msg.role == MessageRole.ASSISTANT:
                role = "model"
            else:
                continue
            contents.append(types.Content(role=role, parts=[types.Part(text=msg.content)]))
        contents.append(types.Content(role="user", parts=[types.Part(text=user_text)]))
        return contents

    def complete(
        self,
        system_instructions: str,
        history: Sequence[ChatMessage],
        user_text: str,
        *,
        checkpoint: Checkpoint | None = None,
    ) -> Completion:
        try:
            resp = self.client.models.generate_content(
                model=self.model,
                contents=self._contents(history, user_text),
                config=types.GenerateContentConfig(
                    system_instruction=system_instructions,
                    max_output_tokens=self.max_output_tokens,
                ),
            )
        except Exception as exc:
            raise ProviderFailure(f"Gemini call failed: {exc}") from exc

        text = (getattr(resp, "text", None) or "").strip()
        if not text:
            raise ProviderFailure("Gemini returned an empty reply")

        usage = getattr(resp, "usage_metadata", None)
        tokens = getattr(usage, "candidates_token_count", None) if usage is not None else None
        return Completion(text=text, tokens_used=tokens if isinstance(tokens, int) else None)


# ---------------------------------------------------------------------------
# Deterministic fallback
# ---------------------------------------------------------------------------

_GREETINGS = {"hi", "hello", "hey", "howdy", "hiya"}


def _token_set(message: str) -> set[str]:
    return set(re.findall(r"[a-z0-9']+", (message or "").lower()))


def _is_confirm_text(text: str) -> bool:
    lowered = (text or "").strip().lower()
    if not lowered:
        return False
    if lowered in {"y", "yes", "ok", "okay", "confirm", "confirmed", "correct", "looks good", "all good"}:
        return True
    return bool(re.search(r"\b(confirm|confirmed|looks (good|great|right)|all correct|that'?s (all )?correct)\b", lowered))


def _is_decline_text(text: str) -> bool:
    lowered = (text or "").strip().lower()
    if lowered in {"n", "no", "nope", "not yet"}:
        return True
    return bool(re.search(r"\b(no|nope|not\s+yet|change|wrong|fix|update)\b", lowered))


def _extract_business_name(text: str) -> str | None:
    m = re.search(
        r"\b(?:business|company|shop|store)(?:'s)?(?:\s+name)?\s*(?:is\s+called|is\s+named|called|is|=|:)\s*([^\n,;.!?]+)",
        text or "",
        flags=re.IGNORECASE,
    )
    if not m:
        m = re.search(r"\bwe(?:'re| are)\s+called\s+([^\n,;.!?]+)", text or "", flags=re.IGNORECASE)
    if not m:
        return None
    candidate = m.group(1).strip().strip('"').strip("'")
    candidate = re.split(r"\band\b|\bphone\b|\bemail\b", candidate, maxsplit=1, flags=re.IGNORECASE)[0].strip()
    return candidate[:120] or None


class RuleBasedProvider:
    """Keyword-driven replies used when no model is configured or the model call fails.

    Always produces a well-formed JSON reply so a conversation never stalls.
    """

    def complete(
        self,
        system_instructions: str,
        history: Sequence[ChatMessage],
        user_text: str,
        *,
        checkpoint: Checkpoint | None = None,
    ) -> Completion:
        reply = self.reply(checkpoint or Checkpoint.WELCOME, user_text)
        return Completion(text=reply.model_dump_json(by_alias=True))

    def reply(self, checkpoint: Checkpoint, user_text: str) -> AIReply:
        handler = {
            Checkpoint.WELCOME: self._welcome,
            Checkpoint.BUSINESS_INFO: self._business_info,
            Checkpoint.DOMAIN_ACCESS: self._domain_access,
            Checkpoint.GBP: self._gbp,
            Checkpoint.PHOTOS: self._photos,
            Checkpoint.REVIEW: self._review,
            Checkpoint.COMPLETED: self._completed,
        }[Checkpoint(checkpoint)]
        return handler(user_text or "")

    def _welcome(self, text: str) -> AIReply:
        if _token_set(text) & _GREETINGS:
            message = (
                "Great to meet you! Let's get started with your business information. "
                "What's the name of your business and what kind of services do you offer?"
            )
        else:
            message = "Thanks for that! Tell me a bit about your business - what's the name and what services do you provide?"
        return AIReply(message=message, extracted_data={"greeted": True}, ready_to_advance=True)

    def _business_info(self, text: str) -> AIReply:
        extracted: dict[str, Any] = {}

        name = _extract_business_name(text)
        if name:
            extracted["businessName"] = name
        email = extract_email(text)
        if email:
            extracted["email"] = email
        phone = extract_phone(text)
        if phone:
            extracted["phone"] = phone
        address = parse_address(text)
        if address:
            extracted["address"] = address
        services = extract_services(text)
        if services:
            extracted["services"] = services
        if re.search(r"\b(open|hours|closed)\b", text, flags=re.IGNORECASE):
            hours = parse_business_hours(text)
            if hours:
                extracted["hours"] = hours

        if not extracted:
            return AIReply(
                message=(
                    "That's great information! Can you tell me your business address and phone number "
                    "so customers can find and reach you?"
                )
            )
        noted = ", ".join(extracted)
        return AIReply(
            message=(
                f"Thanks! I've noted your {noted}. Is there anything else - name, email, phone, "
                "address or services - that we still need?"
            ),
            extracted_data=extracted,
            ready_to_advance=True,
        )

    def _domain_access(self, text: str) -> AIReply:
        lowered = text.lower()
        domain = extract_domain(text)
        registrar_id = registrars.registrar_from_text(text)

        if domain:
            extracted: dict[str, Any] = {"domainStatus": "has_domain", "domainName": domain}
            if registrar_id:
                extracted["registrar"] = registrar_id
                extracted["accessMethod"] = registrars.access_method_for(registrar_id)
            return AIReply(
                message=f"Got it - {domain}. Let me look up where it's registered so we can set up access.",
                extracted_data=extracted,
                ready_to_advance=True,
                ui_action=UIAction(type="show_domain_lookup", config={"domain": domain}),
            )

        if re.search(r"\b(new|another|different)\s+(domain|website|site)\b", lowered):
            return AIReply(
                message="No problem! We'll register a new domain for you - it's included.",
                extracted_data={"domainStatus": "needs_new", "accessMethod": "new_registration"},
                ready_to_advance=True,
                ui_action=UIAction(type="show_domain_search"),
            )

        if re.search(r"\b(no|don'?t|do not|haven'?t|never)\b.*\b(domain|website|site)\b", lowered) or lowered.strip() in {
            "no",
            "nope",
        }:
            return AIReply(
                message="No problem! We'll take care of getting you a domain - it's included.",
                extracted_data={"domainStatus": "no_domain", "accessMethod": "new_registration"},
                ready_to_advance=True,
                ui_action=UIAction(type="show_domain_search"),
            )

        return AIReply(message="Do you have a website or domain name currently? If so, what's the address (like yoursite.com)?")

    def _gbp(self, text: str) -> AIReply:
        lowered = text.lower()
        if re.search(r"\b(not (listed|there|on google)|no (listing|profile)|don'?t have|can'?t find|never set)\b", lowered):
            return AIReply(
                message=(
                    "No worries - we'll help you create a Google Business Profile. "
                    "Do you have a Gmail or Google account you use for business?"
                ),
                extracted_data={"gbpStatus": "needs_creation"},
                ready_to_advance=True,
            )
        if re.search(r"\b(found it|that'?s (us|me|it|mine|the one)|yes)\b", lowered):
            return AIReply(
                message="Perfect! We'll send an access request to your Google Business Profile.",
                extracted_data={"gbpStatus": "found"},
                ready_to_advance=True,
            )
        return AIReply(
            message=(
                "Let's set up your Google Business Profile. I'll help you search for your business "
                "on Google to see if you already have a listing."
            ),
            ui_action=UIAction(type="show_business_search"),
        )

    def _photos(self, text: str) -> AIReply:
        lowered = text.lower()
        if re.search(r"\b(later|skip|defer|not (now|yet)|tomorrow)\b", lowered):
            return AIReply(
                message="No problem - photos are important but we can get them later. I'll send you a reminder.",
                extracted_data={"photoStatus": "deferred"},
                ready_to_advance=True,
            )
        if re.search(r"\b(uploaded|done|sent|attached)\b", lowered):
            return AIReply(
                message="Thanks for the photos! Let's review everything we've collected.",
                extracted_data={"photoStatus": "uploaded"},
                ready_to_advance=True,
            )
        return AIReply(
            message=(
                "Now let's get some photos of your business. We need at least an exterior shot, "
                "interior shot, and your logo. You can upload them here or I can pull them from "
                "your Google profile or website."
            ),
            ui_action=UIAction(
                type="show_photo_upload",
                config={"required": list(REQUIRED_PHOTO_CATEGORIES), "optional": ["team", "services"]},
            ),
        )

    def _review(self, text: str) -> AIReply:
        if _is_confirm_text(text):
            return AIReply(
                message=(
                    "Wonderful - thank you! Our team will review everything within 24 hours "
                    "and we'll start building your website this week."
                ),
                extracted_data={"confirmed": True},
                ready_to_advance=True,
            )
        if _is_decline_text(text):
            return AIReply(
                message="Sure, let me help you update that. What specifically needs changing?",
                extracted_data={"editRequests": [text.strip()]},
                ui_action=UIAction(type="show_review_summary"),
            )
        return AIReply(
            message="Here's a summary of everything we've collected. Does everything look correct?",
            ui_action=UIAction(type="show_review_summary"),
        )

    def _completed(self, text: str) -> AIReply:
        return AIReply(message="You're all set! Our team will be in touch soon with next steps.")


def build_provider(settings: Settings) -> TextCompletionProvider:
    if settings.gemini_api_key:
        logger.info("using Gemini provider (%s)", settings.gemini_model)
        return GeminiProvider(settings.gemini_api_key, model=settings.gemini_model)
    logger.info("no Gemini API key configured; using rule-based replies")
    return RuleBasedProvider()
