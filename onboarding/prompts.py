from __future__ import annotations

import json
import re
from typing import Any, Callable, Mapping

from onboarding import checkpoints, registrars
from onboarding.guards import field_satisfied
from onboarding.state import Checkpoint

REQUIRED_PHOTO_CATEGORIES = ("exterior", "interior", "logo")

BASE_SYSTEM_PROMPT = """
You are a friendly and professional onboarding assistant for Set Forget Grow, a local business
marketing agency that helps small businesses with website building, Google Business Profile
optimization, and review collection.

PERSONALITY:
- Warm and conversational, concise, professional but not robotic.
- Patient when the client is confused, encouraging about their business.

COMMUNICATION STYLE:
- Use the client's name naturally once you know it.
- Acknowledge what they shared before asking for more.
- Ask 1-2 questions at a time. Keep replies to 2-4 sentences.

IMPORTANT RULES:
1. ONLY extract data that is explicitly stated. Never assume or guess.
2. Confirm important information back to the user before moving on.
3. If information is incomplete, ask for clarification.
4. Recognize different formats ("nine to five", "9-5", "9am to 5pm").
5. Never ask for passwords in the chat. Use the secure forms (uiAction).
6. You do NOT decide the flow. Set readyToAdvance only when the goal of the current
   checkpoint is met; the system checks required fields itself.

STRICT OUTPUT FORMAT:
Return ONLY valid JSON. No markdown, no explanation.

{
  "message": "Your conversational reply to display to the client",
  "extractedData": null or { "<camelCaseField>": <value>, ... },
  "confirmationNeeded": [ { "field": "fieldName", "value": "extracted value", "question": "Is this correct?" } ],
  "readyToAdvance": false,
  "uiAction": null or { "type": "<ui action>", "config": { ... } }
}
""".strip()

CHECKPOINT_PROMPTS: dict[Checkpoint, str] = {
    Checkpoint.WELCOME: """
CURRENT CHECKPOINT: WELCOME

Goal: greet the client warmly and set expectations.
1. Greet them (use their name if known) and introduce yourself as their onboarding assistant.
2. Explain this takes about 10-15 minutes and they can type or use the mic.
3. Transition into asking about their business.

Set readyToAdvance to true as soon as they respond with anything. Don't wait for complete info.
Always extract greeted: true once they have replied.

Fields to look for: greeted, firstName, clientName, businessName, businessType, services.
""",
    Checkpoint.BUSINESS_INFO: """
CURRENT CHECKPOINT: BUSINESS_INFO

Goal: collect the core business details through natural conversation.

Required:
- businessName: official display name
- phone: business phone number
- email: business email
- address: { "street", "city", "state", "zip" }
- services: array of services they offer (aim for at least 3)

Optional: businessType, industry, ownerName, yearsInBusiness, uniqueValue, targetCustomer,
hours: { "mon": { "open": "09:00", "close": "17:00" }, ..., "sun": "closed" }

Strategy: start broad, extract structured data from natural answers, confirm what you extracted
("So you're at 123 Main St in Springfield - is that right?"), then ask for what is still missing.
If services are vague, give examples for their business type.

Set readyToAdvance to true only when all 5 required fields are collected AND confirmed.
""",
    Checkpoint.DOMAIN_ACCESS: """
CURRENT CHECKPOINT: DOMAIN_ACCESS

Goal: identify their domain situation and how we will get access.

Path A, they have a domain: capture domainName, set domainStatus "has_domain" and trigger
  "uiAction": { "type": "show_domain_lookup", "config": { "domain": "<domain>" } }
  Registrars that support delegation get delegation steps; others need the secure
  "show_credential_form" action. Never collect credentials in chat.
Path B, no domain: reassure them it's included, set domainStatus "no_domain" or "needs_new" and trigger
  "uiAction": { "type": "show_domain_search", "config": { "suggestions": [...] } }
Path C, not sure: ask clarifying questions ("my web guy handles it" -> ask for the domain name).

Extracted data: domainName, domainStatus ("has_domain" | "no_domain" | "needs_new"),
registrar, accessMethod ("delegation" | "credentials" | "new_registration").

Set readyToAdvance to true once the domain status is known and an access path is agreed.
""",
    Checkpoint.GBP: """
CURRENT CHECKPOINT: GBP (Google Business Profile)

Goal: connect to their Google Business Profile or help them create one.
Start by triggering the business search:
  "uiAction": { "type": "show_business_search", "config": { "businessName": "...", "location": "..." } }

Outcomes:
- Listing found and confirmed: gbpStatus "found", capture placeId, gbpName, gbpRating, gbpReviewCount.
- Not found: ask if they have a Google account, guide them to create a listing; gbpStatus "needs_creation".
- Wrong listing: search again; gbpStatus "not_found" if it cannot be located.
If creating, capture verificationMethod ("phone" | "video" | "postcard").

Set readyToAdvance to true once gbpStatus is settled.
""",
    Checkpoint.PHOTOS: """
CURRENT CHECKPOINT: PHOTOS

Goal: collect photos for the website and Google profile.
Required categories: exterior, interior, logo. Nice to have: team, services.
Offer to pull photos from Google, Facebook or their site, or trigger the upload:
  "uiAction": { "type": "show_photo_upload", "config": { "required": ["exterior", "interior", "logo"], "optional": ["team", "services"] } }
If they don't have photos ready, offer to defer and schedule a reminder.

Extracted data: photoStatus ("uploaded" | "deferred"), photoCount, photoCategories, deferralDate.
Set readyToAdvance to true when the required photos are in or the deferral is confirmed.
""",
    Checkpoint.REVIEW: """
CURRENT CHECKPOINT: REVIEW

Goal: summarize everything collected, allow corrections, and complete onboarding.
Trigger the summary: "uiAction": { "type": "show_review_summary" }
If they want changes, acknowledge, update the data, and re-confirm.
Once they explicitly confirm everything is correct, thank them, explain next steps
(team review within 24 hours, website work starts this week), extract confirmed: true
and set readyToAdvance to true.

Extracted data: confirmed (boolean), editRequests (array of sections to change).
""",
    Checkpoint.COMPLETED: """
CURRENT CHECKPOINT: COMPLETED

Onboarding is complete. Thank the client and let them know the next steps. Do not extract data.
""",
}


def _json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2, default=str)


def _field_summary(checkpoint: Checkpoint, data: Mapping[str, Any]) -> str:
    collected: list[str] = []
    missing: list[str] = []
    for name in checkpoints.required_fields(checkpoint):
        if field_satisfied(checkpoint, name, data):
            collected.append(f"- {name}: {json.dumps(data.get(name), ensure_ascii=False, default=str)}")
        else:
            missing.append(f"- {name}")

    lines = ["CURRENT STATE:", "Collected so far:", *(collected or ["- Nothing yet"]), "Still needed:"]
    lines.extend(missing or ["- All required fields collected!"])
    if not missing:
        lines.append("Ready to advance! Confirm the information and set readyToAdvance: true")
    return "\n".join(lines)


def domain_suggestions(business_name: str | None) -> list[str]:
    if not business_name:
        return []
    compact = re.sub(r"[^a-z0-9]", "", business_name.lower())
    if not compact:
        return []
    hyphenated = re.sub(r"[^a-z0-9]+", "-", business_name.lower()).strip("-")
    suggestions = [f"{compact}.com", f"{compact}local.com", f"{hyphenated}.com"]
    return list(dict.fromkeys(suggestions))


def _welcome_context(data: Mapping[str, Any], facts: Mapping[str, Any]) -> str:
    name = facts.get("client_name") or data.get("clientName") or data.get("firstName")
    if name:
        return f"The client's name is {name}. Use it naturally in your greeting."
    return "You don't know the client's name yet. You can ask for it naturally."


def _business_context(data: Mapping[str, Any], facts: Mapping[str, Any]) -> str:
    return _field_summary(Checkpoint.BUSINESS_INFO, data)


def _domain_context(data: Mapping[str, Any], facts: Mapping[str, Any]) -> str:
    business_name = facts.get("business_name") or data.get("businessName")
    lines = [
        f"Business name: {business_name or 'Unknown'}",
        f"Suggested domains if needed: {', '.join(domain_suggestions(business_name)) or 'none'}",
    ]
    registrar = registrars.get_registrar(data.get("registrar"))
    if registrar:
        if registrar["supportsDelegation"]:
            lines.append(
                f"Registrar {registrar['name']} supports delegate access: {registrar['delegationInstructions']}"
            )
        else:
            lines.append(
                f"Registrar {registrar['name']} does not support delegation. Use the secure "
                '"show_credential_form" uiAction to collect login details.'
            )
    lines.append(_field_summary(Checkpoint.DOMAIN_ACCESS, data))
    return "\n".join(lines)


def _gbp_context(data: Mapping[str, Any], facts: Mapping[str, Any]) -> str:
    business_name = facts.get("business_name") or data.get("businessName")
    address = facts.get("address") or data.get("address") or {}
    location = ""
    if isinstance(address, Mapping):
        location = ", ".join(str(address[k]) for k in ("city", "state") if address.get(k))
    return "\n".join(
        [
            f"Business name: {business_name or 'Unknown'}",
            f"Location: {location or 'Unknown'}",
            _field_summary(Checkpoint.GBP, data),
        ]
    )


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, list):
        return value
    if isinstance(value, str) and value.strip():
        return [value]
    return []


def photo_categories(data: Mapping[str, Any]) -> list[str]:
    categories: list[str] = []
    for photo in _as_list(data.get("photos")):
        if isinstance(photo, Mapping) and photo.get("category"):
            categories.append(str(photo["category"]).lower())
    for category in _as_list(data.get("photoCategories")):
        categories.append(str(category).lower())
    return list(dict.fromkeys(categories))


def _photos_context(data: Mapping[str, Any], facts: Mapping[str, Any]) -> str:
    categories = photo_categories(data)
    needed = [c for c in REQUIRED_PHOTO_CATEGORIES if c not in categories]
    lines = [
        f"Photos collected: {len(_as_list(data.get('photos'))) or data.get('photoCount') or 0}",
        f"Categories: {', '.join(categories) or 'None yet'}",
        f"Still needed: {', '.join(needed) or 'All required photos collected!'}",
    ]
    if not needed:
        lines.append("Ready to advance! Confirm photos look good, set photoStatus: \"uploaded\" and readyToAdvance: true")
    return "\n".join(lines)


def _review_context(data: Mapping[str, Any], facts: Mapping[str, Any]) -> str:
    collected = {k: v for k, v in data.items() if not str(k).startswith("_")}
    return "ALL COLLECTED DATA:\n" + _json(collected)


def _completed_context(data: Mapping[str, Any], facts: Mapping[str, Any]) -> str:
    return ""


_CONTEXT_BUILDERS: dict[Checkpoint, Callable[[Mapping[str, Any], Mapping[str, Any]], str]] = {
    Checkpoint.WELCOME: _welcome_context,
    Checkpoint.BUSINESS_INFO: _business_context,
    Checkpoint.DOMAIN_ACCESS: _domain_context,
    Checkpoint.GBP: _gbp_context,
    Checkpoint.PHOTOS: _photos_context,
    Checkpoint.REVIEW: _review_context,
    Checkpoint.COMPLETED: _completed_context,
}


def build_instructions(
    checkpoint: Checkpoint,
    data: Mapping[str, Any] | None = None,
    *,
    client_name: str | None = None,
    business_name: str | None = None,
    address: Mapping[str, Any] | None = None,
) -> str:
    checkpoint = Checkpoint(checkpoint)
    data = data or {}
    facts = {"client_name": client_name, "business_name": business_name, "address": address}
    parts = [BASE_SYSTEM_PROMPT, CHECKPOINT_PROMPTS[checkpoint].strip()]
    context = _CONTEXT_BUILDERS[checkpoint](data, facts)
    if context:
        parts.append(context)
    return "\n\n".join(parts)
