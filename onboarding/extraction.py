from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from onboarding.errors import ParseFailure
from onboarding.state import AIReply, ConfirmationItem, UIAction

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_EMAIL_RE = re.compile(r"([^\s@,;<>()]+@[^\s@,;<>()]+\.[^\s@,;<>()]+)")
_PHONE_RE = re.compile(r"(\+?\d[\d\s\-\.\(\)]{5,}\d)")
_DOMAIN_RE = re.compile(r"\b(?:https?://)?(?:www\.)?((?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,24})\b", re.IGNORECASE)
_ZIP_RE = re.compile(r"\b(\d{5})(?:-\d{4})?\b")
_FULL_ADDRESS_RE = re.compile(
    r"(?P<street>\d+[^,\n]*?),\s*(?P<city>[^,\n]+?),\s*(?P<state>[A-Za-z][A-Za-z .]*?)\s+(?P<zip>\d{5})(?:-\d{4})?\b"
)
_TIME_RE = re.compile(r"^(\d{1,2})(?::(\d{2}))?\s*(am|pm)?$", re.IGNORECASE)
_TIME_RANGE_RE = re.compile(
    r"(\d{1,2}(?::\d{2})?\s*(?:am|pm)?)\s*(?:-|to|until)\s*(\d{1,2}(?::\d{2})?\s*(?:am|pm)?)",
    re.IGNORECASE,
)
_SERVICE_RES = [
    re.compile(r"(?:we (?:do|offer|provide|specialize in)|services include|our services(?: are)?)[:\s]+([^.]+)", re.IGNORECASE),
    re.compile(r"(?:specializ(?:e|ing) in)[:\s]+([^.]+)", re.IGNORECASE),
]

WEEKDAYS = ("mon", "tue", "wed", "thu", "fri")

US_STATES: dict[str, str] = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR", "california": "CA",
    "colorado": "CO", "connecticut": "CT", "delaware": "DE", "florida": "FL", "georgia": "GA",
    "hawaii": "HI", "idaho": "ID", "illinois": "IL", "indiana": "IN", "iowa": "IA",
    "kansas": "KS", "kentucky": "KY", "louisiana": "LA", "maine": "ME", "maryland": "MD",
    "massachusetts": "MA", "michigan": "MI", "minnesota": "MN", "mississippi": "MS", "missouri": "MO",
    "montana": "MT", "nebraska": "NE", "nevada": "NV", "new hampshire": "NH", "new jersey": "NJ",
    "new mexico": "NM", "new york": "NY", "north carolina": "NC", "north dakota": "ND", "ohio": "OH",
    "oklahoma": "OK", "oregon": "OR", "pennsylvania": "PA", "rhode island": "RI", "south carolina": "SC",
    "south dakota": "SD", "tennessee": "TN", "texas": "TX", "utah": "UT", "vermont": "VT",
    "virginia": "VA", "washington": "WA", "west virginia": "WV", "wisconsin": "WI", "wyoming": "WY",
}
_STATE_CODES = frozenset(US_STATES.values())


# ---------------------------------------------------------------------------
# Provider reply decoding
# ---------------------------------------------------------------------------


def _decode_reply(text: str) -> dict[str, Any]:
    candidate = text.strip()
    fence = _FENCE_RE.search(candidate)
    if fence:
        candidate = fence.group(1).strip()

    start = candidate.find("{")
    end = candidate.rfind("}")
    if start == -1 or end == -1 or end <= start:
        raise ParseFailure("No JSON object found")
    try:
        parsed = json.loads(candidate[start : end + 1])
    except json.JSONDecodeError as exc:
        raise ParseFailure(f"Invalid JSON in reply: {exc.msg}") from exc
    if not isinstance(parsed, dict):
        raise ParseFailure("Reply JSON is not an object")
    return parsed


def _confirmation_items(raw: Any) -> list[ConfirmationItem]:
    if not isinstance(raw, list):
        return []
    items: list[ConfirmationItem] = []
    for entry in raw:
        if not isinstance(entry, dict) or not entry.get("field"):
            continue
        try:
            items.append(ConfirmationItem.model_validate(entry))
        except ValidationError:
            continue
    return items


def _ui_action(raw: Any) -> UIAction | None:
    if not isinstance(raw, dict) or not isinstance(raw.get("type"), str) or not raw["type"]:
        return None
    config = raw.get("config")
    return UIAction(type=raw["type"], config=config if isinstance(config, dict) else None)


def parse_ai_reply(text: str | None) -> AIReply:
    """Turn a provider reply into an ``AIReply``.

    Code fences and surrounding prose are tolerated. Anything that does not
    decode to a JSON object degrades to a plain message with no extraction.
    """
    raw = (text or "").strip()
    try:
        parsed = _decode_reply(raw)
    except ParseFailure as exc:
        logger.warning("provider reply not structured (%s); passing text through", exc.message)
        return AIReply(message=raw)

    message = parsed.get("message")
    extracted = parsed.get("extractedData")
    return AIReply(
        message=message.strip() if isinstance(message, str) and message.strip() else raw,
        extracted_data=extracted if isinstance(extracted, dict) else None,
        confirmation_needed=_confirmation_items(parsed.get("confirmationNeeded")),
        ready_to_advance=parsed.get("readyToAdvance") is True,
        ui_action=_ui_action(parsed.get("uiAction")),
    )


# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------


def normalize_phone(phone: str) -> str:
    digits = re.sub(r"\D", "", phone or "")
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return phone


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def normalize_extracted(data: dict[str, Any] | None) -> dict[str, Any] | None:
    if not data:
        return data
    normalized = dict(data)
    if isinstance(normalized.get("email"), str):
        normalized["email"] = normalize_email(normalized["email"])
    if isinstance(normalized.get("phone"), str):
        normalized["phone"] = normalize_phone(normalized["phone"])
    if isinstance(normalized.get("services"), str):
        normalized["services"] = [s.strip() for s in re.split(r"[,;]", normalized["services"]) if s.strip()]
    return normalized


def parse_time(value: str) -> str:
    m = _TIME_RE.match((value or "").strip().lower())
    if not m:
        return value
    hours = int(m.group(1))
    minutes = int(m.group(2) or 0)
    meridiem = m.group(3)
    if meridiem == "pm" and hours != 12:
        hours += 12
    if meridiem == "am" and hours == 12:
        hours = 0
    return f"{hours:02d}:{minutes:02d}"


def parse_business_hours(text: str) -> dict[str, Any]:
    """Rough weekday hours from phrases like "9 to 5, closed weekends"."""
    hours: dict[str, Any] = {}
    lowered = (text or "").lower()
    if "closed" in lowered:
        # Weekend closure is the usual meaning when no day is named.
        hours["sat"] = "closed"
        hours["sun"] = "closed"

    m = _TIME_RANGE_RE.search(lowered)
    if m:
        opening, closing = parse_time(m.group(1)), parse_time(m.group(2))
        # "9 to 5" with no meridiem means business hours, not 05:00.
        if not re.search(r"am|pm", m.group(2)) and closing < opening:
            closing = parse_time(m.group(2).strip() + "pm")
        for day in WEEKDAYS:
            hours.setdefault(day, {"open": opening, "close": closing})
    return hours


def parse_address(text: str) -> dict[str, str]:
    address: dict[str, str] = {}
    raw = text or ""

    full = _FULL_ADDRESS_RE.search(raw)
    if full:
        state = full.group("state").strip()
        address["street"] = full.group("street").strip()
        address["city"] = full.group("city").strip()
        address["state"] = US_STATES.get(state.lower(), state.upper() if len(state) == 2 else state)
        address["zip"] = full.group("zip")
        return address

    zip_match = _ZIP_RE.search(raw)
    if zip_match:
        address["zip"] = zip_match.group(1)

    for token in re.findall(r"\b([A-Z]{2})\b", raw):
        if token in _STATE_CODES:
            address["state"] = token
            break

    lowered = raw.lower()
    for name, code in US_STATES.items():
        if re.search(rf"\b{re.escape(name)}\b", lowered):
            address["state"] = code
            break
    return address


def extract_services(text: str) -> list[str]:
    services: list[str] = []
    for pattern in _SERVICE_RES:
        for m in pattern.finditer(text or ""):
            for part in re.split(r"[,;]|\s+and\s+", m.group(1), flags=re.IGNORECASE):
                part = part.strip()
                if part and part not in services:
                    services.append(part)
    return services


def extract_email(text: str) -> str | None:
    m = _EMAIL_RE.search(text or "")
    return normalize_email(m.group(1).rstrip(".")) if m else None


def extract_phone(text: str) -> str | None:
    without_emails = _EMAIL_RE.sub(" ", text or "")
    for m in _PHONE_RE.finditer(without_emails):
        digits = re.sub(r"\D", "", m.group(1))
        if 7 <= len(digits) <= 15 and not _ZIP_RE.fullmatch(m.group(1).strip()):
            return normalize_phone(m.group(1).strip())
    return None


def extract_domain(text: str) -> str | None:
    without_emails = _EMAIL_RE.sub(" ", text or "")
    m = _DOMAIN_RE.search(without_emails)
    if not m:
        return None
    domain = m.group(1).lower().rstrip(".")
    # "e.g" and friends are not domains.
    if len(domain.rsplit(".", 1)[-1]) < 2 or domain.replace(".", "").isdigit():
        return None
    return domain
