from __future__ import annotations

from typing import Any


class OnboardingError(Exception):
    status_code = 500

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class SessionNotFound(OnboardingError):
    status_code = 404

    def __init__(self, session_id: str) -> None:
        super().__init__("Session not found", sessionId=session_id)
        self.session_id = session_id


class InvalidRequest(OnboardingError):
    """Malformed input or an unknown checkpoint name."""

    status_code = 400


class GuardRejected(OnboardingError):
    """A transition would skip a required field or jump ahead of the flow."""

    status_code = 400

    def __init__(self, message: str, *, checkpoint: str, missing_fields: list[str] | None = None) -> None:
        super().__init__(message)
        self.checkpoint = checkpoint
        self.missing_fields = list(missing_fields or [])

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "currentCheckpoint": self.checkpoint,
            "missingFields": self.missing_fields,
        }


class ProviderFailure(OnboardingError):
    pass


class ParseFailure(OnboardingError):
    pass


class StoreFailure(OnboardingError):
    pass
