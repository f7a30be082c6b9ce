from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Checkpoint(str, Enum):
    WELCOME = "WELCOME"
    BUSINESS_INFO = "BUSINESS_INFO"
    DOMAIN_ACCESS = "DOMAIN_ACCESS"
    GBP = "GBP"
    PHOTOS = "PHOTOS"
    REVIEW = "REVIEW"
    COMPLETED = "COMPLETED"


class MessageRole(str, Enum):
    USER = "USER"
    ASSISTANT = "ASSISTANT"
    SYSTEM = "SYSTEM"


class Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class OnboardingSession(Record):
    id: str = Field(default_factory=new_id)
    client_id: str = Field(default_factory=new_id)
    client_email: str
    client_name: Optional[str] = None

    current_checkpoint: Checkpoint = Checkpoint.WELCOME
    checkpoint_data: Dict[str, Any] = Field(default_factory=dict)
    review_reached: bool = False

    started_at: datetime = Field(default_factory=utcnow)
    last_activity_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None


class CheckpointHistoryEntry(Record):
    session_id: str
    checkpoint: Checkpoint
    entered_at: datetime = Field(default_factory=utcnow)
    exited_at: Optional[datetime] = None
    data: Optional[Dict[str, Any]] = None

    @property
    def is_open(self) -> bool:
        return self.exited_at is None


class ChatMessage(Record):
    id: str = Field(default_factory=new_id)
    session_id: str
    role: MessageRole
    content: str
    is_voice: bool = False
    extracted_data: Optional[Dict[str, Any]] = None
    tokens_used: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)


class ConfirmationItem(Record):
    field: str
    value: Any = None
    question: str = ""


class UIAction(Record):
    type: str
    config: Optional[Dict[str, Any]] = None


class AIReply(Record):
    message: str
    extracted_data: Optional[Dict[str, Any]] = None
    confirmation_needed: List[ConfirmationItem] = Field(default_factory=list)
    ready_to_advance: bool = False
    ui_action: Optional[UIAction] = None


class Completion(Record):
    text: str
    tokens_used: Optional[int] = None


class ConversationContext(Record):
    session_id: str
    checkpoint: Checkpoint
    checkpoint_data: Dict[str, Any] = Field(default_factory=dict)
    message_history: List[ChatMessage] = Field(default_factory=list)

    client_name: Optional[str] = None
    business_name: Optional[str] = None
    address: Optional[Dict[str, Any]] = None


class ConversationResult(Record):
    message: str
    extracted_data: Optional[Dict[str, Any]] = None
    confirmation_needed: List[ConfirmationItem] = Field(default_factory=list)
    ui_action: Optional[UIAction] = None
    merged_data: Dict[str, Any] = Field(default_factory=dict)
    should_advance: bool = False
    next_checkpoint: Optional[Checkpoint] = None
    tokens_used: Optional[int] = None
    source: Literal["llm", "fallback"] = "fallback"


class TurnState(BaseModel):
    """Working state threaded through the per-message conversation graph."""

    context: ConversationContext
    user_message: str

    instructions: str = ""
    raw_reply: Optional[str] = None
    tokens_used: Optional[int] = None
    source: Literal["llm", "fallback"] = "fallback"

    reply: Optional[AIReply] = None
    merged_data: Dict[str, Any] = Field(default_factory=dict)
    should_advance: bool = False
    next_checkpoint: Optional[Checkpoint] = None


class CheckpointStatus(Record):
    session_id: str
    current_checkpoint: Checkpoint
    is_complete: bool
    completion_percentage: int
    can_advance: bool
    required_fields: List[str]
    missing_fields: List[str]
    checkpoint_data: Dict[str, Any]
    last_activity_at: datetime


class TransitionResult(Record):
    success: bool = True
    transitioned: bool
    previous_checkpoint: Checkpoint
    current_checkpoint: Checkpoint
    completion_percentage: int
    is_complete: bool
    can_advance: bool
    required_fields: List[str]
    missing_fields: List[str]


class MessageResult(Record):
    message_id: str
    message: str
    extracted_data: Optional[Dict[str, Any]] = None
    confirmation_needed: List[ConfirmationItem] = Field(default_factory=list)
    ui_action: Optional[UIAction] = None
    checkpoint: Checkpoint
    advanced: bool
    tokens_used: Optional[int] = None
