from __future__ import annotations

import logging
from typing import Any, Literal, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from onboarding import checkpoints
from onboarding.config import Settings, load_dotenv
from onboarding.engine import ConversationEngine
from onboarding.errors import InvalidRequest, OnboardingError
from onboarding.providers import build_provider
from onboarding.service import OnboardingService
from onboarding.storage import HistoryStore, MessageStore, SessionStore, open_backend

logger = logging.getLogger(__name__)


class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateSessionRequest(_Body):
    email: str
    name: Optional[str] = None


class CheckpointRequest(_Body):
    session_id: str
    action: Literal["next", "back", "goto", "complete"]
    target: Optional[str] = None
    data: Optional[dict[str, Any]] = None


class MessageRequest(_Body):
    session_id: str
    content: str
    is_voice: bool = False


def build_service(settings: Settings) -> OnboardingService:
    backend = open_backend(settings.redis_url)
    engine = ConversationEngine(
        build_provider(settings),
        max_history_messages=settings.max_history_messages,
    )
    return OnboardingService(
        SessionStore(backend),
        HistoryStore(backend),
        MessageStore(backend),
        engine,
        context_messages=settings.context_messages,
    )


def _onboarding_error(request: Request, exc: OnboardingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(service: OnboardingService | None = None) -> FastAPI:
    if service is None:
        load_dotenv()
        service = build_service(Settings.from_env())

    app = FastAPI(title="Checkpoint onboarding agent")
    app.state.service = service
    app.add_exception_handler(OnboardingError, _onboarding_error)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/checkpoints")
    def list_checkpoints() -> dict[str, Any]:
        return {"checkpoints": checkpoints.describe()}

    @app.post("/session")
    def create_session(req: CreateSessionRequest) -> dict[str, Any]:
        session, resumed = service.create_session(req.email, req.name)
        return {
            "sessionId": session.id,
            "resumed": resumed,
            "message": "Resuming existing session" if resumed else "New session created",
            "greeting": service.greeting(session),
            "currentCheckpoint": session.current_checkpoint.value,
        }

    @app.get("/session")
    def get_session(id: Optional[str] = None) -> dict[str, Any]:
        if not id:
            raise InvalidRequest("Session ID is required")
        return service.get_session(id)

    @app.get("/checkpoint")
    def checkpoint_status(sessionId: Optional[str] = None) -> dict[str, Any]:
        if not sessionId:
            raise InvalidRequest("Session ID is required")
        return service.status(sessionId).to_payload()

    @app.post("/checkpoint")
    def checkpoint_transition(req: CheckpointRequest) -> dict[str, Any]:
        result = service.transition(req.session_id, req.action, target=req.target, data=req.data)
        return result.to_payload()

    @app.post("/message")
    def message(req: MessageRequest) -> dict[str, Any]:
        return service.handle_message(req.session_id, req.content, is_voice=req.is_voice).to_payload()

    return app


app = create_app()
