"""
FastAPI application exposing the assistant over HTTP.

POST /api/chat/assistant dispatches on ``action``; ``send_message`` answers
with a server-sent event stream of the turn.
"""

from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional

import openai
from fastapi import FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.background import BackgroundTask

from config.app_config import AppConfig, get_config
from infrastructure.resilience.retry_service import is_authentication_error, user_facing_error
from services.assistant_service.service import AssistantService, MISSING_INPUT
from services.errors import AssistantError
from services.tool_service.models import AuthContext, ExecutionContext, UserContext
from utils.logging_config import get_error_tracker, get_logger

from .streaming import SSE_HEADERS, SSE_MEDIA_TYPE, stream_turn

logger = get_logger(__name__)

_STATUS_BY_CODE = {
    "invalid_input": 400,
    "authentication_required": 401,
    "run_conflict": 409,
    "message_rejected": 500,
    "provider_error": 502,
}


class ChatRequest(BaseModel):
    """Body of POST /api/chat/assistant"""
    model_config = ConfigDict(populate_by_name=True)

    action: Optional[str] = None
    thread_id: Optional[str] = Field(default=None, alias="threadId")
    message: Optional[str] = None
    user_context: Optional[UserContext] = Field(default=None, alias="userContext")


def _failure(status_code: int, error: str, code: Optional[str] = None) -> JSONResponse:
    body = {"success": False, "error": error}
    if code:
        body["code"] = code
    return JSONResponse(body, status_code=status_code)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def create_app(
    service: AssistantService,
    config: Optional[AppConfig] = None,
    on_shutdown: Optional[Callable[[], Awaitable[None]]] = None
) -> FastAPI:
    """
    Build the HTTP application around an assistant service

    Args:
        service: Fully wired assistant service
        config: Application config (CORS origins)
        on_shutdown: Awaited when the application stops (close HTTP clients)

    Returns:
        FastAPI: The application
    """
    config = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if on_shutdown is not None:
            await on_shutdown()

    app = FastAPI(title="Aria assistant", version="1.0.0", lifespan=lifespan)
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-User-Id"],
    )

    @app.exception_handler(AssistantError)
    async def assistant_error_handler(request: Request, exc: AssistantError):
        status_code = _STATUS_BY_CODE.get(exc.code, 500)
        if status_code >= 500:
            get_error_tracker().track_error(exc, context=request.url.path, detail=exc.detail)
        else:
            logger.info(f"{request.url.path} rejected: {exc.code}: {exc.message}")
        code = exc.code if exc.code == "authentication_required" else None
        return _failure(status_code, exc.message, code)

    @app.exception_handler(openai.OpenAIError)
    async def provider_error_handler(request: Request, exc: openai.OpenAIError):
        if is_authentication_error(exc):
            logger.error(f"Assistant provider rejected credentials: {exc}")
            return _failure(401, user_facing_error(exc), "authentication_required")
        get_error_tracker().track_error(exc, context=request.url.path)
        return _failure(500, user_facing_error(exc))

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    @app.post("/api/chat/assistant")
    async def chat_assistant(
        body: ChatRequest,
        authorization: Optional[str] = Header(default=None),
        x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    ):
        if body.action == "create_thread":
            thread = await service.create_thread(x_user_id)
            return {
                "success": True,
                "thread": {"id": thread.id, "createdAt": thread.created_at.isoformat()},
            }

        if body.action == "send_message":
            if not body.thread_id or not body.message or not body.message.strip():
                return _failure(400, MISSING_INPUT)

            context = ExecutionContext(
                auth=AuthContext(user_id=x_user_id, access_token=_bearer_token(authorization)),
                user_context=body.user_context,
            )
            turn = await service.start_turn(body.thread_id, body.message, context)

            async def release_turn():
                turn.release()

            return StreamingResponse(
                stream_turn(turn),
                media_type=SSE_MEDIA_TYPE,
                headers=SSE_HEADERS,
                background=BackgroundTask(release_turn),
            )

        if body.action == "get_messages":
            if not body.thread_id:
                return _failure(400, "Thread ID is required")
            messages = await service.get_messages(body.thread_id)
            return {"success": True, "messages": [m.to_wire() for m in messages]}

        return _failure(400, "Invalid action")

    @app.get("/api/chat/assistant")
    async def get_messages(thread_id: Optional[str] = Query(default=None, alias="threadId")):
        if not thread_id:
            return _failure(400, "Thread ID is required")
        messages = await service.get_messages(thread_id)
        return {"success": True, "messages": [m.to_wire() for m in messages]}

    return app
