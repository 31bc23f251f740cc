"""Completion endpoints: model listing and validation, batch and server-sent-event streaming."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any, Literal

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session, sessionmaker

from gateway.auth import RequireUser
from gateway.core.logging import request_id_ctx
from gateway.db import get_db, get_db_factory
from gateway.db.repositories import list_user_models
from gateway.providers import ChatMessage
from gateway.services import CompletionService, ModelConfigResolver, StreamEvent

router = APIRouter(prefix="/ai", tags=["completions"])


class CompletionSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    temperature: float | None = Field(None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(None, ge=1, le=1_000_000)
    top_p: float | None = Field(None, ge=0.0, le=1.0)
    top_k: int | None = Field(None, ge=0, le=100)
    frequency_penalty: float | None = Field(None, ge=-2.0, le=2.0)
    presence_penalty: float | None = Field(None, ge=-2.0, le=2.0)


class MessageIn(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str = Field(..., min_length=1)


class CompletionRequest(BaseModel):
    chat_id: str | None = None
    model_id: str = Field(..., min_length=1)
    messages: list[MessageIn] = Field(..., min_length=1)
    settings: CompletionSettings | None = None

    def chat_messages(self) -> list[ChatMessage]:
        return [ChatMessage(role=m.role, content=m.content) for m in self.messages]

    def settings_overrides(self) -> dict[str, Any]:
        return self.settings.model_dump(exclude_none=True) if self.settings else {}


def get_completion_service(request: Request) -> CompletionService:
    service = getattr(request.app.state, "completion_service", None)
    if service:
        return service
    service = CompletionService(ModelConfigResolver())
    request.app.state.completion_service = service
    return service


def format_sse_event(event: StreamEvent) -> str:
    """Serialize an event to SSE format."""
    payload = event.to_payload()
    data = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    return f"event: {payload['type']}\ndata: {data}\n\n"


@router.get("/models")
def list_models_route(
    user_id: RequireUser,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return {
        "models": [
            {
                "id": model.id,
                "name": model.name,
                "provider": model.provider,
                "model_id": model.model_id,
                "base_url": model.base_url,
                "is_active": model.is_active,
                "has_api_key": model.api_key_id is not None,
            }
            for model in list_user_models(db, user_id)
        ]
    }


@router.post("/models/{model_id}/validate")
async def validate_model_route(
    model_id: str,
    user_id: RequireUser,
    service: CompletionService = Depends(get_completion_service),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    validation = await service.validate_model(db, user_id, model_id)
    return validation.to_dict()


@router.post("/complete")
async def complete_route(
    user_id: RequireUser,
    body: CompletionRequest = Body(...),
    service: CompletionService = Depends(get_completion_service),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    result = await service.complete(
        db,
        user_id,
        body.model_id,
        body.chat_messages(),
        chat_id=body.chat_id,
        settings=body.settings_overrides(),
    )
    return {
        "text": result.text,
        "usage": result.usage.to_dict(),
        "finish_reason": result.finish_reason,
        "response": result.response,
    }


@router.post("/stream")
async def stream_route(
    user_id: RequireUser,
    body: CompletionRequest = Body(...),
    service: CompletionService = Depends(get_completion_service),
    session_factory: sessionmaker[Session] = Depends(get_db_factory),
) -> StreamingResponse:
    # closed by the response body, not by a dependency
    db = session_factory()
    try:
        events = await service.stream(
            db,
            user_id,
            body.model_id,
            body.chat_messages(),
            chat_id=body.chat_id,
            settings=body.settings_overrides(),
        )
    except BaseException:
        db.close()
        raise

    async def body_iterator() -> AsyncIterator[str]:
        try:
            async for event in events:
                yield format_sse_event(event)
        finally:
            try:
                await events.aclose()
            finally:
                db.close()

    request_id = request_id_ctx.get()
    headers = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}
    if request_id:
        headers["X-Request-ID"] = request_id
    return StreamingResponse(body_iterator(), media_type="text/event-stream", headers=headers)
