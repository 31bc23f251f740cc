"""Model configuration endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from gateway.auth import RequireUser
from gateway.core import ErrorCode, NotFoundError, get_logger
from gateway.db import get_db
from gateway.db.repositories import set_active_model

logger = get_logger(__name__)

router = APIRouter(prefix="/models", tags=["models"])


@router.post("/{model_id}/activate")
def activate_model_route(
    model_id: str,
    user_id: RequireUser,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    model = set_active_model(db, user_id, model_id)
    if model is None:
        raise NotFoundError(
            "Model not found or you do not have permission to use it",
            code=ErrorCode.MODEL_CONFIG_NOT_FOUND,
        )
    logger.info("Active model changed", data={"model_id": model.id})
    return {
        "model": {
            "id": model.id,
            "name": model.name,
            "provider": model.provider,
            "model_id": model.model_id,
            "is_active": model.is_active,
        }
    }
