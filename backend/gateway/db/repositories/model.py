"""Repository helpers for stored model configurations."""

import json
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from gateway.db.models import AIModel


def create_model(
    db: Session,
    user_id: str,
    *,
    provider: str,
    model_id: str,
    name: str,
    base_url: str | None = None,
    api_key_id: str | None = None,
    settings: dict[str, Any] | None = None,
) -> AIModel:
    """Insert a model configuration for the given user."""
    model = AIModel(
        user_id=user_id,
        provider=provider,
        model_id=model_id,
        name=name,
        base_url=base_url,
        api_key_id=api_key_id,
        settings=json.dumps(settings) if settings else None,
    )
    db.add(model)
    db.commit()
    db.refresh(model)
    return model


def get_user_model(db: Session, user_id: str, model_id: str) -> AIModel | None:
    """Fetch a model configuration owned by user."""
    stmt = select(AIModel).where(AIModel.id == model_id, AIModel.user_id == user_id)
    return db.execute(stmt).scalar_one_or_none()


def list_user_models(db: Session, user_id: str) -> list[AIModel]:
    """List a user's model configurations, oldest first."""
    stmt = (
        select(AIModel)
        .where(AIModel.user_id == user_id)
        .order_by(AIModel.created_at, AIModel.id)
    )
    return list(db.execute(stmt).scalars().all())


def set_active_model(db: Session, user_id: str, model_id: str) -> AIModel | None:
    """
    Make one model the user's only active model.

    Deactivation of the other models and activation of the chosen one
    commit together or not at all.
    """
    model = get_user_model(db, user_id, model_id)
    if model is None:
        return None
    try:
        db.execute(
            update(AIModel)
            .where(AIModel.user_id == user_id)
            .values(is_active=False)
        )
        db.execute(
            update(AIModel)
            .where(AIModel.id == model_id, AIModel.user_id == user_id)
            .values(is_active=True)
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(model)
    return model


def model_settings(model: AIModel) -> dict[str, Any]:
    """Decode a model's stored default generation settings."""
    if not model.settings:
        return {}
    try:
        data = json.loads(model.settings)
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}
