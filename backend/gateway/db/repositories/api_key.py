"""Repository helpers for encrypted provider credentials."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from gateway.db.models import ApiKey


def create_api_key(
    db: Session,
    user_id: str,
    *,
    provider: str,
    encrypted_key: str,
    key_last4: str,
) -> ApiKey:
    """Insert an already-encrypted credential."""
    api_key = ApiKey(
        user_id=user_id,
        provider=provider,
        encrypted_key=encrypted_key,
        key_last4=key_last4,
    )
    db.add(api_key)
    db.commit()
    db.refresh(api_key)
    return api_key


def get_user_api_key(db: Session, user_id: str, api_key_id: str) -> ApiKey | None:
    """Fetch a credential owned by user."""
    stmt = select(ApiKey).where(ApiKey.id == api_key_id, ApiKey.user_id == user_id)
    return db.execute(stmt).scalar_one_or_none()
