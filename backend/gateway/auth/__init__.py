"""Caller identity and credential encryption."""

from gateway.auth.credentials import (
    AesGcmCredentialStore,
    CredentialError,
    CredentialStore,
    store_api_key,
)
from gateway.auth.dependencies import (
    USER_ID_HEADER,
    RequireUser,
    get_current_user_id,
    require_user,
)

__all__ = [
    # Credentials
    "AesGcmCredentialStore",
    "CredentialError",
    "CredentialStore",
    "store_api_key",
    # Dependencies
    "USER_ID_HEADER",
    "RequireUser",
    "get_current_user_id",
    "require_user",
]
