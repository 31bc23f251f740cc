"""
Encryption of stored provider credentials using AES-256-GCM.

The working key is derived from the configured ``ENCRYPTION_KEY`` with
scrypt (N=2^14, r=8, p=1) and a static salt, so the same configured key
always yields the same working key; every encryption draws a fresh IV.

Blob layout (base64): ``[IV (12 bytes)][auth tag (16 bytes)][ciphertext]``.
"""

from __future__ import annotations

import base64
import binascii
import os
from typing import Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from sqlalchemy.orm import Session

from gateway.config import Settings
from gateway.db.models import ApiKey
from gateway.db.repositories import create_api_key

IV_LENGTH = 12
AUTH_TAG_LENGTH = 16
KEY_LENGTH = 32
_KDF_SALT = b"completion-gateway-api-key-encryption-salt-v1"


class CredentialError(Exception):
    """Raised when a credential cannot be encrypted or decrypted."""


class CredentialStore(Protocol):
    """Collaborator that turns stored blobs into plaintext secrets and back."""

    def encrypt(self, plaintext: str) -> str: ...

    def decrypt(self, blob: str) -> str: ...


class AesGcmCredentialStore:
    """CredentialStore backed by AES-256-GCM."""

    def __init__(self, encryption_key: str):
        if not encryption_key:
            raise CredentialError(
                "ENCRYPTION_KEY is not set. Generate one with: openssl rand -base64 32"
            )
        try:
            key_material = base64.b64decode(encryption_key, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise CredentialError("ENCRYPTION_KEY must be base64-encoded") from exc
        if len(key_material) != KEY_LENGTH:
            raise CredentialError(
                f"ENCRYPTION_KEY must be exactly {KEY_LENGTH} bytes, got {len(key_material)}"
            )
        kdf = Scrypt(salt=_KDF_SALT, length=KEY_LENGTH, n=2**14, r=8, p=1)
        self._aead = AESGCM(kdf.derive(key_material))

    @classmethod
    def from_settings(cls, settings: Settings) -> AesGcmCredentialStore:
        return cls(settings.encryption_key)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a secret into a storable base64 blob."""
        if not plaintext:
            raise CredentialError("Plaintext must be a non-empty string")
        iv = os.urandom(IV_LENGTH)
        sealed = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-AUTH_TAG_LENGTH], sealed[-AUTH_TAG_LENGTH:]
        return base64.b64encode(iv + tag + ciphertext).decode("ascii")

    def decrypt(self, blob: str) -> str:
        """Decrypt a blob produced by ``encrypt``."""
        if not blob:
            raise CredentialError("Encrypted data must be a non-empty string")
        try:
            combined = base64.b64decode(blob, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise CredentialError("Encrypted data is not valid base64") from exc
        if len(combined) < IV_LENGTH + AUTH_TAG_LENGTH:
            raise CredentialError("Encrypted data is too short")

        iv = combined[:IV_LENGTH]
        tag = combined[IV_LENGTH:IV_LENGTH + AUTH_TAG_LENGTH]
        ciphertext = combined[IV_LENGTH + AUTH_TAG_LENGTH:]
        try:
            plaintext = self._aead.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as exc:
            raise CredentialError("Authentication tag mismatch") from exc
        return plaintext.decode("utf-8")


def store_api_key(
    db: Session,
    store: CredentialStore,
    user_id: str,
    *,
    provider: str,
    plaintext: str,
) -> ApiKey:
    """Encrypt and persist a provider credential, keeping only its last 4 chars in clear."""
    secret = plaintext.strip()
    encrypted = store.encrypt(secret)
    return create_api_key(
        db,
        user_id,
        provider=provider,
        encrypted_key=encrypted,
        key_last4=secret[-4:],
    )
