"""Credential encryption (Fernet) for DMS usernames/passwords at rest."""
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from app.core.config import settings

logger = logging.getLogger(__name__)


class EncryptionNotConfiguredError(RuntimeError):
    """Raised when ENCRYPTION_KEY is missing or not a valid Fernet key."""


def _get_cipher(key: Optional[str] = None) -> Fernet:
    raw = key if key is not None else settings.encryption_key
    if not raw:
        raise EncryptionNotConfiguredError("ENCRYPTION_KEY environment variable is not set")
    try:
        return Fernet(raw.encode() if isinstance(raw, str) else raw)
    except (ValueError, TypeError) as e:
        raise EncryptionNotConfiguredError(f"ENCRYPTION_KEY is not a valid Fernet key: {e}") from e


def encrypt(plaintext: str, key: Optional[str] = None) -> str:
    """Encrypt a string; empty input stays empty."""
    if not plaintext:
        return ""
    return _get_cipher(key).encrypt(plaintext.encode("utf-8")).decode("ascii")


def decrypt(token: str, key: Optional[str] = None) -> str:
    """Decrypt a token produced by encrypt(). Raises ValueError on tampered/foreign data."""
    if not token:
        return ""
    try:
        return _get_cipher(key).decrypt(token.encode("ascii")).decode("utf-8")
    except InvalidToken as e:
        raise ValueError("Invalid encrypted data") from e


def is_encryption_configured() -> bool:
    try:
        _get_cipher()
        return True
    except EncryptionNotConfiguredError:
        return False


def mask_string(value: Optional[str], visible_chars: int = 4) -> str:
    """Mask a secret for display, keeping only the last few characters."""
    if not value:
        return ""
    if len(value) <= visible_chars:
        return "•" * len(value)
    masked = "•" * min(len(value) - visible_chars, 20)
    return f"{masked}{value[-visible_chars:]}"


def generate_encryption_key() -> str:
    """New key suitable for ENCRYPTION_KEY."""
    return Fernet.generate_key().decode("ascii")
