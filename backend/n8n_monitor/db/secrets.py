"""Encryption of instance API keys at rest.

Uses Fernet symmetric encryption. The key is derived from the SECRETS_KEY
environment variable.
"""

import base64
import hashlib
import os
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken


class SecretsError(Exception):
    """Error related to secrets management."""

    pass


def _fernet_for(key_material: str) -> Fernet:
    # Derive a valid Fernet key (32 bytes, base64-encoded)
    key_hash = hashlib.sha256(key_material.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(key_hash))


@lru_cache(maxsize=1)
def _get_fernet() -> Fernet:
    """Get the Fernet cipher for encryption.

    If SECRETS_KEY is not set, a deterministic key based on DATABASE_PATH is
    used. That fallback is only suitable for development.
    """
    key_material = os.environ.get("SECRETS_KEY")

    if not key_material:
        db_path = os.environ.get("DATABASE_PATH", "./data/monitor.db")
        key_material = f"dev-secrets-key-{db_path}"

    return _fernet_for(key_material)


def encrypt_secret(value: str) -> str:
    """Encrypt a secret value and return it as text."""
    encrypted = _get_fernet().encrypt(value.encode("utf-8"))
    return encrypted.decode("utf-8")


def decrypt_secret(encrypted_value: str) -> str:
    """Decrypt a secret value.

    Raises:
        SecretsError: If the value was not encrypted with the current key
    """
    try:
        decrypted = _get_fernet().decrypt(encrypted_value.encode("utf-8"))
        return decrypted.decode("utf-8")
    except InvalidToken as e:
        raise SecretsError("Failed to decrypt secret: invalid token or key") from e


def rotate_encryption_key(
    old_encrypted_values: list[str],
    old_key_material: str,
    new_key_material: str,
) -> list[str]:
    """Re-encrypt values with a new key.

    Used when rotating the SECRETS_KEY.

    Raises:
        SecretsError: If any value was not encrypted with the old key
    """
    old_fernet = _fernet_for(old_key_material)
    new_fernet = _fernet_for(new_key_material)

    new_encrypted = []
    for encrypted in old_encrypted_values:
        try:
            plaintext = old_fernet.decrypt(encrypted.encode("utf-8"))
        except InvalidToken as e:
            raise SecretsError("Failed to decrypt secret with the old key") from e
        new_encrypted.append(new_fernet.encrypt(plaintext).decode("utf-8"))

    return new_encrypted
