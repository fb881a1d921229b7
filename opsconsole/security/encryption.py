"""AES-GCM encryption for stored credential passwords.

Encrypted values are stored as ``base64(iv):base64(tag):base64(ciphertext)``.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import os

from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from opsconsole.core.config import get_settings


_IV_BYTES = 12
_TAG_BYTES = 16


class EncryptionConfigurationError(RuntimeError):
    """Raised when no credential encryption key has been configured."""


def _key() -> bytes:
    secret = get_settings().credential_encryption_key
    if not secret:
        raise EncryptionConfigurationError("CREDENTIAL_ENCRYPTION_KEY is not configured")
    return hashlib.sha256(secret.encode("utf-8")).digest()


def _cipher(mode: modes.GCM) -> Cipher:
    return Cipher(algorithms.AES(_key()), mode, backend=default_backend())


def _decode_parts(payload: str | None) -> tuple[bytes, bytes, bytes] | None:
    if not payload or payload.count(":") != 2:
        return None
    try:
        iv, tag, ciphertext = (base64.b64decode(part, validate=True) for part in payload.split(":"))
    except (binascii.Error, ValueError):
        return None
    if len(iv) != _IV_BYTES or len(tag) != _TAG_BYTES:
        return None
    return iv, tag, ciphertext


def is_encrypted(payload: str | None) -> bool:
    return _decode_parts(payload) is not None


def encrypt_secret(secret: str) -> str:
    iv = os.urandom(_IV_BYTES)
    encryptor = _cipher(modes.GCM(iv)).encryptor()
    ciphertext = encryptor.update(secret.encode("utf-8")) + encryptor.finalize()
    return ":".join(
        base64.b64encode(part).decode("ascii") for part in (iv, encryptor.tag, ciphertext)
    )


def decrypt_secret(payload: str) -> str:
    """Decrypt a stored value; anything not in the encrypted shape is returned as-is."""
    parts = _decode_parts(payload)
    if parts is None:
        return payload
    iv, tag, ciphertext = parts
    decryptor = _cipher(modes.GCM(iv, tag)).decryptor()
    return (decryptor.update(ciphertext) + decryptor.finalize()).decode("utf-8")
