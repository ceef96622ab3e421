"""AES-256-GCM encryption for session payloads at rest.

Uses 12-byte random nonces (96-bit, NIST recommended for GCM).
Stored format: base64(nonce || ciphertext || tag). The session id is bound
as associated data, so a payload copied under another session's key fails
to decrypt.

Usage:
    from schemebot.security.encryption import payload_cipher

    token = payload_cipher.encrypt(state_json, associated_data=str(session_id))
    state_json = payload_cipher.decrypt(token, associated_data=str(session_id))
"""

from __future__ import annotations

import base64
import binascii
import logging
import os

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from schemebot.config import settings

logger = logging.getLogger(__name__)

_NONCE_SIZE = 12  # 96-bit nonce for AES-GCM
_TAG_SIZE = 16


class PayloadCipher:
    """AES-256-GCM cipher for serialized payloads.

    Stateless apart from the key; every encrypt call generates a fresh nonce.
    """

    def __init__(self, key: bytes) -> None:
        if len(key) != 32:
            msg = f"AES-256 requires a 32-byte key, got {len(key)} bytes"
            raise ValueError(msg)
        self._aesgcm = AESGCM(key)

    def encrypt(self, plaintext: str, associated_data: str | None = None) -> str:
        """Encrypt a string. Returns base64(nonce + ciphertext + tag)."""
        nonce = os.urandom(_NONCE_SIZE)
        ct = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), _aad(associated_data))
        return base64.b64encode(nonce + ct).decode("ascii")

    def decrypt(self, token: str, associated_data: str | None = None) -> str:
        """Decrypt a token produced by `encrypt` with the same associated data.

        Raises:
            ValueError: the token is not valid base64 or is truncated.
            cryptography.exceptions.InvalidTag: wrong key, wrong associated
                data, or tampered ciphertext.
        """
        try:
            raw = base64.b64decode(token, validate=True)
        except binascii.Error as exc:
            msg = "Invalid encrypted token: not base64"
            raise ValueError(msg) from exc
        if len(raw) < _NONCE_SIZE + _TAG_SIZE:
            msg = "Invalid encrypted token: too short"
            raise ValueError(msg)
        nonce = raw[:_NONCE_SIZE]
        ct = raw[_NONCE_SIZE:]
        return self._aesgcm.decrypt(nonce, ct, _aad(associated_data)).decode("utf-8")


def _aad(associated_data: str | None) -> bytes | None:
    return associated_data.encode("utf-8") if associated_data is not None else None


def _load_key() -> bytes:
    """Load the encryption key from settings (base64-encoded)."""
    raw = settings.security.encryption_key
    if not raw:
        logger.warning("ENCRYPTION_KEY not set — using a random ephemeral key (sessions won't survive restarts)")
        return os.urandom(32)
    try:
        key = base64.b64decode(raw, validate=True)
    except binascii.Error:
        logger.warning("ENCRYPTION_KEY is not valid base64 — using a random ephemeral key")
        return os.urandom(32)
    if len(key) != 32:
        logger.warning("ENCRYPTION_KEY decoded to %d bytes (expected 32) — using a random ephemeral key", len(key))
        return os.urandom(32)
    return key


# Module-level singleton
payload_cipher = PayloadCipher(_load_key())
