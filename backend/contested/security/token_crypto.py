from __future__ import annotations

import base64
import hashlib
import hmac
import os
from typing import Any

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..settings import settings

_DEV_FALLBACK_SECRET = "contested-dev-secret"


def _secret() -> str:
    # Production refuses to boot without SESSION_SECRET (Settings.require_in_production).
    return str(settings.session_secret or _DEV_FALLBACK_SECRET)


def _get_key() -> bytes:
    return hashlib.sha256(_secret().encode("utf-8")).digest()  # 32 bytes


def hash_token(token: str) -> str:
    """Peppered SHA-256 of an opaque bearer/session token (hex)."""
    return hmac.new(
        _secret().encode("utf-8"),
        str(token or "").encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def encrypt_string(plain_text: Any) -> str | None:
    if plain_text is None:
        return None

    text = str(plain_text)
    iv = os.urandom(12)  # 12 bytes for GCM

    ct_with_tag = AESGCM(_get_key()).encrypt(iv, text.encode("utf-8"), None)
    ciphertext = ct_with_tag[:-16]
    tag = ct_with_tag[-16:]

    return ":".join(
        [
            "v1",
            base64.urlsafe_b64encode(iv).decode("ascii"),
            base64.urlsafe_b64encode(tag).decode("ascii"),
            base64.urlsafe_b64encode(ciphertext).decode("ascii"),
        ]
    )


def decrypt_string(cipher_text: Any) -> str | None:
    if not cipher_text:
        return None

    parts = str(cipher_text).split(":")
    if len(parts) != 4 or parts[0] != "v1":
        return None

    _, iv_b64, tag_b64, data_b64 = parts

    try:
        iv = base64.urlsafe_b64decode(iv_b64)
        tag = base64.urlsafe_b64decode(tag_b64)
        data = base64.urlsafe_b64decode(data_b64)
        if len(iv) != 12 or len(tag) != 16:
            return None
        pt = AESGCM(_get_key()).decrypt(iv, data + tag, None)
        return pt.decode("utf-8")
    except Exception:
        return None
