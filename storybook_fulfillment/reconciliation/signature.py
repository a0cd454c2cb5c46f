"""
HMAC verification for provider webhooks.
"""

from __future__ import annotations

import hashlib
import hmac

SIGNATURE_HEADER = "Lulu-HMAC-SHA256"


def compute_signature(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: str | None, secret: str) -> bool:
    if not signature:
        return False
    expected = compute_signature(body, secret)
    return hmac.compare_digest(expected, signature.strip().lower())
