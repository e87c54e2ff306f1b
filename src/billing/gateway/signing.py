"""HMAC-SHA256 signing for provider callbacks."""

import hashlib
import hmac


def compute_signature(secret: str, raw_body: bytes | str) -> str:
    if isinstance(raw_body, str):
        raw_body = raw_body.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_signature(secret: str | None, raw_body: bytes | str, signature: str | None) -> bool:
    """Constant-time check of ``signature`` against the body's HMAC.

    A missing secret or signature never verifies.
    """
    if not secret or not signature:
        return False
    expected = compute_signature(secret, raw_body)
    return hmac.compare_digest(expected, signature.strip().lower())
