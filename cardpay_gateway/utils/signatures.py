"""HMAC signatures for gateway webhook deliveries"""

import hashlib
import hmac


def compute_signature(secret: str, payload: bytes) -> str:
    """Hex HMAC-SHA256 of the raw request body"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_signature(secret: str, payload: bytes, signature: str | None) -> bool:
    """Constant-time comparison against the expected signature"""
    if not signature:
        return False
    return hmac.compare_digest(compute_signature(secret, payload), signature.strip().lower())
