import base64
import hashlib
import hmac
from typing import Optional


def calculate_signature(secret: str, body: bytes) -> str:
    """Base64 HMAC-SHA1 of the raw request body, as sent in X-HelpScout-Signature."""
    mac = hmac.new(secret.encode("utf-8"), body, hashlib.sha1).digest()
    return base64.b64encode(mac).decode("ascii")


def verify_signature(secret: str, body: bytes, provided: Optional[str]) -> bool:
    # body must be the bytes as received; re-serialized JSON won't match
    if not provided:
        return False
    expected = calculate_signature(secret, body)
    # bytes, so non-ASCII header values compare unequal instead of raising
    return hmac.compare_digest(expected.encode("ascii"), provided.strip().encode("utf-8"))
