"""Cryptographic helpers shared by the authorization flow.

- Random tokens for state, CSRF and authorization codes
- SHA-256 hashing for the session binding cookie
- HMAC-SHA256 signing for the approved-clients cookie
"""

import hashlib
import hmac
import secrets


def random_token(nbytes: int = 32) -> str:
    """Return a URL-safe random token with nbytes of entropy."""
    return secrets.token_urlsafe(nbytes)


def sha256_hex(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def sign(data: str, secret: str) -> str:
    """HMAC-SHA256 of data, hex encoded."""
    return hmac.new(secret.encode("utf-8"), data.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_signature(data: str, signature: str, secret: str) -> bool:
    return constant_time_equals(sign(data, secret), signature)


def constant_time_equals(a: str, b: str) -> bool:
    # Bytes, so attacker-supplied non-ASCII text compares unequal instead of raising
    return hmac.compare_digest(a.encode("utf-8", "surrogatepass"), b.encode("utf-8", "surrogatepass"))
