"""JWT utilities for OAuth access and refresh tokens.

Tokens are stateless: they carry the identity payload (Props) as claims and
are validated by signature, so they survive server restarts.
"""

import logging
import time
from typing import Optional

import jwt

from oauth.models import Props

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_SECONDS = 24 * 60 * 60  # 24 hours
REFRESH_TOKEN_EXPIRE_SECONDS = 30 * 24 * 60 * 60  # 30 days


def _create_token(
    token_type: str,
    props: Props,
    client_id: str,
    scope: str,
    issuer: str,
    secret: str,
    expires_in: int,
) -> str:
    now = int(time.time())
    payload = {
        "sub": props.line_user_id,     # Subject (LINE user id)
        "props": props.model_dump(),   # Identity payload for tools
        "client_id": client_id,
        "scope": scope,
        "iss": issuer,
        "iat": now,
        "exp": now + expires_in,
        "type": token_type,
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def create_access_token(
    props: Props,
    client_id: str,
    scope: str,
    issuer: str,
    secret: str,
    expires_in: int = ACCESS_TOKEN_EXPIRE_SECONDS,
) -> str:
    """Create a signed access token embedding props."""
    return _create_token("access", props, client_id, scope, issuer, secret, expires_in)


def create_refresh_token(
    props: Props,
    client_id: str,
    scope: str,
    issuer: str,
    secret: str,
    expires_in: int = REFRESH_TOKEN_EXPIRE_SECONDS,
) -> str:
    return _create_token("refresh", props, client_id, scope, issuer, secret, expires_in)


def _verify_token(token: str, secret: str, token_type: str, issuer: str = None) -> Optional[dict]:
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            options={"require": ["exp", "sub"]},
            issuer=issuer,
        )
    except jwt.ExpiredSignatureError:
        logger.debug(f"[JWT] {token_type} token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug(f"[JWT] Invalid {token_type} token: {e}")
        return None

    if payload.get("type") != token_type:
        logger.debug(f"[JWT] Token is not a {token_type} token")
        return None

    return payload


def verify_access_token(token: str, secret: str, issuer: str = None) -> Optional[dict]:
    """Verify and decode an access token.

    Returns:
        The decoded payload (sub, props, client_id, scope, iss, iat, exp,
        type) if valid, None otherwise.
    """
    return _verify_token(token, secret, "access", issuer)


def verify_refresh_token(token: str, secret: str, issuer: str = None) -> Optional[dict]:
    return _verify_token(token, secret, "refresh", issuer)


def props_from_payload(payload: dict) -> Optional[Props]:
    try:
        return Props.model_validate(payload.get("props") or {})
    except ValueError:
        return None
