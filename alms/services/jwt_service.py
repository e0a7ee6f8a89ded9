"""
JWT Service — access token generation and verification.

Access token: 15 minutes (JWT_ACCESS_EXPIRES)
Algorithm:    HS256

Token payload:
{
    "sub": "<user_id>",
    "role": "DCP",
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}

Tokens are issued by the identity provider in front of this service; the
generator here exists for that provider's shared-secret setup and for tests.
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

DEFAULT_ACCESS_EXPIRES = 900  # 15 minutes
ALGORITHM = "HS256"


def _get_secret():
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)


def generate_access_token(user_id: int, role_code: str | None = None) -> str:
    """Sign a short-lived access token for *user_id*."""
    now = datetime.now(timezone.utc)
    payload = {
        # PyJWT requires "sub" to be a string
        "sub": str(user_id),
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=_get_access_expires()),
        "jti": str(uuid.uuid4()),
    }
    if role_code:
        payload["role"] = role_code
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature, expiry and token type.

    Raises jwt.ExpiredSignatureError / jwt.InvalidTokenError on failure.
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])
    if payload.get("type") != "access":
        raise jwt.InvalidTokenError(f"Expected access token, got {payload.get('type')}")
    return payload
