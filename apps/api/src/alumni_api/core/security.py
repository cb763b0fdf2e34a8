"""
JWT helpers.

Admin sessions are managed by the surrounding site; this service only
validates the access tokens it is handed. ``create_access_token`` exists
for local development and tests.
"""

import logging
import time
from datetime import timedelta
from typing import Any
from uuid import UUID

import jwt
from jwt import InvalidTokenError

from alumni_api.core.config import settings

logger = logging.getLogger(__name__)


def create_access_token(
    subject: UUID | str,
    email: str,
    role: str,
    name: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Encode an HS256 access token with the claims ``get_current_admin_user`` reads."""
    now = int(time.time())
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)

    payload: dict[str, Any] = {
        "sub": str(subject),
        "email": email,
        "role": role,
        "type": "access",
        "iat": now,
        "exp": now + int(expires_delta.total_seconds()),
    }
    if name:
        payload["name"] = name

    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict[str, Any] | None:
    """
    Decode and validate a JWT.

    Returns:
        The claims, or None if the signature, algorithm or expiry check fails
    """
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "sub"]},
        )
    except InvalidTokenError as e:
        logger.debug(f"Token rejected: {e}")
        return None
