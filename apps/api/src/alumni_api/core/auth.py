"""
Admin Authentication

Alumni moderators sign in on the school site; this service only checks the
Bearer access token it is handed and turns its claims into an ``AdminUser``.
The admin's id is what gets stamped on approvals and rejections.

Local development accepts two shortcuts when, and only when, both the
settings and the PYTHON_ENV variable say "development":
- ``dev-token`` / ``test-token`` act as a fixed moderator
- a bare UUID acts as a moderator with that id (for multi-admin testing)
"""

import logging
import os
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from alumni_api.core.config import settings
from alumni_api.core.security import decode_token

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(description="Access token issued by the school site")

ADMIN_ROLES = frozenset({"super_admin", "admin"})


@dataclass(frozen=True)
class AdminUser:
    id: UUID
    email: str
    role: str
    name: str | None = None

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "AdminUser":
        """
        Raises:
            ValueError: If ``sub`` is missing or not a UUID
        """
        subject = claims.get("sub")
        if not subject:
            raise ValueError("token has no subject")
        return cls(
            id=UUID(str(subject)),
            email=claims.get("email", ""),
            role=claims.get("role", ""),
            name=claims.get("name"),
        )


def _dev_shortcuts_enabled() -> bool:
    env = os.getenv("PYTHON_ENV", "").lower()
    if not settings.is_development or env in ("production", "staging"):
        return False

    logger.warning("Development admin tokens are accepted; never run this way in production")
    return True


_DEV_SHORTCUTS = _dev_shortcuts_enabled()

_DEV_TOKENS = {
    "dev-token": AdminUser(
        id=UUID("00000000-0000-0000-0000-000000000001"),
        email="moderator@alumni.dev",
        role="super_admin",
        name="Dev Moderator",
    ),
}
_DEV_TOKENS["test-token"] = _DEV_TOKENS["dev-token"]


def _auth_error(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": code, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _dev_admin(token: str) -> AdminUser | None:
    if token in _DEV_TOKENS:
        return _DEV_TOKENS[token]
    try:
        admin_id = UUID(token)
    except ValueError:
        return None
    return AdminUser(id=admin_id, email=f"{token[:8]}@alumni.dev", role="admin")


def _admin_from_token(token: str) -> AdminUser:
    """
    Raises:
        HTTPException 401: Bad signature, expired, wrong type or unusable claims
    """
    if _DEV_SHORTCUTS:
        dev_admin = _dev_admin(token)
        if dev_admin is not None:
            return dev_admin

    claims = decode_token(token)
    if claims is None:
        raise _auth_error("INVALID_TOKEN", "Invalid or expired authentication token.")

    if claims.get("type", "access") != "access":
        logger.warning(f"Rejected {claims.get('type')} token on an admin endpoint")
        raise _auth_error("INVALID_TOKEN_TYPE", "An access token is required.")

    try:
        return AdminUser.from_claims(claims)
    except ValueError as e:
        logger.warning(f"Unusable token claims: {e}")
        raise _auth_error("INVALID_TOKEN_CLAIMS", "Token claims are missing or invalid.") from e


def _require_moderator(user: AdminUser) -> AdminUser:
    if user.role in ADMIN_ROLES:
        return user

    logger.warning(f"User {user.id} with role '{user.role}' tried to use alumni moderation")
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={
            "error": "ADMIN_ACCESS_REQUIRED",
            "message": "Only administrators can moderate alumni.",
        },
    )


async def get_current_admin_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> AdminUser:
    """
    Dependency for every alumni admin endpoint.

    Raises:
        HTTPException 401: Missing or invalid token
        HTTPException 403: Authenticated, but not an administrator
    """
    return _require_moderator(_admin_from_token(credentials.credentials))
