"""
Alumni Shared Helpers

Slug derivation and token utilities shared by the service, repository
and background jobs.
"""

import hashlib
import re
import secrets
import unicodedata

TOKEN_LENGTH = 32  # bytes of entropy; token_urlsafe yields 43 characters
SLUG_MAX_LENGTH = 200
FALLBACK_SLUG = "alumnus"

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    """
    Build the base slug for a display name.

    Accents are folded to ASCII, everything else that is not a letter or
    digit becomes a single hyphen. Names with nothing usable left fall back
    to ``alumnus``.

    Example: "Amit  Sharma" -> "amit-sharma", "José Núñez" -> "jose-nunez"
    """
    folded = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    slug = _NON_ALNUM.sub("-", folded.lower()).strip("-")
    slug = slug[:SLUG_MAX_LENGTH].rstrip("-")
    return slug or FALLBACK_SLUG


def pick_available_slug(base: str, taken: set[str]) -> str:
    """
    First of ``base``, ``base-1``, ``base-2``, ... not present in ``taken``.
    """
    if base not in taken:
        return base

    suffix = 1
    while f"{base}-{suffix}" in taken:
        suffix += 1
    return f"{base}-{suffix}"


def generate_token() -> str:
    """URL-safe random verification token, sent to the user and never stored."""
    return secrets.token_urlsafe(TOKEN_LENGTH)


def hash_token(token: str) -> str:
    """
    SHA-256 hex digest of a verification token.

    Only the digest is persisted, so a leaked database cannot be used to
    verify someone else's email.
    """
    return hashlib.sha256(token.encode()).hexdigest()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def mask_email(email: str) -> str:
    """
    Mask an email address for logs.

    Example: john.doe@example.com -> j***@example.com
    """
    if "@" not in email:
        return "***"

    local, domain = email.split("@", 1)
    masked_local = "*" if len(local) <= 1 else f"{local[0]}***"
    return f"{masked_local}@{domain}"
