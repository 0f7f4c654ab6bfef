"""
JWT Utility Functions

Helpers for generating short-lived JWTs used for service-to-service calls
between this server and the note store. These are *not* user tokens.

Key characteristics:
- Short-lived (TTL configured in settings)
- Scoped
- Signed with the dedicated service secret
- Includes explicit issuer/audience claims
"""

from __future__ import annotations

import jwt
import time
from typing import List, Dict, Any

from ..config import Settings


SERVICE_ISSUER = "memor-rag"
NOTE_STORE_AUDIENCE = "memor-notes"


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class JWTConfigurationError(RuntimeError):
    """Raised when JWT generation cannot proceed due to configuration issues."""


# ---------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------

def _get_current_timestamp() -> int:
    """Return current UNIX timestamp in UTC as integer seconds."""
    return int(time.time())


def _validate_jwt_config(settings: Settings) -> None:
    """
    Ensures required JWT configuration is present.
    Raises a structured exception instead of failing deep inside jwt.encode().
    """
    if not settings.jwt_service_secret.get_secret_value():
        raise JWTConfigurationError(
            "jwt_service_secret is not configured. Cannot generate JWT."
        )

    if settings.jwt_ttl_seconds <= 0:
        raise JWTConfigurationError(
            f"JWT_TTL must be a positive integer; got {settings.jwt_ttl_seconds}"
        )


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------

def create_service_jwt(
    settings: Settings,
    scopes: List[str],
    audience: str = NOTE_STORE_AUDIENCE,
) -> str:
    """
    Generate a short-lived JWT for calls to the note store.

    Parameters
    ----------
    settings : Settings
        Source of the signing secret, algorithm and TTL.

    scopes : List[str]
        List of granted scopes. Example: ["notes_read"]

    audience : str
        Expected audience of the receiving service.

    Returns
    -------
    str
        Encoded JWT suitable for use in Authorization: Bearer <token> header.

    Raises
    ------
    JWTConfigurationError
        If configuration is missing or invalid.
    """
    _validate_jwt_config(settings)

    now = _get_current_timestamp()

    payload: Dict[str, Any] = {
        "iss": SERVICE_ISSUER,
        "aud": audience,
        "iat": now,
        "exp": now + settings.jwt_ttl_seconds,
        "scope": scopes,
    }

    secret = settings.jwt_service_secret.get_secret_value()

    try:
        token = jwt.encode(payload, secret, algorithm=settings.jwt_algo)
    except Exception as exc:
        raise JWTConfigurationError(
            f"Failed to generate JWT: {type(exc).__name__}: {str(exc)}"
        ) from exc

    return token
