"""
JWT Verification & Scope Enforcement

This module is responsible for:

1. Verifying user JWTs issued by the memor app backend.
2. Verifying service JWTs presented by the note store webhook.
3. Enforcing scope-based authorization rules.
4. Producing validated `UserContext` / `ServiceContext` objects.

Security Model
--------------
- User tokens and service tokens use different secrets.
- The user id is read from the `sub` claim only. Retrieval scope is decided
  here, never by fields the client puts in a request body.
"""

from __future__ import annotations

import jwt
from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..api.dependencies import get_app_settings
from ..config import Settings
from ..core.errors import AuthorizationMissing
from .jwt_utils import NOTE_STORE_AUDIENCE
from .models import ServiceContext, UserContext


# ---------------------------------------------------------------------
# Security Scheme
# ---------------------------------------------------------------------

security = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------

def _decode(token: str, secret: str, settings: Settings, audience: str, issuer: str) -> dict:
    return jwt.decode(
        token,
        secret,
        algorithms=[settings.jwt_algo],
        audience=audience,
        issuer=issuer,
        options={"require": ["iss", "aud", "iat", "exp", "scope"]},
    )


def _raise_for_jwt_error(exc: jwt.InvalidTokenError) -> None:
    if isinstance(exc, jwt.ExpiredSignatureError):
        detail = "Token has expired."
    elif isinstance(exc, jwt.InvalidAudienceError):
        detail = "Invalid token audience."
    elif isinstance(exc, jwt.InvalidIssuerError):
        detail = "Invalid token issuer."
    else:
        detail = "Invalid or malformed token."

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
    ) from exc


def decode_user_token(token: str, settings: Settings) -> UserContext:
    """
    Decode and validate a user JWT.

    Expected claims:
      - iss: settings.jwt_issuer
      - aud: settings.jwt_audience
      - sub: user id
      - scope: list of granted operations

    Raises
    ------
    HTTPException(401)
        For invalid, expired or wrongly addressed tokens.
    AuthorizationMissing
        If the token verifies but carries no usable user id.
    """
    try:
        payload = _decode(
            token,
            settings.jwt_client_secret.get_secret_value(),
            settings,
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
        )
    except jwt.InvalidTokenError as exc:
        _raise_for_jwt_error(exc)

    user_id = payload.get("sub")
    if not isinstance(user_id, str) or not user_id.strip():
        raise AuthorizationMissing("Token does not identify a user.")

    scopes = payload.get("scope")
    if not isinstance(scopes, list):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="'scope' claim must be a list.",
        )

    return UserContext(
        user_id=user_id.strip(),
        scopes=scopes,
        client_id=payload.get("client_id", settings.jwt_issuer),
    )


# ---------------------------------------------------------------------
# Public Authentication Dependencies
# ---------------------------------------------------------------------

def verify_user_jwt(
    creds: HTTPAuthorizationCredentials | None = Depends(security),
    settings: Settings = Depends(get_app_settings),
) -> UserContext:
    """
    Verify the bearer token of an end-user request.
    """
    if creds is None or not creds.credentials:
        raise AuthorizationMissing("No authorization token provided.")

    return decode_user_token(creds.credentials, settings)


def verify_service_jwt(
    creds: HTTPAuthorizationCredentials | None = Depends(security),
    settings: Settings = Depends(get_app_settings),
) -> ServiceContext:
    """
    Verify a service token presented by the note store.
    """
    if creds is None or not creds.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Service token required.",
        )

    try:
        payload = _decode(
            creds.credentials,
            settings.jwt_service_secret.get_secret_value(),
            settings,
            audience=settings.jwt_audience,
            issuer=NOTE_STORE_AUDIENCE,
        )
    except jwt.InvalidTokenError as exc:
        _raise_for_jwt_error(exc)

    scopes = payload.get("scope")
    if not isinstance(scopes, list):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="'scope' claim must be a list.",
        )

    return ServiceContext(service=payload["iss"], scopes=scopes)


# ---------------------------------------------------------------------
# Scope enforcement helpers
# ---------------------------------------------------------------------

def _check(granted: list[str], required: tuple[str, ...]) -> None:
    missing = [s for s in required if s not in granted]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Missing required scope(s): {', '.join(missing)}",
        )


def require_scopes(*required_scopes: str) -> Callable:
    """
    Create a FastAPI dependency that enforces scope-based access control
    for end users.

    Example:
        @router.post("/query")
        async def query(user = Depends(require_scopes("rag_query"))):
            ...
    """

    def check_scopes(
        user: UserContext = Depends(verify_user_jwt),
    ) -> UserContext:
        _check(user.scopes, required_scopes)
        return user

    return check_scopes


def require_service_scopes(*required_scopes: str) -> Callable:
    """
    Same as `require_scopes` but for service tokens.
    """

    def check_scopes(
        service: ServiceContext = Depends(verify_service_jwt),
    ) -> ServiceContext:
        _check(service.scopes, required_scopes)
        return service

    return check_scopes
