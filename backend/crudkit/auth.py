"""
crudkit — Authentication Collaborator
=======================================

What:  FastAPI dependencies that turn a Bearer token into a Principal.
How:   The token is an HS256 JWT signed with JWT_SECRET by the auth service;
       it is only verified here, never issued to clients (issue_token exists
       for tests and local tooling). The principal id comes from the first
       of the `sub`, `_id`, `id`, `userId` claims that is present.
Who:   ServiceBootstrap interposes require_auth in front of authenticated
       routers and optional_auth in front of public ones; controller routes
       read the result through get_principal.

    Authorization: Bearer <jwt>
        │
        ├── missing / not Bearer  → 401 "Missing Bearer token"
        ├── bad signature/expired → 401 "Invalid or expired token"
        └── ok                    → request.state.principal = Principal(...)
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Request
from jwt.exceptions import InvalidTokenError

from crudkit.config import settings
from crudkit.exceptions import UnauthorizedError
from crudkit.models.base import ACTOR_LENGTH

logger = logging.getLogger(__name__)

PRINCIPAL_CLAIMS = ("sub", "_id", "id", "userId")


@dataclass(frozen=True)
class Principal:
    """
    The authenticated actor making a request.

    Attributes:
        id:     Identifier used for ownership scoping and bookkeeping
        email:  Email claim, if the token carries one
        role:   Role claim, if the token carries one
    """
    id: str
    email: Optional[str] = None
    role: Optional[str] = None


def decode_token(token: str, secret: Optional[str] = None, algorithm: Optional[str] = None) -> Principal:
    """
    Verify a JWT and build the Principal it describes.

    Raises:
        UnauthorizedError: signature, expiry or claims are invalid, or the
                           service has no JWT secret configured
    """
    key = secret if secret is not None else settings.jwt_secret
    if not key:
        logger.error("JWT_SECRET is not configured; rejecting token")
        raise UnauthorizedError()

    try:
        payload = jwt.decode(token, key, algorithms=[algorithm or settings.jwt_algorithm])
    except InvalidTokenError as e:
        logger.debug("Token rejected: %s", str(e))
        raise UnauthorizedError() from e

    principal_id = next((payload[claim] for claim in PRINCIPAL_CLAIMS if payload.get(claim)), None)
    if principal_id is None:
        raise UnauthorizedError()
    # The id is stored verbatim in created_by/updated_by/deleted_by
    if len(str(principal_id)) > ACTOR_LENGTH:
        logger.warning("Token principal id exceeds %d characters", ACTOR_LENGTH)
        raise UnauthorizedError()

    return Principal(
        id=str(principal_id),
        email=payload.get("email"),
        role=payload.get("role"),
    )


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return None
    return header[len("Bearer "):].strip() or None


async def require_auth(request: Request) -> Principal:
    """Dependency: reject the request unless it carries a valid Bearer token."""
    token = _bearer_token(request)
    if token is None:
        raise UnauthorizedError(message="Missing Bearer token")
    principal = decode_token(token)
    request.state.principal = principal
    return principal


async def optional_auth(request: Request) -> Optional[Principal]:
    """Dependency: attach a principal when a valid token is present, else stay anonymous."""
    token = _bearer_token(request)
    principal: Optional[Principal] = None
    if token is not None:
        try:
            principal = decode_token(token)
        except UnauthorizedError:
            principal = None
    request.state.principal = principal
    return principal


def get_principal(request: Request) -> Optional[Principal]:
    """Dependency: the principal attached by require_auth/optional_auth, if any."""
    return getattr(request.state, "principal", None)


def issue_token(
    principal_id: str,
    email: Optional[str] = None,
    role: str = "user",
    expires_in: timedelta = timedelta(hours=1),
    secret: Optional[str] = None,
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """Sign a token the way the auth service does (tests and local tooling)."""
    now = datetime.now(timezone.utc)
    claims: Dict[str, Any] = {
        "sub": str(principal_id),
        "role": role,
        "iat": now,
        "exp": now + expires_in,
    }
    if email:
        claims["email"] = email
    if extra_claims:
        claims.update(extra_claims)
    return jwt.encode(
        claims,
        secret if secret is not None else settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )
