"""Bearer-token authentication and role gates."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, Request, status

from challengehub.config import get_settings
from challengehub.logging_config import get_logger

logger = get_logger(__name__)

ROLE_USER = "user"
ROLE_REVIEWER = "reviewer"
ROLE_ADMIN = "admin"
ROLES = frozenset({ROLE_USER, ROLE_REVIEWER, ROLE_ADMIN})

ACCESS_TOKEN_EXPIRE_MINUTES = 60


@dataclass(frozen=True)
class Caller:
    """The authenticated identity behind a request."""

    user_id: UUID
    role: str


def create_access_token(user_id: str, role: str = ROLE_USER) -> str:
    """Create a signed access token. Used by tooling and tests."""
    settings = get_settings()
    expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {"sub": user_id, "role": role, "exp": expire, "type": "access"}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_jwt(token: str) -> dict:
    """Decode and validate a JWT token. Raises HTTPException on failure."""
    settings = get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


async def get_caller(request: Request) -> Caller:
    """
    FastAPI dependency: extract and validate the Bearer token.

    Returns the Caller or raises 401.
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid Authorization header",
        )

    token = auth_header.removeprefix("Bearer ").strip()
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Empty token",
        )

    claims = decode_jwt(token)
    try:
        user_id = UUID(str(claims["sub"]))
    except (KeyError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token subject is not a user id",
        )

    role = claims.get("role", ROLE_USER)
    if role not in ROLES:
        logger.warning("unknown_role_in_token", user_id=str(user_id), role=role)
        role = ROLE_USER

    caller = Caller(user_id=user_id, role=role)
    request.state.caller_id = str(user_id)
    return caller


def require_roles(*roles: str):
    """Build a dependency that admits only callers holding one of ``roles``."""

    async def _check(caller: Caller = Depends(get_caller)) -> Caller:
        if caller.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(roles)}",
            )
        return caller

    return _check


require_admin = require_roles(ROLE_ADMIN)
require_reviewer = require_roles(ROLE_REVIEWER, ROLE_ADMIN)
