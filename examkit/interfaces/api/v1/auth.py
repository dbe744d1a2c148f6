"""
ExamKit - Authentication Dependencies
Bearer token verification with role checks. Tokens are issued by the
identity provider; this service never mints them.
"""

from typing import Annotated, Optional

import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from examkit.core.config import Settings

logger = structlog.get_logger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token")
optional_oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="/api/v1/auth/token",
    auto_error=False,
)


def decode_token(token: str, settings: Settings) -> dict:
    """Decode and validate JWT token."""
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        return payload
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def user_from_token(token: str, settings: Settings) -> dict:
    payload = decode_token(token, settings)

    # Refresh tokens from the identity provider are not accepted here
    if payload.get("type", "access") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
        )

    user_id = payload.get("sub")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    return {
        "id": str(user_id),
        "username": payload.get("username"),
        "role": payload.get("role"),
    }


async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    request: Request,
) -> dict:
    """Get current authenticated user from JWT token."""
    return user_from_token(token, request.app.state.settings)


async def get_optional_user(
    token: Annotated[Optional[str], Depends(optional_oauth2_scheme)],
    request: Request,
) -> Optional[dict]:
    """Current user when a token is sent, None for guests."""
    if token is None:
        return None
    return user_from_token(token, request.app.state.settings)


def is_admin(user: Optional[dict], settings: Settings) -> bool:
    return user is not None and user.get("role") in settings.admin_roles


async def require_admin(
    current_user: Annotated[dict, Depends(get_current_user)],
    request: Request,
) -> dict:
    """Require admin role."""
    if not is_admin(current_user, request.app.state.settings):
        logger.warning("Admin access denied", user_id=current_user["id"])
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user
