"""Authentication dependencies: end-user bearer tokens and the admin API key."""

import logging
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from healthy_meals.common.exceptions import UnauthenticatedError

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class CurrentUser:
    """Identity resolved from the identity provider's session token."""
    user_id: str
    email: Optional[str] = None


def decode_user_token(token: str) -> CurrentUser:
    """Verify a session JWT and return the caller's identity.

    Raises UnauthenticatedError on a bad signature, expiry, wrong audience or
    a token without a subject.
    """
    from healthy_meals.common.config import get_settings

    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience or None,
            options={"verify_aud": bool(settings.jwt_audience)},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthenticatedError("Token has expired")
    except jwt.InvalidTokenError:
        raise UnauthenticatedError("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthenticatedError("Invalid token: missing subject")
    return CurrentUser(user_id=str(user_id), email=payload.get("email"))


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CurrentUser:
    """FastAPI dependency returning the authenticated user or answering 401."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        return decode_user_token(credentials.credentials)
    except UnauthenticatedError as e:
        logger.info("Rejected session token: %s", e.message)
        raise HTTPException(status_code=401, detail="Unauthorized")


async def require_api_key(
    x_api_key: str = Header(..., alias="X-Healthy-Meals-Api-Key"),
) -> str:
    """FastAPI dependency that validates the admin API key from header."""
    from healthy_meals.common.config import get_settings

    settings = get_settings()
    if x_api_key != settings.api_key:
        raise HTTPException(status_code=403, detail="Invalid API key")
    return x_api_key
