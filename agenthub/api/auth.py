"""Authentication dependency.

Bearer tokens are issued by the external identity provider; this module
only verifies them. The `sub` claim (or `email` when absent) is the user id.
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from agenthub.agent.structured_logging import set_request_context
from agenthub.config import settings

logger = logging.getLogger(__name__)
security = HTTPBearer(auto_error=False)  # Anonymous requests fall back to the dev user


def decode_access_token(token: str) -> Optional[str]:
    """Decode a JWT token and return the user ID"""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm]
        )
    except JWTError as e:
        logger.debug("[AUTH] Rejected token: %s", e)
        return None
    user_id = payload.get("sub") or payload.get("email")
    if not isinstance(user_id, str) or not user_id:
        return None
    return user_id


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """Dependency returning the authenticated user's id."""
    user_id = None
    if credentials and credentials.credentials:
        user_id = decode_access_token(credentials.credentials)
        if not user_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or expired token",
                headers={"WWW-Authenticate": "Bearer"},
            )
    elif settings.allow_anonymous:
        user_id = settings.dev_user_id

    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    set_request_context(user_id=user_id)
    return user_id
