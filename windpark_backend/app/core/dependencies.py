"""
Authentication dependencies for FastAPI.

This module provides dependencies for protecting routes with JWT authentication.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from windpark_backend.app.core.jwt import decode_access_token
from windpark_backend.app.core.token_revocation import is_token_revoked, are_user_tokens_revoked

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    Checks:
    1. Validates JWT token signature and expiry
    2. Requires user_id and tenant_id claims
    3. Checks if token has been explicitly revoked
    4. Checks if all user tokens have been revoked

    Args:
        credentials: HTTP Bearer token from request header

    Returns:
        Decoded token payload containing user information

    Raises:
        HTTPException: 401 if authentication fails for any reason
    """
    token = credentials.credentials

    # 1. Decode and validate JWT
    payload = decode_access_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # 2. Every request acts for exactly one tenant
    user_id = payload.get("user_id")
    tenant_id = payload.get("tenant_id")
    if not user_id or not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # 3. Check if this specific token has been revoked
    if await is_token_revoked(token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has been revoked",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # 4. Check if all user tokens have been revoked
    if await are_user_tokens_revoked(user_id):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User access has been revoked",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return payload
