"""
Token Revocation System using Redis.

Implements token blacklisting to immediately invalidate JWT tokens
when users are logged out or their access is withdrawn.
"""

import logging
from windpark_backend.app.core import redis_client as redis_module
from windpark_backend.app.core.config import settings

logger = logging.getLogger(__name__)

# Redis key prefix for blacklisted tokens
TOKEN_BLACKLIST_PREFIX = "blacklist:token:"
USER_TOKENS_PREFIX = "user:tokens:"


async def revoke_token(token: str, user_id: int) -> bool:
    """
    Revoke a specific JWT token by adding it to the blacklist.

    Args:
        token: The JWT token string to revoke
        user_id: User ID who owns the token

    Returns:
        True if successfully revoked, False otherwise
    """
    try:
        # Tokens auto-expire anyway, so the entry only has to outlive them
        ttl_seconds = settings.access_token_expire_minutes * 60
        key = f"{TOKEN_BLACKLIST_PREFIX}{token}"
        await redis_module.redis_client.set(key, str(user_id), ex=ttl_seconds)
        return True
    except Exception:
        logger.exception("Error revoking token for user %s", user_id)
        return False


async def is_token_revoked(token: str) -> bool:
    """
    Check if a token has been revoked.

    Args:
        token: JWT token string to check

    Returns:
        True if token is revoked, False otherwise
    """
    try:
        key = f"{TOKEN_BLACKLIST_PREFIX}{token}"
        exists = await redis_module.redis_client.exists(key)
        return exists > 0
    except Exception:
        # Redis unavailable: availability wins over the blacklist check
        logger.warning("Token revocation check failed, allowing request", exc_info=True)
        return False


async def revoke_all_user_tokens(user_id: int) -> bool:
    """
    Revoke all active tokens for a specific user.

    Args:
        user_id: User ID whose tokens should be revoked

    Returns:
        True if successful
    """
    try:
        key = f"{USER_TOKENS_PREFIX}{user_id}:revoked"
        ttl_seconds = settings.access_token_expire_minutes * 60
        await redis_module.redis_client.set(key, "1", ex=ttl_seconds)
        return True
    except Exception:
        logger.exception("Error revoking all tokens for user %s", user_id)
        return False


async def are_user_tokens_revoked(user_id: int) -> bool:
    """
    Check if all tokens for a user have been revoked.

    Args:
        user_id: User ID to check

    Returns:
        True if all user tokens are revoked, False otherwise
    """
    try:
        key = f"{USER_TOKENS_PREFIX}{user_id}:revoked"
        exists = await redis_module.redis_client.exists(key)
        return exists > 0
    except Exception:
        logger.warning("User token revocation check failed for user %s", user_id, exc_info=True)
        return False
