"""FastAPI dependencies for database sessions, authentication and services."""
from functools import lru_cache
from typing import Any, AsyncGenerator, Optional

import jwt
import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.adapters.mollie_adapter import ResourceFetcherFactory, mollie_adapter_factory
from hookrelay.auth.jwt import jwt_auth
from hookrelay.config import settings
from hookrelay.database import AsyncSessionLocal
from hookrelay.security.crypto import SecretBox
from hookrelay.services.forwarding_service import Forwarder, ForwardingDispatcher

logger = structlog.get_logger(__name__)

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database session dependency.

    Yields:
        AsyncSession: Database session for the request lifecycle
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict[str, Any]:
    """
    Get current authenticated user from JWT token.

    Args:
        credentials: HTTP Bearer token from request header

    Returns:
        dict: Decoded claims, with the subject parsed into ``user_id``

    Raises:
        HTTPException: If token is invalid, expired, or missing
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = credentials.credentials

    try:
        payload = jwt_auth.verify_access_token(token)
    except jwt.ExpiredSignatureError:
        logger.warning("token_expired")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        logger.warning("invalid_token", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return payload


@lru_cache
def get_secret_box() -> SecretBox:
    """Crypto adapter built once from ENCRYPTION_KEY."""
    return SecretBox(settings.encryption_key)


@lru_cache
def get_forwarder() -> Forwarder:
    """Forwarder used for synchronous replays."""
    return Forwarder()


@lru_cache
def get_dispatcher() -> ForwardingDispatcher:
    """Process-wide background forwarding dispatcher."""
    return ForwardingDispatcher(AsyncSessionLocal, get_forwarder())


def get_resource_fetcher_factory() -> ResourceFetcherFactory:
    """Factory building a Mollie client from a decrypted API key."""
    return mollie_adapter_factory
