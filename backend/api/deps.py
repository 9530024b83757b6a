"""
Waypoint API Dependencies

Dependency injection for DB sessions, auth, actor context and the
lifecycle service.
"""

from collections.abc import AsyncGenerator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from core.access import Actor
from core.config import get_settings
from db.session import AsyncSessionLocal
from lifecycle.service import OrderLifecycleService, lifecycle_service_for

settings = get_settings()
security = HTTPBearer(auto_error=not settings.debug)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict:
    """Decode JWT and return user payload. Bypassed in debug mode."""
    if settings.debug:
        return {
            "sub": "dev-user",
            "email": "dev@waypoint.local",
            "role": "admin",
        }

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    from core.security import decode_access_token

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return payload


async def get_current_actor(user: dict = Depends(get_current_user)) -> Actor:
    """Normalize the token payload into an Actor (typed role, UUID tenant)."""
    try:
        return Actor.from_token_payload(user)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Malformed tenant claim",
        ) from None


async def get_lifecycle_service(db: AsyncSession = Depends(get_db)) -> OrderLifecycleService:
    return lifecycle_service_for(db)
