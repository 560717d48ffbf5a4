"""FastAPI dependencies for injection into route handlers."""

from collections.abc import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from padel.core.auth import decode_token
from padel.core.database import get_db
from padel.models.user import User, UserRole

bearer_scheme = HTTPBearer(auto_error=False)

MANAGER_ROLES = (UserRole.COMMUNITY_MANAGER, UserRole.SUPER_ADMIN)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


async def get_token_payload(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict:
    """Decode the bearer access token. Cached per request by FastAPI."""
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from None

    if payload.get("type") != "access":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token type")
    return payload


async def get_current_user(
    payload: dict = Depends(get_token_payload),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Extract and validate the current user from the JWT bearer token."""
    try:
        user_id = int(payload["sub"])
    except (KeyError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from None

    result = await db.execute(select(User).where(User.id == user_id, User.is_active.is_(True)))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    return user


async def get_active_role(payload: dict = Depends(get_token_payload)) -> UserRole:
    """The role the user is currently acting as (set by /auth/switch-role)."""
    try:
        return UserRole(payload.get("role", UserRole.MEMBER))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token role") from None


# ---------------------------------------------------------------------------
# Role checks
# ---------------------------------------------------------------------------


def require_role(*allowed_roles: UserRole) -> Callable:
    """Factory: return a dependency that enforces the token's active role is one of ``allowed_roles``.

    The active role is only a claim about what the user is acting as; services
    still check the database assignment (e.g. which community is managed).

    Usage in a route:
        @router.get("/manager/thing")
        async def thing(user: User = Depends(require_role(UserRole.SUPER_ADMIN))):
            ...
    """

    async def _check(
        role: UserRole = Depends(get_active_role),
        user: User = Depends(get_current_user),
    ) -> User:
        if role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires one of: {', '.join(r.value for r in allowed_roles)}",
            )
        return user

    return _check


# Convenience shortcut
require_manager = require_role(*MANAGER_ROLES)
