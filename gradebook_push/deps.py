"""
FastAPI dependencies for database, caller identity, and the push service.
"""

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from gradebook_push.db import get_db
from gradebook_push.services.push import PushNotificationService

# Type alias for database dependency
DBSession = Annotated[AsyncSession, Depends(get_db)]

ADMIN_ROLES = ("admin", "superadmin")


@dataclass(frozen=True)
class CurrentUserInfo:
    """Authenticated caller as forwarded by the auth gateway."""

    id: str
    school_id: str | None = None
    role: str = "student"

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_superadmin(self) -> bool:
        return self.role == "superadmin"


async def get_current_user(
    x_user_id: Annotated[str | None, Header()] = None,
    x_school_id: Annotated[str | None, Header()] = None,
    x_user_role: Annotated[str | None, Header()] = None,
) -> CurrentUserInfo:
    """Read the caller's identity (raises 401 if not authenticated)."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return CurrentUserInfo(
        id=x_user_id,
        school_id=x_school_id or None,
        role=(x_user_role or "student").lower(),
    )


# Type alias for authenticated user dependency
CurrentUser = Annotated[CurrentUserInfo, Depends(get_current_user)]


async def require_admin(user: CurrentUser) -> CurrentUserInfo:
    """Require an admin or super-admin caller."""
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


AdminUser = Annotated[CurrentUserInfo, Depends(require_admin)]


def get_push_service(request: Request) -> PushNotificationService:
    """The service instance built in the app lifespan."""
    return request.app.state.push_service


PushService = Annotated[PushNotificationService, Depends(get_push_service)]
