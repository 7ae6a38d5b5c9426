"""FastAPI dependencies."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from studybuddy.database import get_db


async def get_user_id(
    x_user_id: Annotated[str | None, Header()] = None,
) -> UUID:
    """Extract the authenticated user ID set by the upstream gateway."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-ID header is required",
        )
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid user ID format",
        )


# Type aliases for dependency injection
UserId = Annotated[UUID, Depends(get_user_id)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
