"""
FastAPI dependencies shared by the routers.

The service sits behind a chat transport that already knows who is talking,
so callers identify the user with a plain header instead of a token:

  get_user_id (X-User-Id header -> chat handle)
      └── get_active_business (handle -> Business the user is logged in to)

Every ledger query is scoped to the handle returned by get_user_id.
"""

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from kantong.database import get_db
from kantong.models.business import Business
from kantong.services import business_service


async def get_user_id(
    x_user_id: str | None = Header(default=None, description="Chat handle of the caller"),
) -> str:
    """
    Return the caller's chat handle.

    Raises:
        HTTPException 401: If the X-User-Id header is missing or blank.
    """
    if x_user_id is None or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return x_user_id.strip()


async def get_active_business(
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
) -> Business:
    """
    The business the caller is logged in to.

    Raises:
        NoActiveBusinessError (409): If there is no business session.
    """
    return await business_service.require_active_business(db, user_id)
