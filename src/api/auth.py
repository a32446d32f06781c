"""
Caller identification

Authentication happens upstream (gateway / auth service); it forwards the
authenticated user id in the X-User-Id header. This module only resolves
that id to a User row.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from src.api.dependencies import get_session
from src.database.crud import get_user
from src.database.models import User


async def get_current_user(
    x_user_id: Optional[int] = Header(None, description="Authenticated user id"),
    session: AsyncSession = Depends(get_session),
) -> User:
    """
    Resolve the calling user

    Headers:
        X-User-Id: 42

    Raises:
        HTTPException 401: header missing or user unknown

    Returns:
        User model
    """
    if x_user_id is None:
        raise HTTPException(
            status_code=401,
            detail="Missing X-User-Id header"
        )

    user = await get_user(session, x_user_id)
    if user is None:
        logger.warning(f"Request for unknown user {x_user_id}")
        raise HTTPException(
            status_code=401,
            detail="Unknown user"
        )

    return user
