"""Authentication dependencies.

A session JWT is accepted from the httpOnly session cookie or from an
``Authorization: Bearer`` header.
"""

import uuid
from typing import Annotated

from fastapi import Cookie, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quillstream.config import settings
from quillstream.core.security import TokenData, decode_access_token
from quillstream.database import get_db
from quillstream.logging_config import get_logger
from quillstream.models.novel import Novel
from quillstream.models.user import User

logger = get_logger(__name__)


async def get_current_user(
    request: Request,
    session_token: Annotated[str | None, Cookie(alias=settings.jwt_cookie_name)] = None,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Extract and validate the current user.

    Returns:
        The authenticated User object

    Raises:
        HTTPException 401: If no valid credentials are found
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not session_token:
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            session_token = auth_header[7:]

    if not session_token:
        raise credentials_exception

    payload = decode_access_token(session_token)
    if payload is None:
        raise credentials_exception

    try:
        token_data = TokenData(payload)
    except (KeyError, ValueError):
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == token_data.user_id))
    user = result.scalar_one_or_none()
    if user is None:
        logger.warning("Token for unknown user", user_id=str(token_data.user_id))
        raise credentials_exception
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is disabled",
        )
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


async def get_owned_novel(
    novel_id: uuid.UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> Novel:
    """Resolve ``novel_id`` from the path, 404 unless the user owns it."""
    result = await db.execute(
        select(Novel).where(Novel.id == novel_id, Novel.user_id == current_user.id)
    )
    novel = result.scalar_one_or_none()
    if novel is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Novel not found",
        )
    return novel


OwnedNovel = Annotated[Novel, Depends(get_owned_novel)]
