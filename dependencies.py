import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.user import User
from app.utils.exceptions import (
    CREDENTIALS_EXCEPTION,
    USER_NOT_FOUND_EXCEPTION,
    AuthenticationError,
    AuthorizationError,
    InvalidTokenError,
)
from app.utils.security import decode_access_token, MalformedTokenError, TokenExpiredError
from database import get_db
from config import API_PREFIX

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{API_PREFIX}/auth/login", auto_error=False)

__all__ = ["get_db", "get_current_user", "require_role", "load_user", "logger"]


async def load_user(db: AsyncSession, user_id: int) -> Optional[User]:
    """Fetch a user together with both sides of its follow edges."""
    return await db.scalar(
        select(User)
        .options(selectinload(User.followers), selectinload(User.following))
        .filter(User.id == user_id)
        .execution_options(populate_existing=True)
    )


async def get_current_user(
        request: Request,
        token: Optional[str] = Depends(oauth2_scheme),
        db: AsyncSession = Depends(get_db)
) -> User:
    if not token:
        logger.warning(f"Rejected {request.method} {request.url.path}: no bearer token")
        raise CREDENTIALS_EXCEPTION

    try:
        token_data = decode_access_token(token)
    except TokenExpiredError:
        logger.info(f"Rejected {request.method} {request.url.path}: token expired")
        raise InvalidTokenError()
    except MalformedTokenError as e:
        logger.warning(f"Rejected {request.method} {request.url.path}: malformed token ({e})")
        raise InvalidTokenError()

    user = await load_user(db, token_data.user_id)
    if user is None:
        logger.warning(f"Token subject {token_data.user_id} does not exist")
        raise USER_NOT_FOUND_EXCEPTION

    if not user.is_active:
        raise AuthenticationError("Account is deactivated")

    request.state.user_id = user.id
    request.state.role = user.role
    return user


def require_role(*roles: str):
    """Build a dependency that admits only authenticated users holding one of ``roles``."""

    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise AuthorizationError(
                f"User role {current_user.role} is not authorized to access this route"
            )
        return current_user

    return role_checker
