import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User
from app.utils.exceptions import ConflictError

logger = logging.getLogger(__name__)


async def find_duplicate(
        db: AsyncSession,
        email: Optional[str] = None,
        username: Optional[str] = None,
        exclude_id: Optional[int] = None
) -> Optional[ConflictError]:
    """Return the conflict that storing ``email``/``username`` would cause, or None."""
    checks = (
        (User.email, email, "Email already exists"),
        (User.username, username, "Username already exists"),
    )
    for column, value, message in checks:
        if not value:
            continue
        query = select(User.id).filter(column == value)
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        if await db.scalar(query):
            return ConflictError(message)
    return None


async def commit_unique(
        db: AsyncSession,
        email: Optional[str] = None,
        username: Optional[str] = None,
        exclude_id: Optional[int] = None
) -> None:
    """
    Commit a user insert or update.

    A concurrent request can claim the same email or username between the
    duplicate check and the commit; the unique index then rejects the row and
    the loser gets the same 400 it would have seen a moment later.
    """
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.info(f"Unique constraint rejected user write: {str(e.orig)}")
        conflict = await find_duplicate(db, email=email, username=username, exclude_id=exclude_id)
        raise conflict or ConflictError("User already exists")
