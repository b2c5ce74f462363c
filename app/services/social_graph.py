import logging
from typing import List, Tuple

from sqlalchemy import select, and_, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.social import UserFollow
from app.models.user import User
from app.utils.exceptions import (
    SelfFollowError,
    SelfUnfollowError,
    TargetNotFoundError,
    AlreadyFollowingError,
    NotFollowingError,
)

logger = logging.getLogger(__name__)


class SocialGraph:
    """
    Follower/following edges between users.

    An edge is one ``user_follows`` row, read as ``following`` from the
    follower's side and as ``followers`` from the followed user's side, so a
    successful commit always leaves both views in agreement.
    """

    def __init__(self, default_suggestions: int = 10):
        self.default_suggestions = default_suggestions

    async def is_following(self, db: AsyncSession, actor_id: int, target_id: int) -> bool:
        edge = await db.scalar(
            select(UserFollow.id).filter(
                and_(
                    UserFollow.follower_id == actor_id,
                    UserFollow.followed_id == target_id
                )
            )
        )
        return edge is not None

    async def follow(self, db: AsyncSession, actor_id: int, target_id: int) -> UserFollow:
        """
        Make ``actor_id`` follow ``target_id``.

        Raises:
            SelfFollowError: actor and target are the same user
            TargetNotFoundError: target does not exist
            AlreadyFollowingError: the edge already exists
        """
        if actor_id == target_id:
            raise SelfFollowError()

        target = await db.get(User, target_id)
        if target is None:
            raise TargetNotFoundError("User to follow not found")

        if await self.is_following(db, actor_id, target_id):
            raise AlreadyFollowingError()

        edge = UserFollow(follower_id=actor_id, followed_id=target_id)
        db.add(edge)
        try:
            await db.commit()
        except IntegrityError:
            # Lost a race against an identical follow
            await db.rollback()
            raise AlreadyFollowingError()

        logger.info(f"User {actor_id} now follows {target_id}")
        return edge

    async def unfollow(self, db: AsyncSession, actor_id: int, target_id: int) -> None:
        """
        Remove the ``actor_id`` -> ``target_id`` edge.

        Raises:
            SelfUnfollowError: actor and target are the same user
            TargetNotFoundError: target does not exist
            NotFollowingError: there is no such edge
        """
        if actor_id == target_id:
            raise SelfUnfollowError()

        target = await db.get(User, target_id)
        if target is None:
            raise TargetNotFoundError("User to unfollow not found")

        result = await db.execute(
            delete(UserFollow).where(
                and_(
                    UserFollow.follower_id == actor_id,
                    UserFollow.followed_id == target_id
                )
            )
        )
        if result.rowcount == 0:
            await db.rollback()
            raise NotFollowingError()

        await db.commit()
        logger.info(f"User {actor_id} unfollowed {target_id}")

    async def followers(self, db: AsyncSession, user_id: int) -> List[User]:
        result = await db.execute(
            select(User)
            .join(UserFollow, UserFollow.follower_id == User.id)
            .filter(UserFollow.followed_id == user_id)
            .order_by(UserFollow.id)
        )
        return list(result.scalars().all())

    async def following(self, db: AsyncSession, user_id: int) -> List[User]:
        result = await db.execute(
            select(User)
            .join(UserFollow, UserFollow.followed_id == User.id)
            .filter(UserFollow.follower_id == user_id)
            .order_by(UserFollow.id)
        )
        return list(result.scalars().all())

    async def suggestions(self, db: AsyncSession, actor_id: int, limit: int = None) -> List[Tuple[User, bool]]:
        """
        Newest accounts other than the actor, each paired with whether the
        actor already follows it. Followed users stay in the list.
        """
        limit = limit or self.default_suggestions

        result = await db.execute(
            select(User)
            .filter(User.id != actor_id)
            .order_by(User.created_at.desc(), User.id.desc())
            .limit(limit)
        )
        candidates = list(result.scalars().all())
        if not candidates:
            return []

        followed = await db.execute(
            select(UserFollow.followed_id).filter(
                and_(
                    UserFollow.follower_id == actor_id,
                    UserFollow.followed_id.in_([user.id for user in candidates])
                )
            )
        )
        followed_ids = {row[0] for row in followed.fetchall()}

        return [(user, user.id in followed_ids) for user in candidates]
