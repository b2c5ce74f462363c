import logging
from typing import List, Optional, Tuple

from sqlalchemy import select, and_, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.post import Post
from app.models.social import Comment, Like, UserFollow
from app.models.user import User
from app.utils.exceptions import (
    AuthorizationError,
    ConflictError,
    EmptyTextError,
    NotFoundError,
    ValidationError,
)
from app.utils.policies import can_delete_comment, is_resource_owner

logger = logging.getLogger(__name__)

MAX_POST_LENGTH = 1000
MAX_COMMENT_LENGTH = 500


def clean_text(text: Optional[str], label: str, limit: int) -> str:
    text = (text or "").strip()
    if not text:
        raise EmptyTextError(f"{label} is required")
    if len(text) > limit:
        raise ValidationError(f"{label} cannot exceed {limit} characters")
    return text


def _post_query():
    return select(Post).options(
        selectinload(Post.author),
        selectinload(Post.likes),
        selectinload(Post.comments).selectinload(Comment.author),
    ).execution_options(populate_existing=True)


class PostService:
    """Posts with their likes and comments."""

    async def get(self, db: AsyncSession, post_id: int) -> Post:
        post = await db.scalar(_post_query().filter(Post.id == post_id))
        if post is None:
            raise NotFoundError("Post not found")
        return post

    async def create(
            self,
            db: AsyncSession,
            author_id: int,
            text: str,
            photo: Optional[bytes] = None,
            content_type: Optional[str] = None
    ) -> Post:
        text = clean_text(text, "Text", MAX_POST_LENGTH)

        post = Post(author_id=author_id, text=text)
        if photo is not None:
            post.photo_data = photo
            post.photo_content_type = content_type
        db.add(post)
        await db.commit()
        await db.refresh(post)

        logger.info(f"User {author_id} created post {post.id}")
        return await self.get(db, post.id)

    async def like(self, db: AsyncSession, actor_id: int, post_id: int) -> Post:
        await self.get(db, post_id)

        existing = await db.scalar(
            select(Like.id).filter(and_(Like.user_id == actor_id, Like.post_id == post_id))
        )
        if existing is not None:
            raise ConflictError("Post already liked")

        db.add(Like(user_id=actor_id, post_id=post_id))
        try:
            await db.commit()
        except IntegrityError:
            # Concurrent like from the same user; the unique pair keeps one row
            await db.rollback()
            raise ConflictError("Post already liked")

        return await self.get(db, post_id)

    async def unlike(self, db: AsyncSession, actor_id: int, post_id: int) -> Post:
        await self.get(db, post_id)

        result = await db.execute(
            delete(Like).where(and_(Like.user_id == actor_id, Like.post_id == post_id))
        )
        if result.rowcount == 0:
            await db.rollback()
            raise ConflictError("Post not liked")
        await db.commit()

        return await self.get(db, post_id)

    async def comment(self, db: AsyncSession, actor_id: int, post_id: int, text: str) -> Post:
        text = clean_text(text, "Comment text", MAX_COMMENT_LENGTH)
        await self.get(db, post_id)

        db.add(Comment(post_id=post_id, user_id=actor_id, text=text))
        await db.commit()

        return await self.get(db, post_id)

    async def delete_comment(self, db: AsyncSession, actor: User, post_id: int, comment_id: int) -> Post:
        post = await self.get(db, post_id)

        comment = next((c for c in post.comments if c.id == comment_id), None)
        if comment is None:
            raise NotFoundError("Comment not found")

        if not can_delete_comment(actor, post, comment):
            raise AuthorizationError("Not authorized to delete this comment")

        await db.execute(delete(Comment).where(Comment.id == comment_id))
        await db.commit()

        return await self.get(db, post_id)

    async def delete(self, db: AsyncSession, actor: User, post_id: int) -> None:
        post = await db.get(Post, post_id)
        if post is None:
            raise NotFoundError("Post not found")

        if not is_resource_owner(actor, post.author_id):
            raise AuthorizationError("Not authorized to delete this post")

        await db.execute(delete(Comment).where(Comment.post_id == post_id))
        await db.execute(delete(Like).where(Like.post_id == post_id))
        await db.execute(delete(Post).where(Post.id == post_id))
        await db.commit()
        db.expunge(post)

        logger.info(f"User {actor.id} deleted post {post_id}")

    async def _page(self, db: AsyncSession, condition, page: int, limit: int) -> Tuple[List[Post], int]:
        total = await db.scalar(select(func.count()).select_from(Post).filter(condition))
        result = await db.execute(
            _post_query()
            .filter(condition)
            .order_by(Post.created_at.desc(), Post.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def feed(self, db: AsyncSession, user_id: int, page: int = 1, limit: int = 10) -> Tuple[List[Post], int]:
        """Posts by ``user_id`` and by everyone it follows, newest first."""
        followed = select(UserFollow.followed_id).filter(UserFollow.follower_id == user_id)
        condition = Post.author_id.in_(followed) | (Post.author_id == user_id)
        return await self._page(db, condition, page, limit)

    async def by_user(self, db: AsyncSession, user_id: int, page: int = 1, limit: int = 10) -> Tuple[List[Post], int]:
        return await self._page(db, Post.author_id == user_id, page, limit)
