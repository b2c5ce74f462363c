from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Form, File, UploadFile
from fastapi.responses import Response
from sqlalchemy import select, func, or_, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.post import Post
from app.models.social import Comment, Like, UserFollow
from app.models.user import User
from app.schemas.common import MessageResponse, paginate
from app.schemas.social import FollowRequest, UnfollowRequest
from app.schemas.user import (
    AdminUserUpdate,
    SuggestionListResponse,
    SuggestionResponse,
    UserDataResponse,
    UserListResponse,
    UserStats,
    UserStatsResponse,
    UserSummaryListResponse,
    check_name,
    check_text_limit,
    to_user_response,
    to_user_summary,
)
from app.services.accounts import commit_unique, find_duplicate
from app.services.social_graph import SocialGraph
from app.utils.exceptions import (
    AuthorizationError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from app.utils.image_security import ImageSecurityUtils
from app.utils.policies import is_self, is_self_or_admin
from config import MAX_PROFILE_PHOTO_SIZE
from dependencies import get_db, get_current_user, require_role, load_user, logger

router = APIRouter()
social_graph = SocialGraph()


@router.get("", response_model=UserListResponse)
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    role: Optional[str] = Query(None, pattern="^(user|admin)$"),
    current_user: User = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db)
):
    """List users with search, role filter and pagination (admin only)."""
    query = select(User)
    if search:
        search_term = f"%{search}%"
        query = query.filter(
            or_(
                User.username.ilike(search_term),
                User.email.ilike(search_term),
                User.first_name.ilike(search_term),
                User.last_name.ilike(search_term),
            )
        )
    if role:
        query = query.filter(User.role == role)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    result = await db.execute(
        query.options(selectinload(User.followers), selectinload(User.following))
        .order_by(User.created_at.desc(), User.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    users = result.scalars().all()

    return UserListResponse(
        data=[to_user_response(user) for user in users],
        total=total,
        pagination=paginate(page, limit, total),
    )


@router.get("/stats/overview", response_model=UserStatsResponse)
async def user_stats(
    current_user: User = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db)
):
    week_ago = datetime.now(timezone.utc) - timedelta(days=7)

    total_users = await db.scalar(select(func.count()).select_from(User))
    active_users = await db.scalar(select(func.count()).select_from(User).filter(User.is_active.is_(True)))
    admin_users = await db.scalar(select(func.count()).select_from(User).filter(User.role == "admin"))
    recent_users = await db.scalar(select(func.count()).select_from(User).filter(User.created_at >= week_ago))

    return UserStatsResponse(
        data=UserStats(
            total_users=total_users,
            active_users=active_users,
            inactive_users=total_users - active_users,
            admin_users=admin_users,
            recent_users=recent_users,
        )
    )


@router.get("/suggestions", response_model=SuggestionListResponse)
async def follow_suggestions(
    limit: int = Query(10, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    suggestions = await social_graph.suggestions(db, current_user.id, limit)
    return SuggestionListResponse(
        data=[
            SuggestionResponse(**to_user_summary(user).dict(), is_following=following)
            for user, following in suggestions
        ]
    )


@router.put("/profile", response_model=UserDataResponse)
async def update_profile_with_photo(
    first_name: Optional[str] = Form(None, alias="firstName"),
    last_name: Optional[str] = Form(None, alias="lastName"),
    about: Optional[str] = Form(None),
    bio: Optional[str] = Form(None),
    photo: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Update own profile from a multipart form, optionally replacing the photo."""
    try:
        try:
            update_data = {
                "first_name": check_name(first_name, "First name", required=True),
                "last_name": check_name(last_name, "Last name", required=True),
                "about": check_text_limit(about, "About"),
                "bio": check_text_limit(bio, "Bio"),
            }
        except ValueError as ve:
            raise ValidationError(str(ve))

        photo_data, content_type = await ImageSecurityUtils.read_upload(photo, MAX_PROFILE_PHOTO_SIZE)
        if photo_data is not None:
            update_data["photo_data"] = photo_data
            update_data["photo_content_type"] = content_type

        for field, value in update_data.items():
            if value is not None:
                setattr(current_user, field, value)

        await db.commit()
        user = await load_user(db, current_user.id)

        return UserDataResponse(message="Profile updated successfully", data=to_user_response(user))

    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error in update_profile_with_photo: {str(e)}")
        raise InternalError("Error updating profile")


@router.put("/follow", response_model=MessageResponse)
async def follow_user(
    follow: FollowRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        await social_graph.follow(db, current_user.id, follow.follow_id)
        return MessageResponse(message="Successfully followed user")
    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error following user: {str(e)}")
        raise InternalError("Error following user")


@router.put("/unfollow", response_model=MessageResponse)
async def unfollow_user(
    unfollow: UnfollowRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        await social_graph.unfollow(db, current_user.id, unfollow.unfollow_id)
        return MessageResponse(message="Successfully unfollowed user")
    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error unfollowing user: {str(e)}")
        raise InternalError("Error unfollowing user")


@router.get("/{user_id}", response_model=UserDataResponse)
async def get_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    user = await load_user(db, user_id)
    if not user:
        raise NotFoundError("User not found")

    if not is_self_or_admin(current_user, user_id):
        raise AuthorizationError("Not authorized to view this user")

    return UserDataResponse(data=to_user_response(user))


@router.put("/{user_id}", response_model=UserDataResponse)
async def update_user(
    user_id: int,
    user_update: AdminUserUpdate,
    current_user: User = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db)
):
    """Update any field of any user, including role and active flag (admin only)."""
    try:
        update_data = user_update.dict(exclude_unset=True)

        email, username = update_data.get("email"), update_data.get("username")
        conflict = await find_duplicate(db, email=email, username=username, exclude_id=user_id)
        if conflict:
            raise conflict

        user = await db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")

        for field, value in update_data.items():
            if value is not None:
                setattr(user, field, value)

        await commit_unique(db, email=email, username=username, exclude_id=user_id)
        user = await load_user(db, user_id)

        return UserDataResponse(message="User updated successfully", data=to_user_response(user))

    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error in update_user: {str(e)}")
        raise InternalError("Error updating user")


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: int,
    current_user: User = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db)
):
    try:
        user = await db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")

        if is_self(current_user, user_id):
            raise ValidationError("Cannot delete your own account")

        # Everything the user owns or touched goes in the same transaction
        own_posts = select(Post.id).filter(Post.author_id == user_id)
        await db.execute(delete(Comment).where(or_(Comment.user_id == user_id, Comment.post_id.in_(own_posts))))
        await db.execute(delete(Like).where(or_(Like.user_id == user_id, Like.post_id.in_(own_posts))))
        await db.execute(delete(Post).where(Post.author_id == user_id))
        await db.execute(
            delete(UserFollow).where(or_(UserFollow.follower_id == user_id, UserFollow.followed_id == user_id))
        )
        await db.execute(delete(User).where(User.id == user_id))
        await db.commit()
        db.expunge(user)

        logger.info(f"Admin {current_user.id} deleted user {user_id}")
        return MessageResponse(message="User deleted successfully")

    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error in delete_user: {str(e)}")
        raise InternalError("Error deleting user")


@router.get("/{user_id}/photo")
async def get_user_photo(user_id: int, db: AsyncSession = Depends(get_db)):
    user = await db.get(User, user_id)
    if not user or user.photo_data is None:
        raise NotFoundError("Photo not found")

    return Response(content=user.photo_data, media_type=user.photo_content_type)


async def _set_active(db: AsyncSession, current_user: User, user_id: int, active: bool) -> MessageResponse:
    verb = "activate" if active else "deactivate"
    try:
        user = await db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")

        if is_self(current_user, user_id):
            raise ValidationError(f"Cannot {verb} your own account")

        user.is_active = active
        await db.commit()

        logger.info(f"Admin {current_user.id} set user {user_id} active={active}")
        return MessageResponse(message=f"User {verb}d successfully")

    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error trying to {verb} user: {str(e)}")
        raise InternalError(f"Error {verb[:-1]}ing user")


@router.put("/{user_id}/activate", response_model=MessageResponse)
async def activate_user(
    user_id: int,
    current_user: User = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db)
):
    return await _set_active(db, current_user, user_id, True)


@router.put("/{user_id}/deactivate", response_model=MessageResponse)
async def deactivate_user(
    user_id: int,
    current_user: User = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db)
):
    return await _set_active(db, current_user, user_id, False)


@router.get("/{user_id}/followers", response_model=UserSummaryListResponse)
async def list_followers(user_id: int, db: AsyncSession = Depends(get_db)):
    if not await db.get(User, user_id):
        raise NotFoundError("User not found")

    followers = await social_graph.followers(db, user_id)
    return UserSummaryListResponse(data=[to_user_summary(user) for user in followers])


@router.get("/{user_id}/following", response_model=UserSummaryListResponse)
async def list_following(user_id: int, db: AsyncSession = Depends(get_db)):
    if not await db.get(User, user_id):
        raise NotFoundError("User not found")

    following = await social_graph.following(db, user_id)
    return UserSummaryListResponse(data=[to_user_summary(user) for user in following])
