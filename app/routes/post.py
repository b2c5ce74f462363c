from fastapi import APIRouter, Depends, HTTPException, Query, Form, File, UploadFile, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.models.post import Post
from app.models.user import User
from app.schemas.common import MessageResponse, paginate
from app.schemas.post import (
    CommentCreate,
    CommentDelete,
    PostAction,
    PostDataResponse,
    PostListResponse,
    to_post_response,
)
from app.services.posts import PostService
from app.utils.exceptions import InternalError, NotFoundError
from app.utils.image_security import ImageSecurityUtils
from config import MAX_POST_PHOTO_SIZE
from dependencies import get_current_user, get_db, logger

router = APIRouter()
post_service = PostService()


async def _feed(db: AsyncSession, current_user: User, page: int, limit: int) -> PostListResponse:
    try:
        posts, total = await post_service.feed(db, current_user.id, page, limit)
        return PostListResponse(
            count=len(posts),
            total=total,
            pagination=paginate(page, limit, total),
            data=[to_post_response(post) for post in posts],
        )
    except Exception as e:
        logger.error(f"Error fetching feed: {str(e)}")
        raise InternalError("Error fetching feed")


@router.get("", response_model=PostListResponse)
async def list_posts(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await _feed(db, current_user, page, limit)


@router.get("/feed", response_model=PostListResponse)
async def newsfeed(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Posts from the current user and everyone they follow, newest first."""
    return await _feed(db, current_user, page, limit)


@router.post("", response_model=PostDataResponse, status_code=status.HTTP_201_CREATED)
async def create_post(
    text: str = Form(""),
    photo: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        photo_data, content_type = await ImageSecurityUtils.read_upload(photo, MAX_POST_PHOTO_SIZE)
        post = await post_service.create(db, current_user.id, text, photo_data, content_type)
        return PostDataResponse(message="Post created successfully", data=to_post_response(post))
    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error creating post: {str(e)}")
        raise InternalError("Error creating post")


@router.put("/like", response_model=PostDataResponse)
async def like_post(
    action: PostAction,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        post = await post_service.like(db, current_user.id, action.post_id)
        return PostDataResponse(message="Post liked successfully", data=to_post_response(post))
    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error liking post: {str(e)}")
        raise InternalError("Error liking post")


@router.put("/unlike", response_model=PostDataResponse)
async def unlike_post(
    action: PostAction,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        post = await post_service.unlike(db, current_user.id, action.post_id)
        return PostDataResponse(message="Post unliked successfully", data=to_post_response(post))
    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error unliking post: {str(e)}")
        raise InternalError("Error unliking post")


@router.put("/comment", response_model=PostDataResponse)
async def comment_post(
    comment: CommentCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        post = await post_service.comment(db, current_user.id, comment.post_id, comment.text)
        return PostDataResponse(message="Comment added successfully", data=to_post_response(post))
    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error adding comment: {str(e)}")
        raise InternalError("Error adding comment")


@router.put("/uncomment", response_model=PostDataResponse)
async def uncomment_post(
    comment: CommentDelete,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        post = await post_service.delete_comment(db, current_user, comment.post_id, comment.comment_id)
        return PostDataResponse(message="Comment removed successfully", data=to_post_response(post))
    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error removing comment: {str(e)}")
        raise InternalError("Error removing comment")


@router.get("/by-user/{user_id}", response_model=PostListResponse)
async def posts_by_user(
    user_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        posts, total = await post_service.by_user(db, user_id, page, limit)
        return PostListResponse(
            count=len(posts),
            total=total,
            pagination=paginate(page, limit, total),
            data=[to_post_response(post) for post in posts],
        )
    except Exception as e:
        logger.error(f"Error fetching posts of user {user_id}: {str(e)}")
        raise InternalError("Error fetching posts")


@router.get("/{post_id}", response_model=PostDataResponse)
async def get_post(
    post_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    post = await post_service.get(db, post_id)
    return PostDataResponse(data=to_post_response(post))


@router.get("/{post_id}/photo")
async def get_post_photo(post_id: int, db: AsyncSession = Depends(get_db)):
    post = await db.get(Post, post_id)
    if not post or post.photo_data is None:
        raise NotFoundError("Photo not found")

    return Response(content=post.photo_data, media_type=post.photo_content_type)


@router.delete("/{post_id}", response_model=MessageResponse)
async def delete_post(
    post_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        await post_service.delete(db, current_user, post_id)
        return MessageResponse(message="Post deleted successfully")
    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error deleting post: {str(e)}")
        raise InternalError("Error deleting post")
