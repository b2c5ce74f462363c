from datetime import datetime
from typing import List, Optional

from app.schemas.common import CamelModel, MessageResponse, Pagination
from app.schemas.user import UserSummary, to_user_summary


class PostAction(CamelModel):
    post_id: int


class CommentCreate(PostAction):
    text: str


class CommentDelete(PostAction):
    comment_id: int


class CommentResponse(CamelModel):
    id: int
    text: str
    posted_by: UserSummary
    created_at: Optional[datetime] = None


class PostResponse(CamelModel):
    id: int
    text: str
    has_photo: bool
    posted_by: UserSummary
    likes: List[int]
    comments: List[CommentResponse]
    like_count: int
    comment_count: int
    created_at: Optional[datetime] = None


class PostDataResponse(MessageResponse):
    data: PostResponse


class PostListResponse(MessageResponse):
    count: int
    total: int
    pagination: Pagination
    data: List[PostResponse]


def to_post_response(post) -> PostResponse:
    """Serialize a post loaded with author, likes and comment authors."""
    return PostResponse(
        id=post.id,
        text=post.text,
        has_photo=post.photo_data is not None,
        posted_by=to_user_summary(post.author),
        likes=post.like_ids,
        comments=[
            CommentResponse(
                id=comment.id,
                text=comment.text,
                posted_by=to_user_summary(comment.author),
                created_at=comment.created_at,
            )
            for comment in post.comments
        ],
        like_count=len(post.likes),
        comment_count=len(post.comments),
        created_at=post.created_at,
    )
