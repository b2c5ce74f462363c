import logging
from typing import Any, Dict, Hashable, Optional, Set

import httpx
from pydantic import BaseModel

from app.client.session import SessionManager, error_message

logger = logging.getLogger(__name__)


class ApiResult(BaseModel):
    success: bool
    data: Any = None
    error: Optional[str] = None
    skipped: bool = False


class SocialApi:
    """
    Posts and follow actions on behalf of the signed in user.

    A request whose key (action plus target) is already in flight is not sent
    again; the caller gets a ``skipped`` result instead. This is what keeps a
    double click on "like" from firing two requests.
    """

    def __init__(self, session: SessionManager):
        self.session = session
        self._in_flight: Set[Hashable] = set()

    def is_pending(self, action: str, target: Any) -> bool:
        return (action, target) in self._in_flight

    async def _send(self, key, label: str, method: str, path: str, **kwargs) -> ApiResult:
        if key in self._in_flight:
            logger.debug(f"Skipping duplicate {label} request for {key[1]}")
            return ApiResult(success=False, skipped=True, error="Request already in progress")

        self._in_flight.add(key)
        try:
            response = await self.session.client.request(method, path, **kwargs)
            response.raise_for_status()
            body = response.json() if response.content else {}
        except httpx.HTTPError as e:
            logger.warning(f"{label} failed: {str(e)}")
            return ApiResult(success=False, error=error_message(e, f"Failed to {label}. Please try again."))
        finally:
            self._in_flight.discard(key)

        return ApiResult(success=True, data=body.get("data"))

    async def like(self, post_id: int) -> ApiResult:
        return await self._send(("like", post_id), "like post", "PUT", "/posts/like", json={"postId": post_id})

    async def unlike(self, post_id: int) -> ApiResult:
        # Shares the key with like so a toggle cannot overlap itself
        return await self._send(("like", post_id), "unlike post", "PUT", "/posts/unlike", json={"postId": post_id})

    async def comment(self, post_id: int, text: str) -> ApiResult:
        return await self._send(
            ("comment", post_id), "add comment", "PUT", "/posts/comment", json={"postId": post_id, "text": text}
        )

    async def uncomment(self, post_id: int, comment_id: int) -> ApiResult:
        return await self._send(
            ("uncomment", comment_id),
            "delete comment",
            "PUT",
            "/posts/uncomment",
            json={"postId": post_id, "commentId": comment_id},
        )

    async def create_post(self, text: str, photo: Optional[bytes] = None, content_type: str = "image/jpeg") -> ApiResult:
        files: Optional[Dict[str, Any]] = None
        if photo is not None:
            files = {"photo": ("photo", photo, content_type)}
        return await self._send(("create_post", None), "create post", "POST", "/posts", data={"text": text}, files=files)

    async def delete_post(self, post_id: int) -> ApiResult:
        return await self._send(("delete_post", post_id), "delete post", "DELETE", f"/posts/{post_id}")

    async def follow(self, user_id: int) -> ApiResult:
        return await self._send(("follow", user_id), "follow user", "PUT", "/users/follow", json={"followId": user_id})

    async def unfollow(self, user_id: int) -> ApiResult:
        return await self._send(
            ("follow", user_id), "unfollow user", "PUT", "/users/unfollow", json={"unfollowId": user_id}
        )

    async def suggestions(self, limit: int = 10) -> ApiResult:
        return await self._send(
            ("suggestions", limit), "load suggestions", "GET", "/users/suggestions", params={"limit": limit}
        )
