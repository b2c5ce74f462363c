from app.schemas.common import CamelModel


class FollowRequest(CamelModel):
    follow_id: int


class UnfollowRequest(CamelModel):
    unfollow_id: int
