"""
Authorization predicates.

Each route picks the predicate that matches its own rule.
"""
from app.models.user import User


def is_admin(user: User) -> bool:
    return user.role == "admin"


def is_self(user: User, target_id: int) -> bool:
    return user.id == target_id


def is_self_or_admin(user: User, target_id: int) -> bool:
    return is_self(user, target_id) or is_admin(user)


def is_resource_owner(user: User, owner_id: int) -> bool:
    return user.id == owner_id


def can_delete_comment(user: User, post, comment) -> bool:
    # The post author moderates every comment on it
    return is_resource_owner(user, comment.user_id) or is_resource_owner(user, post.author_id)
