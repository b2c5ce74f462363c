import re
from datetime import datetime
from typing import List, Optional

from email_validator import validate_email, EmailNotValidError
from pydantic import BaseModel, validator

from app.schemas.common import CamelModel, MessageResponse, Pagination

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")
ROLES = ("user", "admin")


def check_email(value: str) -> str:
    try:
        return validate_email(value.strip(), check_deliverability=False).normalized
    except EmailNotValidError:
        raise ValueError("Email is invalid")


def check_username(value: str) -> str:
    value = value.strip()
    if not 3 <= len(value) <= 30:
        raise ValueError("Username must be between 3 and 30 characters")
    if not USERNAME_PATTERN.match(value):
        raise ValueError("Username can only contain letters, numbers, and underscores")
    return value


def check_name(value: Optional[str], label: str, required: bool) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if required and not value:
        raise ValueError(f"{label} is required")
    if len(value) > 50:
        raise ValueError(f"{label} cannot exceed 50 characters")
    return value


def check_text_limit(value: Optional[str], label: str, limit: int = 500) -> Optional[str]:
    if value is not None and len(value) > limit:
        raise ValueError(f"{label} cannot exceed {limit} characters")
    return value


class UserCreate(CamelModel):
    username: str
    email: str
    password: str
    first_name: str
    last_name: str

    @validator("username")
    def validate_username(cls, v):
        return check_username(v)

    @validator("email")
    def validate_email_address(cls, v):
        return check_email(v)

    @validator("password")
    def validate_password(cls, v):
        if len(v) < 6:
            raise ValueError("Password must be at least 6 characters")
        return v

    @validator("first_name")
    def validate_first_name(cls, v):
        return check_name(v, "First name", required=True)

    @validator("last_name")
    def validate_last_name(cls, v):
        return check_name(v, "Last name", required=True)


class UserLogin(CamelModel):
    email: str
    password: str

    @validator("email")
    def validate_email_address(cls, v):
        if not v.strip():
            raise ValueError("Email is required")
        return check_email(v)

    @validator("password")
    def validate_password(cls, v):
        if not v:
            raise ValueError("Password is required")
        return v


class ProfileUpdate(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    bio: Optional[str] = None
    about: Optional[str] = None

    @validator("first_name")
    def validate_first_name(cls, v):
        return check_name(v, "First name", required=True)

    @validator("last_name")
    def validate_last_name(cls, v):
        return check_name(v, "Last name", required=True)

    @validator("email")
    def validate_email_address(cls, v):
        return check_email(v) if v is not None else v

    @validator("bio")
    def validate_bio(cls, v):
        return check_text_limit(v, "Bio")

    @validator("about")
    def validate_about(cls, v):
        return check_text_limit(v, "About")


class AdminUserUpdate(ProfileUpdate):
    username: Optional[str] = None
    role: Optional[str] = None
    is_active: Optional[bool] = None

    @validator("username")
    def validate_username(cls, v):
        return check_username(v) if v is not None else v

    @validator("role")
    def validate_role(cls, v):
        if v is not None and v not in ROLES:
            raise ValueError("Role must be either user or admin")
        return v


class PasswordChange(CamelModel):
    current_password: str
    new_password: str

    @validator("current_password")
    def validate_current_password(cls, v):
        if not v:
            raise ValueError("Current password is required")
        return v

    @validator("new_password")
    def validate_new_password(cls, v):
        if not v:
            raise ValueError("New password is required")
        if len(v) < 6:
            raise ValueError("Password must be at least 6 characters")
        return v


class UserSummary(CamelModel):
    id: int
    username: str
    first_name: str
    last_name: str
    has_photo: bool = False


class UserResponse(UserSummary):
    email: str
    role: str
    is_active: bool
    bio: Optional[str] = None
    about: Optional[str] = None
    followers: List[int] = []
    following: List[int] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SuggestionResponse(UserSummary):
    is_following: bool


class AuthResponse(MessageResponse):
    token: str
    user: UserResponse


class CurrentUserResponse(MessageResponse):
    user: UserResponse


class UserDataResponse(MessageResponse):
    data: UserResponse


class UserListResponse(MessageResponse):
    data: List[UserResponse]
    total: int
    pagination: Pagination


class UserSummaryListResponse(MessageResponse):
    data: List[UserSummary]


class SuggestionListResponse(MessageResponse):
    data: List[SuggestionResponse]


class UserStats(CamelModel):
    total_users: int
    active_users: int
    inactive_users: int
    admin_users: int
    recent_users: int


class UserStatsResponse(MessageResponse):
    data: UserStats


class TokenData(BaseModel):
    user_id: Optional[int] = None
    role: Optional[str] = None


def to_user_summary(user) -> UserSummary:
    return UserSummary(
        id=user.id,
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
        has_photo=user.photo_data is not None,
    )


def to_user_response(user) -> UserResponse:
    """Serialize a user loaded with both follow collections; never includes the password."""
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        role=user.role,
        is_active=user.is_active,
        bio=user.bio,
        about=user.about,
        has_photo=user.photo_data is not None,
        followers=user.follower_ids,
        following=user.following_ids,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )
