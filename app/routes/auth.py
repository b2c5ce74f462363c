from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.models.user import User
from app.schemas.common import MessageResponse
from app.schemas.user import (
    UserCreate,
    UserLogin,
    ProfileUpdate,
    PasswordChange,
    AuthResponse,
    CurrentUserResponse,
    to_user_response,
)
from app.services.accounts import commit_unique, find_duplicate
from app.utils.exceptions import AuthenticationError, InternalError, ValidationError
from app.utils.security import get_password_hash, verify_password, issue_token
from dependencies import get_current_user, get_db, load_user, logger

router = APIRouter()


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register_user(
    user: UserCreate,
    db: AsyncSession = Depends(get_db)
):
    """Register a new account and sign a token for it."""
    try:
        conflict = await find_duplicate(db, email=user.email, username=user.username)
        if conflict:
            raise conflict

        db_user = User(
            username=user.username,
            email=user.email,
            password_hash=get_password_hash(user.password),
            first_name=user.first_name,
            last_name=user.last_name,
            role="user",
            is_active=True,
        )
        db.add(db_user)
        await commit_unique(db, email=user.email, username=user.username)

        db_user = await load_user(db, db_user.id)
        access_token = issue_token(db_user.id, db_user.role)
        logger.info(f"Registered user {db_user.id} ({db_user.username})")

        return AuthResponse(
            message="User registered successfully",
            token=access_token,
            user=to_user_response(db_user),
        )

    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error in register_user: {str(e)}")
        raise InternalError("Error registering user")


@router.post("/login", response_model=AuthResponse)
async def login_for_access_token(
    user_login: UserLogin,
    db: AsyncSession = Depends(get_db)
):
    user = await db.scalar(select(User).filter(User.email == user_login.email))
    if not user:
        raise AuthenticationError("Invalid credentials")

    if not user.is_active:
        raise AuthenticationError("Account is deactivated")

    if not verify_password(user_login.password, user.password_hash):
        raise AuthenticationError("Invalid credentials")

    user = await load_user(db, user.id)
    access_token = issue_token(user.id, user.role)

    return AuthResponse(
        message="Login successful",
        token=access_token,
        user=to_user_response(user),
    )


@router.get("/me", response_model=CurrentUserResponse)
async def read_users_me(current_user: User = Depends(get_current_user)):
    """Get current user profile."""
    return CurrentUserResponse(user=to_user_response(current_user))


@router.put("/profile", response_model=CurrentUserResponse)
async def update_profile(
    profile: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        update_data = profile.dict(exclude_unset=True)

        email = update_data.get("email")
        conflict = await find_duplicate(db, email=email, exclude_id=current_user.id)
        if conflict:
            raise conflict

        for field, value in update_data.items():
            if value is not None:
                setattr(current_user, field, value)

        await commit_unique(db, email=email, exclude_id=current_user.id)
        user = await load_user(db, current_user.id)

        return CurrentUserResponse(message="Profile updated successfully", user=to_user_response(user))

    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error in update_profile: {str(e)}")
        raise InternalError("Error updating profile")


@router.put("/password", response_model=MessageResponse)
async def change_password(
    passwords: PasswordChange,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        if not verify_password(passwords.current_password, current_user.password_hash):
            raise ValidationError("Current password is incorrect")

        current_user.password_hash = get_password_hash(passwords.new_password)
        await db.commit()
        logger.info(f"User {current_user.id} changed password")

        return MessageResponse(message="Password changed successfully")

    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error in change_password: {str(e)}")
        raise InternalError("Error changing password")
