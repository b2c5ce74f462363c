from datetime import datetime, timedelta, timezone
from typing import Optional

import logging
import jwt
from passlib.context import CryptContext

from app.schemas.user import TokenData
from config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
logger = logging.getLogger(__name__)


class TokenError(Exception):
    """Base class for tokens that cannot be turned into an identity."""


class MalformedTokenError(TokenError):
    pass


class TokenExpiredError(TokenError):
    pass


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    if expires_delta is not None:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=int(ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def issue_token(user_id: int, role: str, expires_delta: Optional[timedelta] = None) -> str:
    """Sign a session token for ``user_id`` carrying a snapshot of its role."""
    return create_access_token({"sub": str(user_id), "role": role}, expires_delta=expires_delta)


def decode_access_token(token: str) -> TokenData:
    """
    Verify a session token and return the identity it was issued for.

    Raises:
        TokenExpiredError: the token carries an ``exp`` in the past
        MalformedTokenError: anything else that prevents verification
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError as e:
        raise TokenExpiredError(str(e)) from e
    except jwt.PyJWTError as e:
        raise MalformedTokenError(str(e)) from e

    sub = payload.get("sub")
    if sub is None:
        raise MalformedTokenError("Token has no subject")
    try:
        user_id = int(sub)
    except (TypeError, ValueError) as e:
        raise MalformedTokenError("Token subject is not a user id") from e

    return TokenData(user_id=user_id, role=payload.get("role"))
