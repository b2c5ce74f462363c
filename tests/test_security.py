from datetime import timedelta

import jwt
import pytest

from app.utils.security import (
    MalformedTokenError,
    TokenExpiredError,
    create_access_token,
    decode_access_token,
    get_password_hash,
    issue_token,
    verify_password,
)
from config import SECRET_KEY, ALGORITHM


def test_issued_token_resolves_to_identity():
    token = issue_token(42, "admin")

    token_data = decode_access_token(token)

    assert token_data.user_id == 42
    assert token_data.role == "admin"


def test_expired_token_is_rejected_even_with_valid_signature():
    token = issue_token(1, "user", expires_delta=timedelta(seconds=-5))

    with pytest.raises(TokenExpiredError):
        decode_access_token(token)


def test_tampered_token_is_malformed():
    header, payload, _ = issue_token(1, "user").split(".")
    foreign_signature = issue_token(2, "user").split(".")[2]
    forged = jwt.encode({"sub": "1", "role": "admin"}, "a-different-secret-of-reasonable-length", algorithm=ALGORITHM)

    with pytest.raises(MalformedTokenError):
        decode_access_token(forged)
    with pytest.raises(MalformedTokenError):
        decode_access_token(f"{header}.{payload}.{foreign_signature}")
    with pytest.raises(MalformedTokenError):
        decode_access_token("not-a-token")


def test_token_without_numeric_subject_is_malformed():
    no_sub = create_access_token({"role": "user"})
    bad_sub = jwt.encode({"sub": "alice"}, SECRET_KEY, algorithm=ALGORITHM)

    with pytest.raises(MalformedTokenError):
        decode_access_token(no_sub)
    with pytest.raises(MalformedTokenError):
        decode_access_token(bad_sub)


def test_password_hash_round_trip():
    hashed = get_password_hash("secret1")

    assert hashed != "secret1"
    assert verify_password("secret1", hashed)
    assert not verify_password("secret2", hashed)
