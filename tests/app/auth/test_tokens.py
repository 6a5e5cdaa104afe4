from datetime import timedelta
from uuid import uuid4

import pytest
from jose import jwt

from app.auth.tokens import InvalidTokenError, create_access_token, decode_access_token
from app.config import get_settings


def test_round_trip_identity():
    user_id = uuid4()
    token = create_access_token(user_id, "manufacturer", "+919876543210")
    user = decode_access_token(token)
    assert user.user_id == user_id
    assert user.role == "manufacturer"
    assert user.phone_number == "+919876543210"


def test_expired_token_rejected():
    token = create_access_token(uuid4(), "buyer", expires_delta=timedelta(seconds=-5))
    with pytest.raises(InvalidTokenError, match="expired"):
        decode_access_token(token)


def test_wrong_secret_rejected():
    token = jwt.encode({"userId": str(uuid4()), "role": "buyer", "type": "auth"}, "other")
    with pytest.raises(InvalidTokenError):
        decode_access_token(token)


def test_unknown_role_rejected():
    settings = get_settings()
    token = jwt.encode(
        {"userId": str(uuid4()), "role": "admin", "type": "auth"},
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )
    with pytest.raises(InvalidTokenError, match="claims"):
        decode_access_token(token)


def test_non_auth_token_type_rejected():
    settings = get_settings()
    token = jwt.encode(
        {"userId": str(uuid4()), "role": "buyer", "type": "refresh"},
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )
    with pytest.raises(InvalidTokenError):
        decode_access_token(token)


def test_empty_token_rejected():
    with pytest.raises(InvalidTokenError):
        decode_access_token("")
