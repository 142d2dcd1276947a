"""Unit tests for password hashing, strength rules and JWTs."""

import uuid

import pytest
from libs.auth.models import AuthUser
from libs.auth.security import (
    create_access_token,
    create_refresh_token,
    create_token_pair,
    decode_access_token,
    decode_refresh_token,
    generate_one_time_token,
    hash_one_time_token,
    hash_password,
    password_strength_errors,
    verify_password,
)
from libs.common.errors import AuthenticationError


@pytest.mark.unit
def test_hash_and_verify_password():
    hashed = hash_password("Brew#Mocha42")

    assert hashed != "Brew#Mocha42"
    assert verify_password("Brew#Mocha42", hashed)
    assert not verify_password("Brew#Mocha43", hashed)


@pytest.mark.unit
def test_verify_password_without_hash_is_false():
    assert not verify_password("anything", None)
    assert not verify_password("anything", "not-a-bcrypt-hash")


@pytest.mark.unit
def test_strong_password_has_no_errors():
    assert password_strength_errors("Brew#Mocha42") == []


@pytest.mark.unit
@pytest.mark.parametrize(
    "password, fragment",
    [
        ("Sh0rt!", "at least 8 characters"),
        ("alllower#42", "uppercase"),
        ("ALLUPPER#42", "lowercase"),
        ("NoDigits#here", "number"),
        ("NoSpecial42x", "special character"),
        ("MyPassword#42", "common words"),
    ],
)
def test_weak_passwords_report_each_rule(password, fragment):
    errors = password_strength_errors(password)

    assert any(fragment in error for error in errors)


@pytest.mark.unit
def test_one_time_token_hash_is_stable():
    token = generate_one_time_token()

    assert len(token) == 64
    assert hash_one_time_token(token) == hash_one_time_token(token)
    assert hash_one_time_token(token) != token


@pytest.mark.unit
def test_access_token_round_trip_carries_role():
    user_id = uuid.uuid4()
    token = create_access_token(user_id, "barista@coffeetea.vn", "STAFF")

    payload = decode_access_token(token)
    user = AuthUser(**payload)

    assert user.user_id == user_id
    assert user.role == "STAFF"
    assert user.is_staff
    assert not user.is_admin


@pytest.mark.unit
def test_refresh_token_is_not_an_access_token():
    token = create_refresh_token(uuid.uuid4())

    with pytest.raises(AuthenticationError):
        decode_access_token(token)
    assert decode_refresh_token(token)["type"] == "refresh"


@pytest.mark.unit
def test_tampered_token_rejected():
    token = create_access_token(uuid.uuid4(), "a@coffeetea.vn", "CUSTOMER")

    with pytest.raises(AuthenticationError) as exc_info:
        decode_access_token(token[:-4] + "abcd")

    assert exc_info.value.code == "INVALID_TOKEN"


@pytest.mark.unit
def test_token_pair_shape():
    pair = create_token_pair(uuid.uuid4(), "a@coffeetea.vn", "CUSTOMER")

    assert pair["token_type"] == "bearer"
    assert pair["expires_in"] == 15 * 60
    assert pair["access_token"] != pair["refresh_token"]
