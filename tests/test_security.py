import pytest

from expense_tracker.config import AppConfig
from expense_tracker.exceptions import AuthenticationError
from expense_tracker.security import (
    create_access_token, decode_access_token, generate_reset_token,
    hash_password, hash_reset_token, verify_password
)


def test_password_hash_roundtrip():
    hashed = hash_password('secret123')
    assert hashed != 'secret123'
    assert verify_password('secret123', hashed)
    assert not verify_password('wrong', hashed)
    assert not verify_password('secret123', 'not-a-bcrypt-hash')


def test_access_token_carries_user_id():
    cfg = AppConfig(JWT_SECRET='s3cret')
    token = create_access_token(42, cfg)
    assert decode_access_token(token, cfg) == 42


def test_token_signed_with_other_secret_rejected():
    token = create_access_token(1, AppConfig(JWT_SECRET='one'))
    with pytest.raises(AuthenticationError):
        decode_access_token(token, AppConfig(JWT_SECRET='two'))


def test_expired_and_missing_tokens_rejected():
    cfg = AppConfig(JWT_SECRET='s3cret', JWT_EXPIRES_DAYS=-1)
    with pytest.raises(AuthenticationError):
        decode_access_token(create_access_token(1, cfg), cfg)
    with pytest.raises(AuthenticationError):
        decode_access_token(None, cfg)
    with pytest.raises(AuthenticationError):
        decode_access_token('garbage', cfg)


def test_reset_token_only_hash_matches():
    token, token_hash = generate_reset_token()
    assert len(token) == 40
    assert token_hash == hash_reset_token(token)
    assert token_hash != token
