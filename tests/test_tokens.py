"""
tests/test_tokens.py -- Unit tests for auth/tokens.py.

No database needed except for authenticate_user, which uses a throwaway
in-memory UserStore.
"""

from __future__ import annotations

import time

import pytest
from jose import jwt

from auth.models import User
from auth.store import UserStore
from auth.tokens import (
    authenticate_user,
    create_access_token,
    decode_access_token,
    generate_opaque_token,
    hash_password,
    hash_token,
    password_problems,
    token_expiry,
    token_matches,
    verify_password,
)


class TestPasswordHashing:
    def test_hash_and_verify(self) -> None:
        hashed = hash_password("Str0ng!pass")
        assert hashed != "Str0ng!pass"
        assert verify_password("Str0ng!pass", hashed)
        assert not verify_password("wrong", hashed)

    def test_verify_garbage_hash_returns_false(self) -> None:
        assert verify_password("anything", "not-a-bcrypt-hash") is False


class TestPasswordProblems:
    def test_strong_password_has_no_problems(self) -> None:
        assert password_problems("Str0ng!pass") == []

    @pytest.mark.parametrize(
        "password, fragment",
        [
            ("Sh0rt!", "at least 8"),
            ("lower0nly!", "uppercase"),
            ("UPPER0NLY!", "lowercase"),
            ("NoDigits!!", "digit"),
            ("NoSpecial1", "special"),
            ("Aa1!" + "x" * 96, "at most 72"),
            ("Aa1!" + "\u0111" * 35, "at most 72"),
        ],
    )
    def test_each_rule_reported(self, password: str, fragment: str) -> None:
        problems = password_problems(password)
        assert len(problems) == 1
        assert fragment in problems[0]


class TestAccessTokens:
    def test_round_trip_claims(self) -> None:
        token = create_access_token(7, "alice", "editor", token_version=3, expire_seconds=60)
        payload = decode_access_token(token)
        assert payload is not None
        assert payload["sub"] == "alice"
        assert payload["user_id"] == 7
        assert payload["role"] == "editor"
        assert payload["ver"] == 3
        assert len(payload["jti"]) == 32

    def test_each_token_has_unique_jti(self) -> None:
        a = decode_access_token(create_access_token(1, "a", "customer"))
        b = decode_access_token(create_access_token(1, "a", "customer"))
        assert a["jti"] != b["jti"]

    def test_tampered_token_rejected(self) -> None:
        token = create_access_token(1, "a", "customer")
        assert decode_access_token(token[:-2] + ("AA" if token[-2:] != "AA" else "BB")) is None

    def test_wrong_key_rejected(self) -> None:
        forged = jwt.encode({"user_id": 1, "role": "admin", "jti": "x", "exp": int(time.time()) + 60}, "k" * 40)
        assert decode_access_token(forged) is None

    def test_expired_token_rejected(self) -> None:
        token = create_access_token(1, "a", "customer", expire_seconds=1)
        time.sleep(2)
        assert decode_access_token(token) is None

    def test_token_expiry_is_aware(self) -> None:
        payload = decode_access_token(create_access_token(1, "a", "customer", expire_seconds=60))
        assert token_expiry(payload).tzinfo is not None


class TestOpaqueTokens:
    def test_generate_is_64_hex(self) -> None:
        raw = generate_opaque_token()
        assert len(raw) == 64
        int(raw, 16)

    def test_hash_is_deterministic_and_not_raw(self) -> None:
        raw = generate_opaque_token()
        assert hash_token(raw) == hash_token(raw)
        assert hash_token(raw) != raw

    def test_token_matches(self) -> None:
        raw = generate_opaque_token()
        assert token_matches(raw, hash_token(raw))
        assert not token_matches(generate_opaque_token(), hash_token(raw))


class TestAuthenticateUser:
    @pytest.fixture(scope="class")
    def store(self):
        store = UserStore(db_url="sqlite:///:memory:")
        store.create_user(
            User(username="carol", email="Carol@Example.com", hashed_password=hash_password("Car0l!pass"))
        )
        store.create_user(
            User(
                username="dave",
                email="dave@example.com",
                hashed_password=hash_password("Dav3!pass"),
                is_active=False,
            )
        )
        yield store
        store.close()

    def test_by_username(self, store) -> None:
        assert authenticate_user(store, "carol", "Car0l!pass").username == "carol"

    def test_by_email_case_insensitive(self, store) -> None:
        assert authenticate_user(store, "carol@example.com", "Car0l!pass").username == "carol"

    def test_wrong_password(self, store) -> None:
        assert authenticate_user(store, "carol", "nope") is None

    def test_unknown_user(self, store) -> None:
        assert authenticate_user(store, "nobody", "Car0l!pass") is None

    def test_inactive_user(self, store) -> None:
        assert authenticate_user(store, "dave", "Dav3!pass") is None
