"""
tests/test_tokens.py -- Unit tests for auth/tokens.py.

Covers:
  - TokenCodec round trip: verify(issue(id)) carries the subject
  - 15-minute window: valid just before exp, rejected at and after exp
  - Fail-closed verify: tampered, foreign-key, garbage and empty tokens
  - Determinism under a fixed clock and key
  - Password hashing, reset-token HMAC, cookie extraction
  - Session cookie helpers: Secure flag follows SECURE_COOKIES
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi import Response

from auth import tokens
from auth.tokens import (
    SESSION_COOKIE,
    TokenCodec,
    clear_session_cookie,
    generate_registration_token,
    generate_reset_token,
    hash_password,
    hash_reset_token,
    set_session_cookie,
    token_from_cookies,
    verify_password,
)

KEY = "k" * 48
OTHER_KEY = "z" * 48
T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock:
    """Mutable clock so one codec can be moved through time."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> Clock:
    return Clock(T0)


@pytest.fixture
def codec(clock) -> TokenCodec:
    return TokenCodec(KEY, now=clock)


class TestTokenCodec:
    @pytest.mark.parametrize("user_id", [1, 42, 987654321, "17"])
    def test_round_trip_subject(self, codec: TokenCodec, user_id) -> None:
        check = codec.verify(codec.issue(user_id))
        assert check.valid is True
        assert check.payload["sub"] == str(user_id)

    def test_expiry_is_fifteen_minutes_after_issue(self, codec: TokenCodec) -> None:
        payload = codec.verify(codec.issue(7)).payload
        assert payload["exp"] - payload["iat"] == 900
        assert payload["iat"] == T0.timestamp()

    def test_valid_until_just_before_expiry(self, codec: TokenCodec, clock: Clock) -> None:
        token = codec.issue(7)
        clock.advance(minutes=14, seconds=59)
        assert codec.verify(token).valid is True

    def test_rejected_at_expiry(self, codec: TokenCodec, clock: Clock) -> None:
        token = codec.issue(7)
        clock.advance(minutes=15)
        check = codec.verify(token)
        assert check.valid is False
        assert check.payload is None

    def test_rejected_long_after_expiry(self, codec: TokenCodec, clock: Clock) -> None:
        token = codec.issue(7)
        clock.advance(days=3)
        assert codec.verify(token).valid is False

    def test_tampered_signature_rejected(self, codec: TokenCodec) -> None:
        token = codec.issue(7)
        head, body, sig = token.split(".")
        flipped = ("A" if sig[0] != "A" else "B") + sig[1:]
        assert codec.verify(f"{head}.{body}.{flipped}").valid is False

    def test_foreign_key_rejected(self, codec: TokenCodec, clock: Clock) -> None:
        foreign = TokenCodec(OTHER_KEY, now=clock).issue(7)
        assert codec.verify(foreign).valid is False

    @pytest.mark.parametrize("garbage", ["", None, "not-a-jwt", "a.b.c", "....", "eyJhbGciOiJIUzI1NiJ9"])
    def test_garbage_never_raises(self, codec: TokenCodec, garbage) -> None:
        check = codec.verify(garbage)
        assert check.valid is False
        assert check.payload is None

    def test_deterministic_for_fixed_clock(self, clock: Clock) -> None:
        assert TokenCodec(KEY, now=clock).issue(5) == TokenCodec(KEY, now=clock).issue(5)

    def test_distinct_within_same_second(self, codec: TokenCodec, clock: Clock) -> None:
        first = codec.issue(5)
        clock.advance(milliseconds=250)
        assert codec.issue(5) != first

    def test_expires_at_reads_claim(self, codec: TokenCodec) -> None:
        assert codec.expires_at(codec.issue(3)) == T0 + timedelta(minutes=15)

    def test_expires_at_unreadable(self, codec: TokenCodec) -> None:
        assert codec.expires_at("garbage") is None


class TestPasswords:
    def test_hash_and_verify(self) -> None:
        hashed = hash_password("Correct-horse1")
        assert hashed != "Correct-horse1"
        assert verify_password("Correct-horse1", hashed) is True
        assert verify_password("correct-horse1", hashed) is False

    def test_malformed_hash_is_false(self) -> None:
        assert verify_password("anything", "not-a-bcrypt-hash") is False


class TestOneTimeTokens:
    def test_reset_hash_is_deterministic_and_not_raw(self) -> None:
        raw = generate_reset_token()
        assert hash_reset_token(raw, KEY) == hash_reset_token(raw, KEY)
        assert hash_reset_token(raw, KEY) != raw
        assert len(hash_reset_token(raw, KEY)) == 64

    def test_reset_hash_depends_on_key(self) -> None:
        raw = generate_reset_token()
        assert hash_reset_token(raw, KEY) != hash_reset_token(raw, OTHER_KEY)

    def test_tokens_are_unique(self) -> None:
        assert generate_reset_token() != generate_reset_token()
        assert generate_registration_token() != generate_registration_token()
        assert len(generate_registration_token()) == 40


class TestCookieExtraction:
    def test_present(self) -> None:
        assert token_from_cookies({SESSION_COOKIE: "abc", "other": "x"}) == "abc"

    def test_absent(self) -> None:
        assert token_from_cookies({"other": "x"}) is None

    def test_empty_value_counts_as_absent(self) -> None:
        assert token_from_cookies({SESSION_COOKIE: ""}) is None


class TestSessionCookieHelpers:
    @staticmethod
    def _session_headers(response: Response) -> list[str]:
        return [
            value.decode().lower()
            for name, value in response.raw_headers
            if name == b"set-cookie" and value.startswith(f"{SESSION_COOKIE}=".encode())
        ]

    @pytest.mark.parametrize("secure", [True, False])
    def test_set_follows_secure_setting(self, monkeypatch, secure) -> None:
        monkeypatch.setattr(tokens, "_settings", tokens._settings.model_copy(update={"secure_cookies": secure}))
        response = Response()
        set_session_cookie(response, "abc")
        [header] = self._session_headers(response)
        assert ("secure" in header) is secure
        assert "httponly" in header

    @pytest.mark.parametrize("secure", [True, False])
    def test_clear_follows_secure_setting(self, monkeypatch, secure) -> None:
        monkeypatch.setattr(tokens, "_settings", tokens._settings.model_copy(update={"secure_cookies": secure}))
        response = Response()
        clear_session_cookie(response)
        [header] = self._session_headers(response)
        assert ("secure" in header) is secure
        assert "max-age=0" in header
