"""
auth/tokens.py -- Session tokens, password hashing, one-time tokens, and the session cookie.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry only the subject (user id), the
       issue time and the expiry. TokenCodec.verify() never raises -- any parse
       error, bad signature, or expiry comes back as TokenCheck(valid=False).
       Expiry is checked against the codec's own clock rather than jose's so
       the 15-minute window is testable without sleeping.

  Passwords: bcrypt directly (no passlib wrapper). _DUMMY_HASH enables timing
       equalization in the local credential strategy so response time does not
       reveal whether an email exists [C1].

  One-time tokens: registration tokens are random hex handed to invitees.
       Password-reset tokens are random hex emailed to the user; only
       HMAC-SHA256(SECRET_KEY, raw) is stored, so a database leak does not
       hand out working reset links.

  Cookie: the session token travels exclusively in the httpOnly "jwtToken"
       cookie. There is no bearer-header path.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

import bcrypt
from jose import JWTError, jwt

from core.config import SESSION_LIFETIME_SECONDS, get_settings

logger = logging.getLogger("adminauth.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

SESSION_COOKIE = "jwtToken"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt truncates input beyond 72 bytes; the API models cap passwords well
    below that.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # malformed hash in storage
        return False


# Timing equalization dummy hash [C1]. Computed once at module load so the
# first login attempt is not measurably slower than later ones.
DUMMY_HASH: str = hash_password("adminauth_timing_dummy")


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenCheck:
    valid: bool
    payload: dict | None = None


class TokenCodec:
    """Signs and verifies session tokens.

    The signing key is fixed for the life of the codec; the app builds one
    codec at startup from Settings.secret_key and shares it.

    Usage:
        codec = TokenCodec(secret_key)
        token = codec.issue(42)
        check = codec.verify(token)   # TokenCheck(valid=True, payload={"sub": "42", ...})
    """

    lifetime_seconds = SESSION_LIFETIME_SECONDS

    def __init__(self, secret_key: str, now: Callable[[], datetime] = _utcnow) -> None:
        self._secret_key = secret_key
        self._now = now

    def issue(self, user_id: int | str) -> str:
        """Encode a signed token for user_id that expires 15 minutes from now.

        iat keeps sub-second precision so two tokens issued to the same user in
        the same second are still distinct strings (revocation is keyed on the
        raw token).
        """
        issued_at = self._now().timestamp()
        payload = {
            "sub": str(user_id),
            "iat": issued_at,
            "exp": issued_at + self.lifetime_seconds,
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str | None) -> TokenCheck:
        """Return TokenCheck(valid=True, payload) or TokenCheck(valid=False). Never raises."""
        if not token:
            return TokenCheck(valid=False)
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError:
            return TokenCheck(valid=False)
        subject = payload.get("sub")
        expires_at = payload.get("exp")
        if not subject or not isinstance(expires_at, (int, float)):
            return TokenCheck(valid=False)
        if self._now().timestamp() >= expires_at:
            return TokenCheck(valid=False)
        return TokenCheck(valid=True, payload=payload)

    def expires_at(self, token: str) -> datetime | None:
        """Return the token's expiry without checking the signature, or None if unreadable.

        Used only to stamp revocation records so they can be purged later.
        """
        try:
            claims = jwt.get_unverified_claims(token)
        except JWTError:
            return None
        exp = claims.get("exp")
        if not isinstance(exp, (int, float)):
            return None
        return datetime.fromtimestamp(exp, tz=timezone.utc)


# ---------------------------------------------------------------------------
# One-time tokens (registration, password reset)
# ---------------------------------------------------------------------------


def generate_registration_token() -> str:
    """Random 160-bit token handed to an invited administrator."""
    return secrets.token_hex(20)


def generate_reset_token() -> str:
    """Random 256-bit token emailed to a user who forgot their password."""
    return secrets.token_hex(32)


def hash_reset_token(raw_token: str, secret_key: str) -> str:
    """Return HMAC-SHA256(secret_key, raw_token) as hex.

    Deterministic, so the store can look the user up by hash in O(1).
    """
    return hmac.new(
        secret_key.encode(),
        raw_token.encode(),
        hashlib.sha256,
    ).hexdigest()


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def token_from_cookies(cookies: Mapping[str, str]) -> str | None:
    """Extract the session token from parsed request cookies. Empty values count as absent."""
    token = cookies.get(SESSION_COOKIE)
    return token or None


def set_session_cookie(response, token: str) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST (CSRF mitigation).
    secure: only sent over HTTPS when SECURE_COOKIES=true (production).
    max_age: 900 s, the same window as the token itself.
    """
    response.set_cookie(
        SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=_settings.token_expire_seconds,
    )


def clear_session_cookie(response) -> None:
    """Expire the session cookie and the legacy signature companion cookie."""
    response.delete_cookie(SESSION_COOKIE, httponly=True, samesite="lax", secure=_settings.secure_cookies)
    response.delete_cookie(f"{SESSION_COOKIE}.sig")
