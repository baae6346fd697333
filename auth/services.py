"""
auth/services.py -- Session, registration and password-reset services.

Each service declares what it needs in its constructor; nothing reaches for a
global. build_services() wires one ServiceRegistry at startup and the API
stores it on app.state.services.

  AuthenticationService -- login (via a CredentialStrategy), session issue,
      renew, is_authenticated, logout. Emits admin.auth.success / error.
  RegistrationService   -- invitations, invited registration, and the
      one-time super-admin bootstrap.
  PasswordResetService  -- forgot / reset password. forgot_password() only
      schedules work, so its caller learns nothing about the email.

Every service raises AuthError subclasses for user-facing failures. The one
exception is FatalConfigError from register_super_admin(), which is left to
propagate to the generic handler on purpose.

Revocation: renew() and is_authenticated() consult the RevocationStore, so a
logged-out token is dead immediately rather than at its natural expiry.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import (
    AuthSystemError,
    Conflict,
    CredentialBackendError,
    CredentialError,
    FatalConfigError,
    InvalidInput,
    InvalidResetToken,
    InvalidToken,
    MissingToken,
    NotFound,
)
from auth.mailer import LogMailer, Mailer
from auth.models import AuthEvent, PublicUserInfo, User, sanitize_user
from auth.store import RevocationStore, RoleStore, UserStore
from auth.strategies import CredentialStrategy, Credentials, build_strategy
from auth.tokens import (
    TokenCodec,
    generate_registration_token,
    generate_reset_token,
    hash_password,
    hash_reset_token,
)
from core.config import Settings
from core.events import EventHub, EventTypes, Telemetry

logger = logging.getLogger("adminauth.auth")

Scheduler = Callable[..., object]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SessionGrant:
    """A sanitized user plus the session token issued for them."""

    user: dict
    token: str


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class AuthenticationService:
    def __init__(
        self,
        strategy: CredentialStrategy,
        codec: TokenCodec,
        revocations: RevocationStore,
        events: EventHub,
    ) -> None:
        self._strategy = strategy
        self._codec = codec
        self._revocations = revocations
        self._events = events

    def login(self, credentials: Credentials) -> SessionGrant:
        """Check credentials and open a session.

        Start -> CredentialCheck -> Authenticated | Rejected | SystemError.
        Rejected raises CredentialError (400); SystemError raises
        AuthSystemError (500). Both emit admin.auth.error first.
        """
        try:
            verification = self._strategy.verify(credentials)
        except CredentialBackendError as exc:
            logger.exception("Credential check failed (provider=%s)", self._strategy.name)
            self._emit("failure", credentials.email, reason=str(exc))
            raise AuthSystemError("Authentication is temporarily unavailable.") from exc

        if not verification.ok:
            self._emit("failure", credentials.email, reason=verification.reason)
            raise CredentialError(verification.reason or "Invalid credentials")

        user = verification.user
        self._emit("success", user.email)
        return self.grant(user)

    def grant(self, user: User) -> SessionGrant:
        """Issue a session for a user whose identity is already established."""
        return SessionGrant(user=sanitize_user(user), token=self.issue_session(user))

    def issue_session(self, user: User) -> str:
        return self._codec.issue(user.id)

    def renew(self, token: str | None) -> str:
        """Issue a fresh token for the subject of a still-valid token. No credential check."""
        if not token:
            raise MissingToken("Missing token")
        check = self._codec.verify(token)
        if not check.valid or self._revocations.is_revoked(token):
            raise InvalidToken("Invalid token")
        return self._codec.issue(check.payload["sub"])

    def is_authenticated(self, token: str | None) -> bool:
        if not token:
            return False
        if not self._codec.verify(token).valid:
            return False
        return not self._revocations.is_revoked(token)

    def logout(self, token: str | None) -> None:
        """Revoke token. Idempotent; revoking an unreadable token is harmless."""
        if not token:
            raise MissingToken("Missing token")
        expires_at = self._codec.expires_at(token) or _utcnow() + timedelta(seconds=self._codec.lifetime_seconds)
        self._revocations.revoke(token, expires_at=expires_at)

    def _emit(self, kind: str, actor: str | None, reason: str | None = None) -> None:
        event = AuthEvent(
            kind=kind,
            actor=actor,
            provider=self._strategy.name,
            timestamp=_utcnow().isoformat(),
            reason=reason,
        )
        name = EventTypes.AUTH_SUCCESS if kind == "success" else EventTypes.AUTH_ERROR
        self._events.emit(name, event)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class RegistrationService:
    def __init__(
        self,
        users: UserStore,
        roles: RoleStore,
        telemetry: Telemetry,
        bootstrap_lock: threading.Lock | None = None,
    ) -> None:
        self._users = users
        self._roles = roles
        self._telemetry = telemetry
        self._bootstrap_lock = bootstrap_lock or threading.Lock()

    def invite(
        self,
        email: str,
        firstname: str | None = None,
        lastname: str | None = None,
        roles: tuple[int, ...] = (),
    ) -> tuple[User, str]:
        """Create an inactive pending account and return it with its registration token."""
        registration_token = generate_registration_token()
        pending = User(
            email=email,
            firstname=firstname,
            lastname=lastname,
            roles=list(roles),
            is_active=False,
            registration_token=registration_token,
        )
        try:
            user_id = self._users.create_user(pending)
        except IntegrityError as exc:
            raise Conflict("A user with that email already exists.") from exc
        return self._users.get_by_id(user_id), registration_token

    def registration_info(self, registration_token: str | None) -> PublicUserInfo:
        user = self._users.get_by_registration_token(registration_token) if registration_token else None
        if user is None:
            raise NotFound("Invalid registrationToken")
        return PublicUserInfo(email=user.email, firstname=user.firstname, lastname=user.lastname)

    def register_invited(self, registration_token: str, firstname: str, lastname: str, password: str) -> User:
        """Turn a pending invitation into an active account."""
        user = self._users.get_by_registration_token(registration_token)
        if user is None:
            raise InvalidInput("Invalid registration info")
        consumed = self._users.consume_token(
            user.id,
            "registration_token",
            registration_token,
            firstname=firstname,
            lastname=lastname,
            hashed_password=hash_password(password),
            is_active=True,
            registration_token=None,
        )
        if not consumed:
            # another request used the same invitation first
            raise InvalidInput("Invalid registration info")
        return self._users.get_by_id(user.id)

    def register_super_admin(
        self,
        email: str,
        firstname: str,
        lastname: str,
        password: str,
        username: str | None = None,
    ) -> User:
        """Create the first administrator with the super-admin role.

        Guarded twice: the process lock serializes exists-then-create, and the
        store's single-row claim turns a cross-process race into IntegrityError.
        A missing super-admin role raises FatalConfigError and is never caught.
        """
        hashed = hash_password(password)  # outside the lock; bcrypt is slow
        with self._bootstrap_lock:
            if self._users.exists():
                raise Conflict("You cannot register a new super admin")

            role = self._roles.get_super_admin()
            if role is None:
                raise FatalConfigError("Cannot register the first admin because the super admin role doesn't exist.")

            admin = User(
                email=email,
                username=username,
                firstname=firstname,
                lastname=lastname,
                hashed_password=hashed,
                is_active=True,
                registration_token=None,
            )
            try:
                user_id = self._users.create_super_admin(admin, role.id)
            except IntegrityError as exc:
                raise Conflict("You cannot register a new super admin") from exc

        logger.info("First super admin created (user id=%s)", user_id)
        self._telemetry.send("didCreateFirstAdmin", once=True)
        return self._users.get_by_id(user_id)


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


class PasswordResetService:
    def __init__(
        self,
        users: UserStore,
        mailer: Mailer,
        telemetry: Telemetry,
        admin_url: str,
        token_ttl_seconds: int,
        secret_key: str,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._users = users
        self._mailer = mailer
        self._telemetry = telemetry
        self._secret_key = secret_key
        self._admin_url = admin_url.rstrip("/")
        self._token_ttl = timedelta(seconds=token_ttl_seconds)
        self._now = now

    def forgot_password(self, email: str, schedule: Scheduler) -> None:
        """Hand the reset email to schedule and return at once.

        The caller's answer is the same whether or not the account exists, and
        whether or not delivery later fails.
        """
        schedule(self._send_reset_detached, email)

    def send_reset_email(self, email: str) -> bool:
        """Store a fresh reset token for an active user and mail the link.

        Returns False when there is no active account for email.
        """
        user = self._users.get_by_email(email)
        if user is None or not user.is_active:
            return False
        raw_token = generate_reset_token()
        self._users.update_user(
            user.id,
            reset_password_token=hash_reset_token(raw_token, self._secret_key),
            reset_password_expires=(self._now() + self._token_ttl).isoformat(),
        )
        self._mailer.send_reset(user, f"{self._admin_url}/auth/reset-password?code={raw_token}")
        return True

    def reset_password(self, reset_token: str, password: str) -> User:
        token_hash = hash_reset_token(reset_token, self._secret_key)
        user = self._users.get_by_reset_token(token_hash)
        if user is None or not user.is_active or self._expired(user):
            raise InvalidResetToken("Invalid reset token")
        consumed = self._users.consume_token(
            user.id,
            "reset_password_token",
            token_hash,
            hashed_password=hash_password(password),
            reset_password_token=None,
            reset_password_expires=None,
        )
        if not consumed:
            raise InvalidResetToken("Invalid reset token")
        return self._users.get_by_id(user.id)

    def _expired(self, user: User) -> bool:
        if not user.reset_password_expires:
            return True
        return self._now() >= datetime.fromisoformat(user.reset_password_expires)

    def _send_reset_detached(self, email: str) -> None:
        # Runs after the response is sent; failures stop here.
        try:
            self.send_reset_email(email)
        except Exception:
            logger.exception("Password reset email failed")
            self._telemetry.send("didFailPasswordResetEmail")


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


@dataclass
class ServiceRegistry:
    """Everything a request handler may need, built once per process."""

    users: UserStore
    roles: RoleStore
    revocations: RevocationStore
    codec: TokenCodec
    events: EventHub
    telemetry: Telemetry
    auth: AuthenticationService
    registration: RegistrationService
    password_reset: PasswordResetService

    def close(self) -> None:
        self.users.close()


def build_services(
    settings: Settings,
    engine: Engine,
    mailer: Mailer | None = None,
    events: EventHub | None = None,
) -> ServiceRegistry:
    """Wire stores, codec and services. Seeds the built-in roles."""
    users = UserStore(engine)
    roles = RoleStore(engine)
    roles.ensure_default_roles()
    revocations = RevocationStore(engine)
    codec = TokenCodec(settings.secret_key)
    hub = events or EventHub()
    telemetry = Telemetry(hub)
    strategy = build_strategy(settings.credential_strategy, users)
    return ServiceRegistry(
        users=users,
        roles=roles,
        revocations=revocations,
        codec=codec,
        events=hub,
        telemetry=telemetry,
        auth=AuthenticationService(strategy, codec, revocations, hub),
        registration=RegistrationService(users, roles, telemetry),
        password_reset=PasswordResetService(
            users,
            mailer or LogMailer(),
            telemetry,
            admin_url=settings.admin_url,
            token_ttl_seconds=settings.reset_token_expire_seconds,
            secret_key=settings.secret_key,
        ),
    )
