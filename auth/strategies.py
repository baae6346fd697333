"""
auth/strategies.py -- Pluggable credential verification.

A credential strategy answers one question: do these credentials belong to an
active user? It returns a Verification carrying either the user or a failure
reason. Infrastructure failures (the store is unreachable) are not answers --
they raise CredentialBackendError so AuthenticationService can report a 500
instead of a misleading "bad password".

Strategies are selected by name from Settings.credential_strategy via
build_strategy(). Only "local" (email + bcrypt password) ships today.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError

from auth.errors import CredentialBackendError
from auth.models import User
from auth.store import UserStore
from auth.tokens import DUMMY_HASH, verify_password

_GENERIC_FAILURE = "Invalid credentials"


@dataclass(frozen=True)
class Credentials:
    email: str
    password: str


@dataclass(frozen=True)
class Verification:
    user: User | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.user is not None


class CredentialStrategy(Protocol):
    name: str

    def verify(self, credentials: Credentials) -> Verification: ...


class LocalPasswordStrategy:
    """Email + password checked against the bcrypt hash in UserStore.

    Always runs bcrypt whether or not the email exists [C1]:
    - unknown email or pending invite: bcrypt against DUMMY_HASH
    - wrong password: bcrypt against the real hash
    Every failure carries the same reason so the response never says which
    field was wrong.
    """

    name = "local"

    def __init__(self, users: UserStore) -> None:
        self._users = users

    def verify(self, credentials: Credentials) -> Verification:
        try:
            user = self._users.get_by_email(credentials.email)
        except SQLAlchemyError as exc:
            raise CredentialBackendError("user store unavailable") from exc

        if user is None or user.hashed_password is None:
            # Equalize timing -- do NOT return before running bcrypt [C1]
            verify_password(credentials.password, DUMMY_HASH)
            return Verification(reason=_GENERIC_FAILURE)
        if not verify_password(credentials.password, user.hashed_password):
            return Verification(reason=_GENERIC_FAILURE)
        if not user.is_active:
            return Verification(reason=_GENERIC_FAILURE)
        return Verification(user=user)


_STRATEGIES = {
    LocalPasswordStrategy.name: LocalPasswordStrategy,
}


def build_strategy(name: str, users: UserStore) -> CredentialStrategy:
    """Instantiate the strategy registered under name. Unknown names fail at startup."""
    try:
        strategy_cls = _STRATEGIES[name]
    except KeyError:
        raise ValueError(f"Unknown credential strategy {name!r}. Available: {sorted(_STRATEGIES)}") from None
    return strategy_cls(users)
