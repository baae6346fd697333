"""
auth/errors.py -- Exception taxonomy for the auth services.

Every user-facing failure is an AuthError subclass carrying a stable machine
code, a human message, and the HTTP status the boundary should use. The API
layer has one exception handler for AuthError; services never import FastAPI.

Two errors deliberately sit outside the AuthError tree:
  CredentialBackendError -- raised by credential strategies when the backing
      store fails. AuthenticationService converts it into AuthSystemError.
  FatalConfigError -- the deployment is misconfigured (no super-admin role).
      Nothing in the auth core catches it; it reaches the generic 500 handler
      and is logged with a traceback.
"""

from __future__ import annotations


class AuthError(Exception):
    code = "auth_error"
    status_code = 400

    def __init__(self, message: str, detail: object | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "detail": self.detail}


class InvalidInput(AuthError):
    """Malformed or semantically invalid input. detail carries field-level errors."""

    code = "validation_error"


class CredentialError(AuthError):
    """Bad login. The message is generic on purpose -- it never says which field was wrong."""

    code = "bad_credentials"


class MissingToken(AuthError):
    code = "missing_token"


class InvalidToken(AuthError):
    code = "invalid_token"


class Conflict(AuthError):
    code = "conflict"


class NotFound(AuthError):
    code = "not_found"


class InvalidResetToken(AuthError):
    code = "invalid_reset_token"


class AuthSystemError(AuthError):
    """Infrastructure failure while checking credentials."""

    code = "system_error"
    status_code = 500


class CredentialBackendError(RuntimeError):
    pass


class FatalConfigError(RuntimeError):
    pass
