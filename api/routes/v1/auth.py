"""
api/routes/v1/auth.py -- Session, registration and password-reset endpoints.

Routes (mounted under /admin):
  POST /login               -- password login; sets session cookie
  POST /renew-token         -- new token for a still-valid session cookie
  GET  /registration-info   -- public info about a pending invitation
  POST /register            -- invited administrator completes registration
  POST /register-admin      -- first super admin (bootstrap); sets session cookie
  POST /forgot-password     -- always 204; reset email sent in the background
  POST /reset-password      -- new password from an emailed token; sets session cookie
  POST /logout              -- revokes the token, clears the cookie
  GET  /is-authenticated    -- {authorized: bool}; never errors

Routes are thin: parse input (Pydantic), call one service, shape the response.
Services raise AuthError subclasses; the handler in api/main.py turns them
into the error envelope with the right status code.

Security:
  [H2] login, register-admin and forgot-password are rate-limited per IP.
  [M5] Cache-Control: no-store on every response that carries a session.
  Enumeration: forgot-password answers 204 before any lookup happens.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AdminRegistrationRequest,
    AuthorizedResponse,
    ForgotPasswordRequest,
    LoginData,
    LoginRequest,
    LoginResponse,
    RegisterData,
    RegisterResponse,
    RegistrationInfo,
    RegistrationInfoResponse,
    RegistrationRequest,
    ResetPasswordRequest,
    TokenData,
    TokenResponse,
    UserData,
    UserOut,
    UserResponse,
)
from auth.dependencies import get_services, session_token
from auth.services import ServiceRegistry, SessionGrant
from auth.strategies import Credentials
from auth.tokens import clear_session_cookie, set_session_cookie
from core.config import get_settings

# Auth policy: every route here is public by nature -- they are how a
# session starts, is inspected, or ends. None of them evaluates permissions.
router = APIRouter()

_settings = get_settings()


@limiter.limit(_settings.login_rate_limit)  # [H2]
@router.post("/login", response_model=LoginResponse)
def login(
    request: Request,
    body: LoginRequest,
    services: ServiceRegistry = Depends(get_services),
) -> JSONResponse:
    """Authenticate with email and password; set the session cookie.

    Wrong email, wrong password and inactive account all produce the same
    400 bad_credentials. A store failure produces 500 system_error.
    """
    grant = services.auth.login(Credentials(email=body.email, password=body.password))
    content = LoginResponse(data=LoginData(user=UserOut(**grant.user)))
    return _session_response(content.model_dump(by_alias=True), grant)


@router.post("/renew-token", response_model=TokenResponse)
def renew_token(
    token: str | None = Depends(session_token),
    services: ServiceRegistry = Depends(get_services),
) -> TokenResponse:
    """Exchange a still-valid, unrevoked session token for a fresh one."""
    return TokenResponse(data=TokenData(token=services.auth.renew(token)))


@router.get("/registration-info", response_model=RegistrationInfoResponse)
def registration_info(
    registration_token: str = Query(alias="registrationToken", min_length=1, max_length=64),
    services: ServiceRegistry = Depends(get_services),
) -> RegistrationInfoResponse:
    """Return email and names for a pending invitation so the form can be prefilled."""
    info = services.registration.registration_info(registration_token)
    return RegistrationInfoResponse(
        data=RegistrationInfo(email=info.email, firstname=info.firstname, lastname=info.lastname)
    )


@router.post("/register", response_model=RegisterResponse)
def register(
    body: RegistrationRequest,
    services: ServiceRegistry = Depends(get_services),
) -> JSONResponse:
    """Complete an invited registration. The token is returned in the body, not as a cookie."""
    user = services.registration.register_invited(
        body.registration_token,
        firstname=body.user_info.firstname,
        lastname=body.user_info.lastname,
        password=body.user_info.password,
    )
    grant = services.auth.grant(user)
    content = RegisterResponse(data=RegisterData(token=grant.token, user=UserOut(**grant.user)))
    resp = JSONResponse(content=content.model_dump(by_alias=True))
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@limiter.limit(_settings.register_admin_rate_limit)  # [H2] bootstrap is a one-shot endpoint
@router.post("/register-admin", response_model=UserResponse)
def register_admin(
    request: Request,
    body: AdminRegistrationRequest,
    services: ServiceRegistry = Depends(get_services),
) -> JSONResponse:
    """Create the first super admin and open a session for them.

    400 conflict once any administrator exists. A missing super-admin role is
    a deployment fault: FatalConfigError is not caught here and surfaces as a
    logged 500.
    """
    user = services.registration.register_super_admin(
        email=body.email,
        firstname=body.firstname,
        lastname=body.lastname,
        password=body.password,
        username=body.username,
    )
    grant = services.auth.grant(user)
    content = UserResponse(data=UserData(user=UserOut(**grant.user)))
    return _session_response(content.model_dump(by_alias=True), grant)


@limiter.limit(_settings.forgot_password_rate_limit)  # [H2]
@router.post("/forgot-password", status_code=204)
def forgot_password(
    request: Request,
    body: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    services: ServiceRegistry = Depends(get_services),
) -> Response:
    """Schedule a reset email and answer 204 whether or not the account exists."""
    services.password_reset.forgot_password(body.email, background_tasks.add_task)
    return Response(status_code=204)


@router.post("/reset-password", response_model=UserResponse)
def reset_password(
    body: ResetPasswordRequest,
    services: ServiceRegistry = Depends(get_services),
) -> JSONResponse:
    """Set a new password from an emailed reset token and open a session."""
    user = services.password_reset.reset_password(body.reset_password_token, body.password)
    grant = services.auth.grant(user)
    content = UserResponse(data=UserData(user=UserOut(**grant.user)))
    return _session_response(content.model_dump(by_alias=True), grant)


@router.post("/logout", response_model=AuthorizedResponse)
def logout(
    token: str | None = Depends(session_token),
    services: ServiceRegistry = Depends(get_services),
) -> JSONResponse:
    """Revoke the session token and clear the cookie."""
    services.auth.logout(token)
    resp = JSONResponse(
        content=AuthorizedResponse(authorized=True, message="Successfully destroyed session").model_dump()
    )
    clear_session_cookie(resp)
    return resp


@router.get("/is-authenticated", response_model=AuthorizedResponse, response_model_exclude_none=True)
def is_authenticated(
    token: str | None = Depends(session_token),
    services: ServiceRegistry = Depends(get_services),
) -> AuthorizedResponse:
    """Report whether the session cookie holds a valid, unrevoked token."""
    return AuthorizedResponse(authorized=services.auth.is_authenticated(token))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _session_response(content: dict, grant: SessionGrant) -> JSONResponse:
    resp = JSONResponse(status_code=200, content=content)
    set_session_cookie(resp, grant.token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp
