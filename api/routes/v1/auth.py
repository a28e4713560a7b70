"""
api/routes/v1/auth.py -- Account and session REST endpoints.

Routes:
  POST   /api/auth/register   -- create account (ADMIN role needs an admin token)
  POST   /api/auth/login      -- password login; returns bearer token
  POST   /api/auth/logout     -- revoke the presented token
  POST   /api/auth/verify     -- 200 if the presented token is still good
  GET    /api/auth/me         -- current user info
  POST   /api/auth/password   -- change password (old password required)
  DELETE /api/auth/account    -- delete own account + all owned data

Security:
  POST /login and /register are rate-limited per client IP (LOGIN_RATE_LIMIT, default 10/minute).
  AuthService.login() provides timing equalization -- use it, never inline
  find_account() + verify_password().
  Cache-Control: no-store on login responses (token in body).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AccountDeletedResponse,
    AccountDeleteRequest,
    DeletedCounts,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    PasswordChangeRequest,
    RegisterRequest,
    UserOut,
    UserResponse,
    VerifyResponse,
)
from auth.dependencies import get_auth_service, get_current_identity, try_get_current_identity
from auth.models import Identity, Role
from auth.service import AuthService, ensure_authorized
from auth.tokens import verify_password
from core.config import get_settings
from core.errors import Forbidden, InvalidCredentials, NotFound

# Auth policy:
# - POST   /auth/register:  public (USER); ADMIN role requires require-admin check inline
# - POST   /auth/login:     public -- login endpoint must be unauthenticated
# - POST   /auth/logout:    requires auth -- the token being revoked must be valid
# - POST   /auth/verify:    requires auth
# - GET    /auth/me:        requires auth
# - POST   /auth/password:  requires auth
# - DELETE /auth/account:   requires auth + password confirmation
router = APIRouter()

_ADMIN_ONLY = "Only an admin can create ADMIN accounts."
_LOGIN_LIMIT = get_settings().login_rate_limit


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_LOGIN_LIMIT)  # brute-force mitigation -- must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=UserResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> UserResponse:
    """Create an account.

    Anyone may register a USER. Registering an ADMIN requires the caller to
    present an admin bearer token; there is no other path to the ADMIN role
    over HTTP.
    """
    service: AuthService = get_auth_service(request)
    if body.role == Role.ADMIN:
        caller = try_get_current_identity(request)
        if caller is None:
            raise Forbidden(_ADMIN_ONLY)
        ensure_authorized(caller, requires_admin=True, message=_ADMIN_ONLY)
    account = service.register(body.username, body.password, body.role)
    return UserResponse(message="User created successfully.", user=UserOut.from_account(account))


@limiter.limit(_LOGIN_LIMIT)
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; return a bearer token.

    Returns the same generic error for wrong username and wrong password
    to avoid leaking username existence information.
    """
    service: AuthService = get_auth_service(request)
    result = service.login(body.username, body.password)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            message="Login successful.",
            token=result.token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=result.expires_in,
            user=UserOut.from_account(result.account),
        ).model_dump(by_alias=True, mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, caller: Identity = Depends(get_current_identity)) -> MessageResponse:
    """Revoke the presented token. Other sessions of the same user stay valid."""
    get_auth_service(request).logout(caller.token)
    return MessageResponse(message="Logged out.")


@router.post("/auth/verify", response_model=VerifyResponse)
def verify(request: Request, caller: Identity = Depends(get_current_identity)) -> VerifyResponse:
    """Confirm the token is valid; the frontend calls this on startup."""
    return VerifyResponse(valid=True, user=_user_out(request, caller))


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, caller: Identity = Depends(get_current_identity)) -> MeResponse:
    """Return identity information for the currently authenticated user."""
    return MeResponse(user=_user_out(request, caller))


@router.post("/auth/password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: PasswordChangeRequest,
    caller: Identity = Depends(get_current_identity),
) -> MessageResponse:
    """Change the caller's password. The current session stays valid."""
    get_auth_service(request).change_password(caller.username, body.old_password, body.new_password)
    return MessageResponse(message="Password changed successfully.")


@router.delete("/auth/account", response_model=AccountDeletedResponse)
def delete_account(
    request: Request,
    body: AccountDeleteRequest,
    caller: Identity = Depends(get_current_identity),
) -> AccountDeletedResponse:
    """Delete the caller's account and everything it owns, then revoke the token."""
    service: AuthService = get_auth_service(request)
    account = service.accounts.find_account(caller.username)
    if account is None:
        raise NotFound("User not found.")
    if not verify_password(body.password, account.password_hash):
        raise InvalidCredentials("Password is incorrect.")
    counts = service.delete_account(caller.username)
    service.revocations.revoke(caller.token, caller.expires_at)
    return AccountDeletedResponse(
        message="Account and all associated data deleted successfully.",
        deleted=DeletedCounts(user=caller.username, **counts),
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _user_out(request: Request, caller: Identity) -> UserOut:
    # Role comes from the token, created_at from the store (None if the
    # account was deleted after the token was issued).
    account = get_auth_service(request).accounts.find_account(caller.username)
    return UserOut(
        username=caller.username,
        role=caller.role,
        created_at=account.created_at if account else None,
    )
