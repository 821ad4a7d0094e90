import json
import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from shopguard.core.api_docs import error_responses
from shopguard.core.client_identity import client_identity
from shopguard.core.config import Settings
from shopguard.core.deps import get_db
from shopguard.core.observability import ApiError
from shopguard.core.rate_limit import SlidingWindowRateLimiter
from shopguard.core.security import create_session_token, hash_password, verify_password
from shopguard.core.security_current import get_clock, get_current_user, get_settings
from shopguard.core.sliding_window import Clock
from shopguard.models.user import User
from shopguard.schemas.auth import AuthUserOut, LoginIn, RegisterIn, UserOut

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger("shopguard.security")


def _enforce_rate_limit(request: Request, limiter: SlidingWindowRateLimiter, *, scope: str, message: str) -> None:
    app_settings: Settings = request.app.state.settings
    identity = client_identity(request, frozenset(app_settings.trusted_proxy_ips))
    result = limiter.check(identity)
    if result.success:
        return

    now = limiter.clock()
    logger.warning(
        json.dumps(
            {
                "event": "rate_limited",
                "scope": scope,
                "identity": identity,
                "reset_time": result.reset_time,
            }
        )
    )
    raise ApiError(
        429,
        code="rate_limited",
        message=message,
        headers=result.headers(now),
        extra={"retryAfter": result.retry_after_seconds(now)},
    )


def enforce_login_rate_limit(request: Request) -> None:
    _enforce_rate_limit(
        request,
        request.app.state.login_rate_limiter,
        scope="login",
        message="Too many login attempts. Please try again later.",
    )


def enforce_register_rate_limit(request: Request) -> None:
    _enforce_rate_limit(
        request,
        request.app.state.register_rate_limiter,
        scope="register",
        message="Too many registration attempts. Please try again later.",
    )


def _set_session_cookie(response: Response, user: User, app_settings: Settings) -> None:
    token = create_session_token(
        user_id=user.id,
        email=user.email,
        role=user.role,
        is_admin=user.has_admin_privileges,
        secret=app_settings.jwt_secret,
    )
    response.set_cookie(
        key=app_settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=app_settings.is_production,
        samesite="lax",
        max_age=app_settings.session_token_expire_days * 24 * 60 * 60,
        path="/",
    )


def _user_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        is_admin=user.has_admin_privileges,
        created_at=user.created_at,
    )


@router.post(
    "/register",
    response_model=AuthUserOut,
    summary="Register a shopper account",
    description="Creates a `user` role account and sets the session cookie.",
    responses=error_responses(
        (400, "bad_request"),
        (409, "conflict"),
        (422, "validation_error"),
        (429, "rate_limited"),
        (500, "internal_error"),
        path="/api/auth/register",
    ),
)
def register(
    payload: RegisterIn,
    response: Response,
    _: None = Depends(enforce_register_rate_limit),
    db: Session = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
):
    if payload.honeypot.strip():
        raise ApiError(400, code="bad_request", message="Bot detected")

    submitted_at = payload.ts or 0
    if clock() - submitted_at < app_settings.register_min_fill_seconds * 1000:
        raise ApiError(400, code="bad_request", message="Form submitted too quickly")

    normalized_email = payload.email.lower()
    exists = db.execute(
        select(User.id).where(func.lower(User.email) == normalized_email)
    ).scalar_one_or_none()
    if exists:
        raise ApiError(409, code="conflict", message="User with this email already exists")

    user = User(
        email=normalized_email,
        name=payload.name,
        hashed_password=hash_password(payload.password),
        role="user",
        is_admin=False,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    _set_session_cookie(response, user, app_settings)
    return AuthUserOut(user=_user_out(user))


@router.post(
    "/login",
    response_model=AuthUserOut,
    summary="Login with email and password",
    responses=error_responses(
        (401, "invalid_credentials"),
        (422, "validation_error"),
        (429, "rate_limited"),
        (500, "internal_error"),
        path="/api/auth/login",
    ),
)
def login(
    payload: LoginIn,
    response: Response,
    _: None = Depends(enforce_login_rate_limit),
    db: Session = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
):
    user = db.execute(
        select(User).where(func.lower(User.email) == payload.email.lower())
    ).scalar_one_or_none()
    if not user or not verify_password(payload.password, user.hashed_password):
        raise ApiError(401, code="invalid_credentials", message="Invalid credentials")

    _set_session_cookie(response, user, app_settings)
    return AuthUserOut(user=_user_out(user))


@router.get(
    "/me",
    response_model=UserOut,
    summary="Current session user",
    responses=error_responses(
        (401, "no_token"),
        (401, "invalid_token"),
        (404, "user_not_found"),
        (500, "internal_error"),
        path="/api/auth/me",
    ),
)
def me(user: User = Depends(get_current_user)):
    return _user_out(user)


@router.post(
    "/logout",
    summary="Clear the session cookie",
    responses=error_responses((500, "internal_error"), path="/api/auth/logout"),
)
def logout(response: Response, app_settings: Settings = Depends(get_settings)):
    response.delete_cookie(key=app_settings.session_cookie_name, path="/")
    return {"success": True}
