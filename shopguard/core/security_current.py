from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from shopguard.core.config import Settings
from shopguard.core.deps import get_db
from shopguard.core.observability import ApiError
from shopguard.core.security import TokenValidationError, decode_session_token
from shopguard.core.sliding_window import Clock
from shopguard.models.user import User
from shopguard.services.admin_auth_service import AdminAuthenticator, AdminPrincipal
from shopguard.services.ip_ban_service import BanRealm


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_durable_realm(request: Request) -> BanRealm:
    return request.app.state.durable_realm


def get_admin_authenticator(request: Request) -> AdminAuthenticator:
    return request.app.state.admin_authenticator


def require_admin(
    request: Request,
    authenticator: AdminAuthenticator = Depends(get_admin_authenticator),
) -> AdminPrincipal:
    result = authenticator.verify(request)
    if not result.success or result.user is None:
        raise ApiError(
            result.status_code,
            code=result.failure.value if result.failure else "access_denied",
            message=result.error or "Access denied",
        )
    return result.user


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
) -> User:
    token = request.cookies.get(app_settings.session_cookie_name)
    if not token:
        raise ApiError(401, code="no_token", message="No authentication token")
    try:
        claims = decode_session_token(token, secret=app_settings.jwt_secret)
    except TokenValidationError as exc:
        raise ApiError(401, code="invalid_token", message="Invalid authentication token") from exc

    user = db.execute(select(User).where(User.id == claims.user_id)).scalar_one_or_none()
    if not user:
        raise ApiError(404, code="user_not_found", message="User not found")
    return user
