import enum
import json
import logging
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from starlette.requests import HTTPConnection

from shopguard.core.security import SessionClaims, TokenValidationError, decode_session_token
from shopguard.models.user import User

logger = logging.getLogger("shopguard.security")


class AuthFailure(str, enum.Enum):
    NO_TOKEN = "no_token"
    INVALID_TOKEN = "invalid_token"
    ACCESS_DENIED = "access_denied"
    USER_NOT_FOUND = "user_not_found"

    @property
    def status_code(self) -> int:
        # Missing credentials are the only 401; everything else is a plain denial.
        return 401 if self is AuthFailure.NO_TOKEN else 403


@dataclass(frozen=True)
class AdminPrincipal:
    id: str
    email: str
    role: str
    is_admin: bool
    name: str | None = None


@dataclass(frozen=True)
class AdminAuthResult:
    success: bool
    user: AdminPrincipal | None = None
    error: str | None = None
    failure: AuthFailure | None = None

    @classmethod
    def ok(cls, user: AdminPrincipal) -> "AdminAuthResult":
        return cls(success=True, user=user)

    @classmethod
    def fail(cls, failure: AuthFailure, error: str) -> "AdminAuthResult":
        return cls(success=False, error=error, failure=failure)

    @property
    def status_code(self) -> int:
        return self.failure.status_code if self.failure else 200


class AdminAuthenticator(Protocol):
    authoritative: bool

    def verify(self, request: HTTPConnection) -> AdminAuthResult:
        ...


def _log_failure(authenticator: str, result: AdminAuthResult) -> None:
    logger.info(
        json.dumps(
            {
                "event": "admin_auth_failed",
                "authenticator": authenticator,
                "failure": result.failure.value if result.failure else None,
            }
        )
    )


class ClaimsAdminAuthenticator:
    """Signature check plus the ``isAdmin`` claim; performs no lookups.

    The claim is a snapshot taken when the session token was issued, so a
    revoked admin keeps passing here until the token expires. Use
    ``DatabaseAdminAuthenticator`` wherever the decision must be current.
    """

    authoritative = False

    def __init__(self, *, cookie_name: str, secret: str):
        self.cookie_name = cookie_name
        self.secret = secret

    def verify(self, request: HTTPConnection) -> AdminAuthResult:
        token = request.cookies.get(self.cookie_name)
        if not token:
            return AdminAuthResult.fail(AuthFailure.NO_TOKEN, "No authentication token")

        try:
            claims = decode_session_token(token, secret=self.secret)
        except TokenValidationError:
            result = AdminAuthResult.fail(AuthFailure.INVALID_TOKEN, "Invalid or expired token")
            _log_failure("claims", result)
            return result

        if not claims.is_admin:
            result = AdminAuthResult.fail(AuthFailure.ACCESS_DENIED, "Admin access required")
            _log_failure("claims", result)
            return result

        return AdminAuthResult.ok(_principal_from_claims(claims))


def _principal_from_claims(claims: SessionClaims) -> AdminPrincipal:
    return AdminPrincipal(
        id=claims.user_id,
        email=claims.email,
        role=claims.role,
        is_admin=claims.is_admin,
    )


class DatabaseAdminAuthenticator:
    """Authoritative admin check: the persisted user record decides."""

    authoritative = True

    def __init__(self, session_factory: sessionmaker, *, cookie_name: str, secret: str):
        self.session_factory = session_factory
        self.cookie_name = cookie_name
        self.secret = secret

    def verify(self, request: HTTPConnection) -> AdminAuthResult:
        token = request.cookies.get(self.cookie_name)
        if not token:
            return AdminAuthResult.fail(AuthFailure.NO_TOKEN, "No authentication token")

        invalid = AdminAuthResult.fail(AuthFailure.INVALID_TOKEN, "Invalid authentication token")
        try:
            claims = decode_session_token(token, secret=self.secret)
        except TokenValidationError:
            _log_failure("database", invalid)
            return invalid

        db: Session = self.session_factory()
        try:
            user = db.execute(select(User).where(User.id == claims.user_id)).scalar_one_or_none()
        except SQLAlchemyError:
            # Lookup failures are reported to the client as an invalid token.
            logger.exception("admin user lookup failed")
            return invalid
        finally:
            db.close()

        if user is None:
            result = AdminAuthResult.fail(AuthFailure.USER_NOT_FOUND, "User not found")
            _log_failure("database", result)
            return result

        if not user.has_admin_privileges:
            result = AdminAuthResult.fail(
                AuthFailure.ACCESS_DENIED, "Access denied. Admin privileges required."
            )
            _log_failure("database", result)
            return result

        return AdminAuthResult.ok(
            AdminPrincipal(
                id=user.id,
                email=user.email,
                role=user.role,
                is_admin=user.has_admin_privileges,
                name=user.name,
            )
        )
