from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from shopguard.core.config import settings

import bcrypt

ALGORITHM = "HS256"


class TokenValidationError(ValueError):
    pass


@dataclass(frozen=True)
class SessionClaims:
    user_id: str
    email: str
    role: str
    is_admin: bool
    expires_at: datetime


def hash_password(password: str) -> str:
    # bcrypt hard limit is 72 bytes. We encode as utf-8.
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=12)).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))


def create_session_token(
    *,
    user_id: str,
    email: str,
    role: str,
    is_admin: bool,
    expires_delta: timedelta | None = None,
    secret: str | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = timedelta(days=settings.session_token_expire_days)
    payload = {
        "sub": user_id,
        "userId": user_id,
        "email": email,
        "role": role,
        "isAdmin": bool(is_admin),
        "iat": int(now.timestamp()),
        "exp": int((now + expires_delta).timestamp()),
    }
    return jwt.encode(payload, secret or settings.jwt_secret, algorithm=ALGORITHM)


def decode_session_token(token: str, *, secret: str | None = None) -> SessionClaims:
    try:
        payload = jwt.decode(token, secret or settings.jwt_secret, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise TokenValidationError("Invalid token") from exc

    user_id = payload.get("userId") or payload.get("sub")
    if not user_id:
        raise TokenValidationError("Invalid token subject")

    exp = payload.get("exp")
    if not exp:
        raise TokenValidationError("Invalid token expiration")

    return SessionClaims(
        user_id=str(user_id),
        email=str(payload.get("email") or ""),
        role=str(payload.get("role") or "user"),
        is_admin=payload.get("isAdmin") is True,
        expires_at=datetime.fromtimestamp(int(exp), tz=timezone.utc),
    )
