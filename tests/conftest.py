import os
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")

import shopguard.models  # noqa: F401
from shopguard.core.config import settings
from shopguard.core.security import create_session_token
from shopguard.db.base import Base
from shopguard.main import create_app
from shopguard.models.user import User

START_MS = 1_767_225_600_000  # 2026-01-01T00:00:00Z


class FakeClock:
    def __init__(self, start: int = START_MS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def session_local():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def build_client(session_local, clock):
    clients: list[TestClient] = []

    def _build(**overrides) -> TestClient:
        app_settings = settings.model_copy(update=overrides)
        app = create_app(app_settings=app_settings, session_factory=session_local, clock=clock)
        client = TestClient(app)
        clients.append(client)
        return client

    yield _build
    for client in clients:
        client.close()


@pytest.fixture()
def test_context(build_client, session_local):
    yield build_client(), session_local


def create_user(
    session_local,
    *,
    email: str,
    is_admin: bool = False,
    role: str | None = None,
    name: str = "Test User",
) -> User:
    db = session_local()
    try:
        user = User(
            email=email,
            name=name,
            hashed_password="not-a-real-hash",
            role=role or ("admin" if is_admin else "user"),
            is_admin=is_admin,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        db.expunge(user)
        return user
    finally:
        db.close()


def token_for(user: User, *, is_admin: bool | None = None, expires_delta: timedelta | None = None) -> str:
    return create_session_token(
        user_id=user.id,
        email=user.email,
        role=user.role,
        is_admin=user.is_admin if is_admin is None else is_admin,
        expires_delta=expires_delta,
    )


def session_headers(token: str, ip: str | None = None) -> dict[str, str]:
    headers = {"Cookie": f"{settings.session_cookie_name}={token}"}
    if ip:
        headers["X-Forwarded-For"] = ip
    return headers
