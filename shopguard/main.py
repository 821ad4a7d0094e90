from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import sessionmaker

from shopguard.core.access_gate import AdminAccessGate
from shopguard.core.config import Settings, settings
from shopguard.core.observability import (
    http_exception_handler,
    request_logging_middleware,
    setup_observability,
    unhandled_exception_handler,
    validation_exception_handler,
)
from shopguard.core.rate_limit import SlidingWindowRateLimiter
from shopguard.core.sliding_window import Clock, now_ms
from shopguard.routers import admin, auth
from shopguard.services.admin_auth_service import ClaimsAdminAuthenticator, DatabaseAdminAuthenticator
from shopguard.services.ip_ban_service import BanPolicy, BanRealm, InMemoryBanStore, SqlBanStore


def ban_policy_from_settings(app_settings: Settings) -> BanPolicy:
    return BanPolicy(
        max_attempts=app_settings.admin_ban_max_attempts,
        attempt_window_ms=app_settings.admin_attempt_window_seconds * 1000,
        ban_duration_ms=app_settings.admin_ban_duration_seconds * 1000,
    )


def create_app(
    *,
    app_settings: Settings | None = None,
    session_factory: sessionmaker | None = None,
    clock: Clock = now_ms,
) -> FastAPI:
    app_settings = app_settings or settings
    if session_factory is None:
        from shopguard.db.session import SessionLocal

        session_factory = SessionLocal

    app = FastAPI(
        title=app_settings.app_name,
        version="0.2.0",
        description=(
            "Admin-access protection for the storefront backend.\n\n"
            "Every `/admin` and `/api/admin/*` request is checked against the IP ban list "
            "and the `auth-token` session cookie; unauthorized attempts lead to a ban."
        ),
        openapi_tags=[
            {"name": "health", "description": "Service status."},
            {"name": "auth", "description": "Shopper registration, login and session cookie."},
            {"name": "admin", "description": "IP ban management and attempt reporting."},
        ],
    )

    policy = ban_policy_from_settings(app_settings)
    durable_realm = BanRealm.build(
        "database", SqlBanStore(session_factory, clock=clock), policy=policy, clock=clock
    )
    if app_settings.ban_store_mode == "shared":
        edge_realm = durable_realm
    else:
        edge_realm = BanRealm.build("memory", InMemoryBanStore(clock=clock), policy=policy, clock=clock)

    app.state.settings = app_settings
    app.state.session_factory = session_factory
    app.state.clock = clock
    app.state.ban_policy = policy
    app.state.edge_realm = edge_realm
    app.state.durable_realm = durable_realm
    app.state.admin_authenticator = DatabaseAdminAuthenticator(
        session_factory,
        cookie_name=app_settings.session_cookie_name,
        secret=app_settings.jwt_secret,
    )
    app.state.login_rate_limiter = SlidingWindowRateLimiter(
        max_requests=app_settings.auth_login_rate_limit_requests,
        window_ms=app_settings.auth_login_rate_limit_window_seconds * 1000,
        clock=clock,
    )
    app.state.register_rate_limiter = SlidingWindowRateLimiter(
        max_requests=app_settings.auth_register_rate_limit_requests,
        window_ms=app_settings.auth_register_rate_limit_window_seconds * 1000,
        clock=clock,
    )

    setup_observability()
    gate = AdminAccessGate(
        realm=edge_realm,
        authenticator=ClaimsAdminAuthenticator(
            cookie_name=app_settings.session_cookie_name,
            secret=app_settings.jwt_secret,
        ),
        trusted_proxies=app_settings.trusted_proxy_ips,
    )
    # Starlette runs the most recently added middleware first.
    app.middleware("http")(gate)
    app.middleware("http")(request_logging_middleware)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    cors_origins = app_settings.cors_origins or ["http://localhost:3000"]
    allow_all_origins = "*" in cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all_origins else cors_origins,
        allow_credentials=not allow_all_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth.router)
    app.include_router(admin.router)

    @app.get("/", tags=["health"])
    def root():
        return {
            "app": app_settings.app_name,
            "docs": "/docs",
            "health": "/health",
        }

    @app.get("/health", tags=["health"])
    def health():
        return {"ok": True}

    return app


app = create_app()
