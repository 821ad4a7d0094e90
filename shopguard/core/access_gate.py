"""Request middleware guarding the admin page and every ``/api/admin/*`` route.

Per request on a protected path:

1. the client identity is looked up in the gate's ban realm; a banned client
   gets a 403 tagged ``ip_banned`` and nothing else runs;
2. the attempt-reporting endpoint passes through without authentication, since
   reporting an attempt must not itself count as one;
3. the session cookie is checked by the claims authenticator;
4. on failure the attempt is recorded (possibly banning the client) and a
   401 (no token) or 403 response is returned.
"""
import json
import logging
from collections.abc import Collection

from fastapi import Request
from starlette.concurrency import run_in_threadpool

from shopguard.core.client_identity import client_identity
from shopguard.core.observability import error_response
from shopguard.services.admin_auth_service import AdminAuthenticator, AuthFailure
from shopguard.services.ip_ban_service import AttemptResult, BanRealm

logger = logging.getLogger("shopguard.security")

ADMIN_PAGE_PATH = "/admin"
ADMIN_API_PREFIX = "/api/admin/"
ACCESS_ATTEMPT_PATH = "/api/admin/access-attempt"

BANNED_MESSAGE = (
    "IP permanently banned for unauthorized admin access attempt. "
    "Contact administrator for manual unban."
)
BANNED_ON_ATTEMPT_MESSAGE = "Access denied. IP permanently banned for unauthorized admin access attempt."


def is_protected_path(path: str) -> bool:
    return (
        path == ADMIN_PAGE_PATH
        or path.startswith(ADMIN_PAGE_PATH + "/")
        or path.startswith(ADMIN_API_PREFIX)
    )


class AdminAccessGate:
    def __init__(
        self,
        *,
        realm: BanRealm,
        authenticator: AdminAuthenticator,
        trusted_proxies: Collection[str] = (),
    ):
        self.realm = realm
        self.authenticator = authenticator
        self.trusted_proxies = frozenset(trusted_proxies)

    async def __call__(self, request: Request, call_next):
        path = request.url.path
        if not is_protected_path(path):
            return await call_next(request)

        identity = client_identity(request, self.trusted_proxies)

        # Realm calls can block on the database; keep them off the event loop.
        ban = await run_in_threadpool(self.realm.check, identity)
        if ban.banned:
            return error_response(
                status_code=403,
                request=request,
                code="ip_banned",
                message=BANNED_MESSAGE,
                extra={"type": "ip_banned", "bannedUntil": ban.banned_until},
            )

        if path == ACCESS_ATTEMPT_PATH:
            return await call_next(request)

        auth = self.authenticator.verify(request)
        if auth.success:
            request.state.admin = auth.user
            return await call_next(request)

        attempt = await self._record_attempt(identity)
        failure = auth.failure or AuthFailure.ACCESS_DENIED
        message = BANNED_ON_ATTEMPT_MESSAGE if attempt.should_ban else (auth.error or "Access denied")
        return error_response(
            status_code=failure.status_code,
            request=request,
            code=failure.value,
            message=message,
            extra={
                "attemptsRemaining": attempt.attempts_remaining,
                "shouldBan": attempt.should_ban,
                "bannedUntil": attempt.banned_until,
            },
        )

    async def _record_attempt(self, identity: str) -> AttemptResult:
        # The auth failure response goes out even if bookkeeping breaks.
        try:
            return await run_in_threadpool(self.realm.record_attempt, identity)
        except Exception:
            logger.exception(
                json.dumps({"event": "admin_attempt_record_failed", "identity": identity})
            )
            return AttemptResult(
                should_ban=False,
                attempts_remaining=self.realm.policy.max_attempts,
            )
