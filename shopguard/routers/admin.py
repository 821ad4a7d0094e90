from collections.abc import Collection

from fastapi import APIRouter, Depends, Request

from shopguard.core.api_docs import ADMIN_ROUTE_ERRORS, error_responses
from shopguard.core.client_identity import client_identity
from shopguard.core.security_current import get_durable_realm, get_settings, require_admin
from shopguard.schemas.admin import (
    AccessAttemptOut,
    BannedIPListOut,
    BannedIPOut,
    UnbanIn,
    UnbanOut,
)
from shopguard.services.admin_auth_service import AdminPrincipal
from shopguard.services.ip_ban_service import BanRealm

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _trusted_proxies(request: Request) -> Collection[str]:
    return frozenset(get_settings(request).trusted_proxy_ips)


@router.post(
    "/access-attempt",
    response_model=AccessAttemptOut,
    summary="Report an unauthorized admin access attempt",
    description=(
        "Records an attempt for the caller's identity in the database realm. "
        "Reachable without an admin session."
    ),
    responses=error_responses(
        (403, "ip_banned"), (500, "internal_error"), path="/api/admin/access-attempt"
    ),
)
def report_access_attempt(request: Request, realm: BanRealm = Depends(get_durable_realm)):
    identity = client_identity(request, _trusted_proxies(request))
    result = realm.record_attempt(identity)
    return AccessAttemptOut(
        attempts_remaining=result.attempts_remaining,
        should_ban=result.should_ban,
        banned_until=result.banned_until,
    )


@router.get(
    "/banned-ips",
    response_model=BannedIPListOut,
    summary="List active IP bans",
    description="Active bans from the database realm only.",
    responses=error_responses(
        *ADMIN_ROUTE_ERRORS, (500, "internal_error"), path="/api/admin/banned-ips", gated=True
    ),
)
def list_banned_ips(
    realm: BanRealm = Depends(get_durable_realm),
    _: AdminPrincipal = Depends(require_admin),
):
    entries = realm.list_active()
    return BannedIPListOut(
        banned_ips=[
            BannedIPOut(ip=entry.identity, banned_until=entry.banned_until, attempts=entry.attempts)
            for entry in entries
        ]
    )


@router.delete(
    "/banned-ips",
    response_model=UnbanOut,
    summary="Lift an IP ban",
    responses=error_responses(
        *ADMIN_ROUTE_ERRORS,
        (422, "validation_error"),
        (500, "internal_error"),
        path="/api/admin/banned-ips",
        gated=True,
    ),
)
def unban_ip(
    payload: UnbanIn,
    realm: BanRealm = Depends(get_durable_realm),
    _: AdminPrincipal = Depends(require_admin),
):
    was_banned = realm.unban(payload.ip)
    message = f"IP {payload.ip} has been unbanned" if was_banned else f"IP {payload.ip} was not banned"
    return UnbanOut(success=True, message=message)
