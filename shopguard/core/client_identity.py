from collections.abc import Collection

from starlette.requests import HTTPConnection

UNKNOWN_CLIENT = "unknown"

_FORWARDED_FOR = "x-forwarded-for"
_REAL_IP = "x-real-ip"
_CF_CONNECTING_IP = "cf-connecting-ip"


def _peer_address(request: HTTPConnection) -> str | None:
    if request.client and request.client.host:
        return request.client.host
    return None


def client_identity(request: HTTPConnection, trusted_proxies: Collection[str] = ()) -> str:
    """Bucketing key for attempts, bans and rate limits.

    Forwarding headers are client controlled. With no ``trusted_proxies`` they
    are honoured unconditionally; otherwise only when the connecting peer is one
    of the listed proxies, and the peer address is used for everyone else.
    """
    if trusted_proxies:
        peer = _peer_address(request)
        if peer not in trusted_proxies:
            return peer or UNKNOWN_CLIENT

    forwarded_for = request.headers.get(_FORWARDED_FOR, "").strip()
    if forwarded_for:
        return forwarded_for.split(",")[0].strip() or UNKNOWN_CLIENT

    real_ip = request.headers.get(_REAL_IP, "").strip()
    if real_ip:
        return real_ip

    cf_connecting_ip = request.headers.get(_CF_CONNECTING_IP, "").strip()
    if cf_connecting_ip:
        return cf_connecting_ip

    return UNKNOWN_CLIENT
