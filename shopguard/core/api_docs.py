from collections import defaultdict
from typing import Any

from shopguard.schemas.common import ErrorOut

EXAMPLE_BANNED_UNTIL = 1798761600000

ErrorCase = tuple[int, str]

# (status, error code) -> (message, extra top-level body fields)
_ERROR_CATALOG: dict[ErrorCase, tuple[str, dict[str, Any]]] = {
    (400, "bad_request"): ("Form submitted too quickly", {}),
    (401, "no_token"): ("No authentication token", {}),
    (401, "invalid_token"): ("Invalid authentication token", {}),
    (401, "invalid_credentials"): ("Invalid credentials", {}),
    (403, "invalid_token"): ("Invalid or expired token", {}),
    (403, "access_denied"): ("Access denied. Admin privileges required.", {}),
    (403, "user_not_found"): ("User not found", {}),
    (403, "ip_banned"): (
        "IP permanently banned for unauthorized admin access attempt. "
        "Contact administrator for manual unban.",
        {"type": "ip_banned", "bannedUntil": EXAMPLE_BANNED_UNTIL},
    ),
    (404, "user_not_found"): ("User not found", {}),
    (409, "conflict"): ("User with this email already exists", {}),
    (422, "validation_error"): ("Validation failed", {}),
    (429, "rate_limited"): ("Too many requests. Please try again later.", {"retryAfter": 900}),
    (500, "internal_error"): ("Internal server error", {}),
}

# Rejections from the admin access gate carry the attempt bookkeeping.
_GATE_FIELDS = {"attemptsRemaining": 0, "shouldBan": True, "bannedUntil": EXAMPLE_BANNED_UNTIL}
_GATE_FAILURES = frozenset({(401, "no_token"), (403, "invalid_token"), (403, "access_denied")})

ADMIN_GATE_ERRORS: tuple[ErrorCase, ...] = (
    (401, "no_token"),
    (403, "invalid_token"),
    (403, "access_denied"),
    (403, "ip_banned"),
)
ADMIN_ROUTE_ERRORS: tuple[ErrorCase, ...] = ADMIN_GATE_ERRORS + ((403, "user_not_found"),)


def error_responses(*cases: ErrorCase, path: str = "/example", gated: bool = False) -> dict[int, dict]:
    """OpenAPI ``responses`` listing one named example per error a route can emit.

    ``gated`` adds the attempt fields the admin access gate puts beside the
    envelope when it rejects a request.
    """
    grouped: dict[int, dict[str, dict]] = defaultdict(dict)
    for status_code, code in cases:
        message, extra = _ERROR_CATALOG[(status_code, code)]
        body: dict[str, Any] = {
            "error": {
                "code": code,
                "message": message,
                "request_id": "request-id",
                "path": path,
                "details": None,
            },
            **extra,
        }
        if gated and (status_code, code) in _GATE_FAILURES:
            body.update(_GATE_FIELDS)
        grouped[status_code][code] = {"summary": message, "value": body}

    return {
        status_code: {
            "model": ErrorOut,
            "description": ", ".join(f"`{code}`" for code in grouped[status_code]),
            "content": {"application/json": {"examples": grouped[status_code]}},
        }
        for status_code in sorted(grouped)
    }
