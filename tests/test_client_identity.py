from starlette.requests import Request

from shopguard.core.client_identity import UNKNOWN_CLIENT, client_identity


def _request(headers: dict[str, str] | None = None, client: tuple[str, int] | None = ("10.0.0.9", 5000)) -> Request:
    raw_headers = [(key.lower().encode("latin-1"), value.encode("latin-1")) for key, value in (headers or {}).items()]
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/api/admin/banned-ips",
            "query_string": b"",
            "headers": raw_headers,
            "client": client,
        }
    )


def test_forwarded_for_uses_first_entry_trimmed():
    request = _request({"X-Forwarded-For": " 203.0.113.5 , 10.0.0.1, 10.0.0.2"})
    assert client_identity(request) == "203.0.113.5"


def test_header_priority_forwarded_then_real_ip_then_cf():
    all_headers = {
        "X-Forwarded-For": "198.51.100.1",
        "X-Real-IP": "198.51.100.2",
        "CF-Connecting-IP": "198.51.100.3",
    }
    assert client_identity(_request(all_headers)) == "198.51.100.1"

    without_forwarded = {k: v for k, v in all_headers.items() if k != "X-Forwarded-For"}
    assert client_identity(_request(without_forwarded)) == "198.51.100.2"

    assert client_identity(_request({"CF-Connecting-IP": "198.51.100.3"})) == "198.51.100.3"


def test_missing_headers_fall_back_to_unknown_even_with_peer_address():
    assert client_identity(_request()) == UNKNOWN_CLIENT
    assert client_identity(_request(client=None)) == UNKNOWN_CLIENT


def test_values_are_not_validated():
    assert client_identity(_request({"X-Real-IP": "definitely-not-an-ip"})) == "definitely-not-an-ip"


def test_trusted_proxy_peer_keeps_forwarded_header():
    request = _request({"X-Forwarded-For": "203.0.113.5"}, client=("10.0.0.1", 443))
    assert client_identity(request, trusted_proxies={"10.0.0.1"}) == "203.0.113.5"


def test_untrusted_peer_cannot_spoof_forwarded_header():
    request = _request({"X-Forwarded-For": "203.0.113.5"}, client=("198.51.100.77", 443))
    assert client_identity(request, trusted_proxies={"10.0.0.1"}) == "198.51.100.77"

    no_peer = _request({"X-Forwarded-For": "203.0.113.5"}, client=None)
    assert client_identity(no_peer, trusted_proxies={"10.0.0.1"}) == UNKNOWN_CLIENT


def test_blank_first_forwarded_entry_maps_to_unknown():
    request = _request({"X-Forwarded-For": ", 198.51.100.4", "X-Real-IP": "198.51.100.5"})
    assert client_identity(request) == UNKNOWN_CLIENT


def test_whitespace_only_forwarded_header_falls_through_to_real_ip():
    request = _request({"X-Forwarded-For": "   ", "X-Real-IP": "198.51.100.5"})
    assert client_identity(request) == "198.51.100.5"
