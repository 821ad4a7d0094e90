import json
from pathlib import Path

from shopguard.main import app


def test_openapi_paths_snapshot():
    snapshot_path = Path(__file__).parent / "snapshots" / "openapi_paths_snapshot.json"
    expected_paths = json.loads(snapshot_path.read_text(encoding="utf-8"))
    actual_paths = sorted(app.openapi()["paths"].keys())
    assert actual_paths == expected_paths


def test_admin_routes_document_error_envelope():
    schema = app.openapi()
    banned_ips = schema["paths"]["/api/admin/banned-ips"]

    assert {"get", "delete"} <= set(banned_ips)
    assert {"401", "403"} <= set(banned_ips["get"]["responses"])
    assert "ErrorOut" in schema["components"]["schemas"]


def test_admin_route_examples_list_each_error_code():
    responses = app.openapi()["paths"]["/api/admin/banned-ips"]["get"]["responses"]

    forbidden = responses["403"]["content"]["application/json"]["examples"]
    assert set(forbidden) == {"invalid_token", "access_denied", "ip_banned", "user_not_found"}
    banned = forbidden["ip_banned"]["value"]
    assert banned["type"] == "ip_banned"
    assert banned["error"]["path"] == "/api/admin/banned-ips"
    assert forbidden["access_denied"]["value"]["shouldBan"] is True
    assert "shouldBan" not in forbidden["user_not_found"]["value"]

    unauthorized = responses["401"]["content"]["application/json"]["examples"]
    assert unauthorized["no_token"]["value"]["error"]["code"] == "no_token"


def test_auth_route_examples_match_route_errors():
    paths = app.openapi()["paths"]

    me = paths["/api/auth/me"]["get"]["responses"]
    assert set(me["401"]["content"]["application/json"]["examples"]) == {"no_token", "invalid_token"}
    assert "user_not_found" in me["404"]["content"]["application/json"]["examples"]

    register = paths["/api/auth/register"]["post"]["responses"]
    limited = register["429"]["content"]["application/json"]["examples"]["rate_limited"]["value"]
    assert limited["retryAfter"] == 900
