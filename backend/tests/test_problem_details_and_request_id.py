from __future__ import annotations


def test_request_id_is_generated_and_returned(client):
    r = client.get("/")
    assert r.status_code == 200
    assert "X-Request-Id" in r.headers
    assert r.headers["X-Request-Id"]


def test_request_id_is_propagated_from_client(client):
    r = client.get("/", headers={"X-Request-Id": "abc-123"})
    assert r.status_code == 200
    assert r.headers.get("X-Request-Id") == "abc-123"


def test_health_reports_configuration(client):
    body = client.get("/").json()
    assert body["message"] == "Contested NIL Marketplace API"
    assert body["status"] == "running"
    assert body["stripe"] == "missing"
    assert body["supabase"] == "configured"


def test_validation_errors_are_problem_json(client):
    # Missing required body fields => pydantic validation error
    r = client.post("/api/auth/login", json={})
    assert r.status_code == 422
    assert r.headers.get("content-type", "").startswith("application/problem+json")
    body = r.json()
    assert body["title"] == "Validation Failed"
    assert body["status"] == 422
    assert "errors" in body and isinstance(body["errors"], list)
    assert {e["path"] for e in body["errors"]} >= {"email", "password"}
    assert body.get("requestId")


def test_404_is_problem_json(client):
    r = client.get("/this-route-does-not-exist")
    assert r.status_code == 404
    assert r.headers.get("content-type", "").startswith("application/problem+json")
    body = r.json()
    assert body["status"] == 404
    assert body.get("requestId")


def test_auth_denied_is_problem_json(client):
    r = client.get("/api/auth/user")
    assert r.status_code == 401
    assert r.headers.get("content-type", "").startswith("application/problem+json")
    body = r.json()
    assert body["status"] == 401
    assert body["extensions"]["redirectTo"] == "/auth"
    assert body.get("requestId")


def test_app_errors_carry_code_extension(client):
    r = client.get("/api/campaigns/cmp_missing", headers={"Authorization": "Bearer not-a-session"})
    assert r.status_code == 401

    r = client.post(
        "/api/auth/login",
        json={"email": "nobody@brand.io", "password": "whatever-pw"},
    )
    assert r.status_code == 401
    body = r.json()
    assert body["title"] == "Unauthorized"
    assert body["extensions"]["code"] == "invalid_credentials"


def test_cors_allows_known_and_preview_origins(client):
    ok = client.options(
        "/api/auth/login",
        headers={"Origin": "https://preview-42.vercel.app", "Access-Control-Request-Method": "POST"},
    )
    assert ok.headers.get("access-control-allow-origin") == "https://preview-42.vercel.app"

    bad = client.options(
        "/api/auth/login",
        headers={"Origin": "https://evilcontested.app", "Access-Control-Request-Method": "POST"},
    )
    assert "access-control-allow-origin" not in bad.headers
