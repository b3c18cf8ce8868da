"""Application wiring: probes, error envelope and health reporting.

Invariants:
    - Every error response has the shape {"success": false, "error": {"code", "message"}}
    - Detailed health is 503 only when the database is unreachable
"""


def test_probes(anon_client):
    assert anon_client.get("/health").json() == {"status": "healthy"}
    assert anon_client.get("/ready").json() == {"status": "ready"}
    assert anon_client.get("/").json()["status"] == "healthy"


def test_security_headers(anon_client):
    res = anon_client.get("/health")
    assert res.headers["X-Content-Type-Options"] == "nosniff"
    assert res.headers["X-Frame-Options"] == "DENY"


def test_unknown_route_uses_error_envelope(anon_client):
    res = anon_client.get("/api/v1/nope")
    assert res.status_code == 404
    assert res.json() == {"success": False, "error": {"code": "NOT_FOUND", "message": "Not Found"}}


def test_detailed_health(anon_client):
    res = anon_client.get("/api/v1/health/detailed")

    assert res.status_code == 200
    report = res.json()["data"]
    assert report["status"] == "healthy"
    assert report["checks"]["database"]["status"] == "healthy"
    assert report["checks"]["webhooks"]["make_configured"] is True


def test_detailed_health_reports_database_outage(anon_client, db):
    db.fail("profiles", "select", "connection refused")

    res = anon_client.get("/api/v1/health/detailed")

    assert res.status_code == 503
    report = res.json()["data"]
    assert report["status"] == "unhealthy"
    assert report["checks"]["database"]["error"] == "connection refused"


def test_usage_route(client):
    res = client.get("/api/v1/usage")

    assert res.status_code == 200
    data = res.json()["data"]
    assert data["minutes"]["limit"] == 10
    assert data["assistants"]["limit"] == 1


def test_admin_summary_requires_system_admin(client):
    res = client.get("/api/v1/admin/usage-summary")
    assert res.status_code == 403
    assert res.json()["error"]["code"] == "FORBIDDEN"


def test_admin_summary_for_system_admin(client, db):
    db.rows("profiles")[0]["is_system_admin"] = True

    res = client.get("/api/v1/admin/usage-summary")

    assert res.status_code == 200
    assert res.json()["success"] is True
