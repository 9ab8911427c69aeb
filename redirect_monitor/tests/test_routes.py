import threading

from redirect_monitor.services.url_validation import REDIRECT_ROUTES, ProbeResult, RedirectRoute

from conftest import build_test_app

ADMIN_TOKEN = "monitor-admin-token"


def admin_headers(token=ADMIN_TOKEN):
    return {"Authorization": f"Bearer {token}"}


def test_legacy_paths_redirect_to_destinations(client):
    for route in REDIRECT_ROUTES:
        response = client.get(route.path)
        assert response.status_code == 301
        assert response.headers["Location"] == route.destination


def test_legacy_path_without_trailing_slash_is_canonicalised(client):
    response = client.get("/support-redirect")
    assert response.status_code in (301, 308)
    assert response.headers["Location"].endswith("/support-redirect/")


def test_unknown_path_is_not_found(client):
    assert client.get("/not-a-redirect/").status_code == 404


def test_security_headers_and_request_id(client):
    response = client.get("/healthz", headers={"X-Request-ID": "req-12345678"})
    assert response.status_code == 200
    assert response.headers.get("X-Request-ID") == "req-12345678"
    assert response.headers.get("X-Content-Type-Options") == "nosniff"
    assert response.headers.get("X-Frame-Options") == "DENY"

    generated = client.get("/healthz", headers={"X-Request-ID": "bad id!"})
    assert generated.headers.get("X-Request-ID") != "bad id!"
    assert len(generated.headers.get("X-Request-ID")) == 32


def test_hsts_header_on_https_requests(client):
    response = client.get("/healthz", base_url="https://example.com")
    assert response.headers.get("Strict-Transport-Security") == "max-age=31536000; includeSubDomains"


def test_robots_disallows_api_and_redirects(client):
    body = client.get("/robots.txt").get_data(as_text=True)
    assert "Disallow: /api/" in body
    for route in REDIRECT_ROUTES:
        assert f"Disallow: {route.path}" in body


def test_healthz_reports_scheduler_state(client):
    payload = client.get("/healthz").get_json()
    assert payload["status"] == "ok"
    assert payload["scheduler"]["isRunning"] is False
    assert payload["scheduler"]["isValidating"] is False


def test_readyz_warms_until_every_route_is_validated(client):
    warming = client.get("/readyz")
    assert warming.status_code == 503
    assert warming.get_json()["status"] == "warming"

    client.get("/api/url-validation/validate-all")

    ready = client.get("/readyz")
    assert ready.status_code == 200
    assert ready.get_json()["checks"] == {"scheduler_configured": True, "all_routes_validated": True}


def test_status_is_empty_before_first_pass(client):
    response = client.get("/api/url-validation/status")
    assert response.status_code == 200
    assert response.headers.get("Cache-Control") == "no-store"
    assert response.headers.get("X-Robots-Tag") == "noindex, nofollow, noarchive"
    assert response.get_json() == {"results": [], "unhealthy": [], "hasIssues": False, "lastUpdated": None}


def test_validate_all_runs_pass_and_reports_issues(client, recording_prober):
    broken = REDIRECT_ROUTES[2]
    recording_prober.outcomes[broken.destination] = ProbeResult(status=502, error="Server returned 502")

    payload = client.get("/api/url-validation/validate-all").get_json()

    assert payload["hasIssues"] is True
    assert payload["timestamp"]
    assert [item["route"] for item in payload["results"]] == [route.path for route in REDIRECT_ROUTES]
    assert len(recording_prober.calls) == len(REDIRECT_ROUTES)

    status = client.get("/api/url-validation/status").get_json()
    assert [item["route"] for item in status["unhealthy"]] == [broken.path]
    assert status["unhealthy"][0]["error"] == "Server returned 502"
    assert status["hasIssues"] is True
    assert status["lastUpdated"] == status["results"][0]["lastChecked"]


def test_route_status_lookup(client):
    missing = client.get("/api/url-validation/route-status", query_string={"path": "/non-existent-route/"})
    assert missing.status_code == 200
    assert missing.get_json() is None

    client.get("/api/url-validation/validate-all")
    found = client.get("/api/url-validation/route-status", query_string={"path": "/support-redirect/"})
    assert found.get_json()["route"] == "/support-redirect/"
    assert found.get_json()["isHealthy"] is True


def test_route_status_requires_path(client):
    response = client.get("/api/url-validation/route-status")
    assert response.status_code == 400
    assert "path" in response.get_json()["error"]


def test_api_not_found_is_json(client):
    response = client.get("/api/url-validation/unknown")
    assert response.status_code == 404
    assert "error" in response.get_json()


def test_validate_all_conflicts_with_running_pass():
    entered = threading.Event()
    release = threading.Event()

    def blocking_prober(url, timeout=None):
        entered.set()
        release.wait(5)
        return ProbeResult(status=200)

    app = build_test_app({"URL_VALIDATION_PROBER": blocking_prober})
    client = app.test_client()
    scheduler = app.extensions["url_validation"]
    worker = threading.Thread(target=scheduler.run_pass)
    worker.start()
    try:
        assert entered.wait(5)
        response = client.get("/api/url-validation/validate-all")
        assert response.status_code == 409
        assert response.get_json() == {"error": "Validation already in progress"}
    finally:
        release.set()
        worker.join(5)


def test_admin_endpoints_hidden_without_token(client):
    assert client.get("/api/url-validation/admin/dashboard").status_code == 404
    assert client.get("/api/url-validation/admin/validate-all").status_code == 404


def test_admin_endpoints_reject_wrong_token(recording_prober):
    client = build_test_app({
        "URL_VALIDATION_PROBER": recording_prober,
        "URL_VALIDATION_ADMIN_TOKEN": ADMIN_TOKEN,
    }).test_client()

    assert client.get("/api/url-validation/admin/dashboard").status_code == 401
    assert client.get("/api/url-validation/admin/dashboard", headers=admin_headers("wrong")).status_code == 401
    assert recording_prober.calls == []


def test_admin_validate_all_includes_unhealthy(recording_prober):
    recording_prober.default = ProbeResult(status=None, error="Request timeout")
    client = build_test_app({
        "URL_VALIDATION_PROBER": recording_prober,
        "URL_VALIDATION_ADMIN_TOKEN": ADMIN_TOKEN,
    }).test_client()

    response = client.get("/api/url-validation/admin/validate-all", headers={"X-Admin-Token": ADMIN_TOKEN})

    payload = response.get_json()
    assert response.status_code == 200
    assert payload["hasIssues"] is True
    assert len(payload["unhealthy"]) == len(REDIRECT_ROUTES)
    assert all(item["error"] == "Request timeout" for item in payload["unhealthy"])


def test_admin_dashboard_end_to_end_transition(destination_server):
    destination_server.script("/form/", 200, 503)
    routes = [
        RedirectRoute(name="Form", path="/form/", destination=destination_server.url("/form/")),
        RedirectRoute(name="Other", path="/other/", destination=destination_server.url("/other/")),
    ]
    app = build_test_app({
        "URL_VALIDATION_ROUTES": routes,
        "URL_VALIDATION_TIMEOUT_SECONDS": 2,
        "URL_VALIDATION_ADMIN_TOKEN": ADMIN_TOKEN,
    })
    client = app.test_client()
    scheduler = app.extensions["url_validation"]

    scheduler.run_pass()
    first = client.get("/api/url-validation/route-status", query_string={"path": "/form/"}).get_json()
    assert first["isHealthy"] is True

    scheduler.run_pass()
    second = client.get("/api/url-validation/route-status", query_string={"path": "/form/"}).get_json()
    assert second["isHealthy"] is False

    dashboard = client.get("/api/url-validation/admin/dashboard", headers=admin_headers()).get_json()
    assert dashboard["summary"] == {"total": 2, "healthy": 1, "unhealthy": 1, "healthPercentage": 50}
    assert dashboard["unhealthyList"] == [
        {
            "path": "/form/",
            "destination": destination_server.url("/form/"),
            "error": "Server returned 503",
            "status": 503,
        }
    ]
    form_route = next(item for item in dashboard["routes"] if item["path"] == "/form/")
    assert [entry["status"] for entry in form_route["history"]] == [200, 503]
    assert dashboard["scheduler"]["isValidating"] is False
    assert dashboard["scheduler"]["lastPassDurationMs"] is not None
