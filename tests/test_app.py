from types import SimpleNamespace

from shankarmala import ratelimit


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}


def test_unknown_route_returns_json(client):
    response = client.get("/api/does-not-exist")

    assert response.status_code == 404
    assert response.get_json() == {"error": "Not found", "code": "NOT_FOUND"}


def test_wrong_method_returns_json(client):
    response = client.delete("/api/categories")

    assert response.status_code == 405
    assert response.get_json()["code"] == "METHOD_NOT_ALLOWED"


def test_rate_limit_blocks_after_limit(client, app):
    app.config["RATELIMIT_ENABLED"] = True

    statuses = [
        client.post("/api/newsletter", json={"email": f"fan{index}@example.com"}).status_code for index in range(10)
    ]
    blocked = client.post("/api/newsletter", json={"email": "late@example.com"})

    assert statuses == [200] * 10
    assert blocked.status_code == 429
    assert blocked.get_json()["code"] == "RATE_LIMITED"
    assert int(blocked.headers["Retry-After"]) >= 1
    assert blocked.headers["X-RateLimit-Limit"] == "10"
    assert blocked.headers["X-RateLimit-Remaining"] == "0"


def test_rate_limit_ignores_spoofed_forwarded_for(client, app):
    app.config["RATELIMIT_ENABLED"] = True

    for index in range(10):
        client.post(
            "/api/newsletter",
            json={"email": f"fan{index}@example.com"},
            headers={"X-Forwarded-For": f"203.0.113.{index}, 192.0.2.50"},
        )
    blocked = client.post(
        "/api/newsletter", json={"email": "late@example.com"}, headers={"X-Forwarded-For": "198.51.100.7, 192.0.2.50"}
    )

    assert blocked.status_code == 429


def test_rate_limiter_drops_expired_windows(monkeypatch):
    clock = {"now": 1000.0}
    monkeypatch.setattr(ratelimit, "time", SimpleNamespace(time=lambda: clock["now"]))
    limiter = ratelimit.RateLimiter()

    for index in range(5):
        limiter.hit(f"login:10.0.0.{index}", limit=5, window_seconds=60)
    assert len(limiter) == 5

    clock["now"] += 61
    allowed, remaining, _ = limiter.hit("login:10.0.0.9", limit=5, window_seconds=60)

    assert allowed is True
    assert remaining == 4
    assert len(limiter) == 1


def test_seed_command_creates_catalog_admin_and_content(app, db):
    app.config["DEFAULT_ADMIN_PASSWORD"] = "seeded-pass"
    runner = app.test_cli_runner()

    result = runner.invoke(args=["seed"])

    assert result.exit_code == 0
    assert "Seeded 6 gemstones and the default admin." in result.output
    assert db.users.find_one({"email": app.config["DEFAULT_ADMIN_EMAIL"]})["role"] == "admin"
    assert db.categories.count_documents({}) == 3
    assert db.homepage_sections.find_one({"key": "hero"})
    assert {document["_id"] for document in db.settings.find()} == {"navigation", "seo", "site", "theme"}

    again = runner.invoke(args=["seed"])
    assert "Seeded 0 gemstones." in again.output
    assert db.gemstones.count_documents({}) == 6


def test_seeded_storefront_is_public(app, client):
    runner = app.test_cli_runner()
    runner.invoke(args=["seed"])

    assert len(client.get("/api/gemstones").get_json()) == 6
    assert client.get("/api/public/navigation").status_code == 200
    assert client.get("/api/public/homepage").get_json()["hero"]["title"] == "Timeless Elegance"
