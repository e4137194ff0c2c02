# tests/test_recommend_endpoint.py

import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import pytest


@pytest.fixture
def shop(seed):
    for pid in ("a", "b", "c"):
        seed.item(pid, category="shoes", price=20)
    seed.event("someone", "a", "purchase")
    seed.event("someone", "b", "product_viewed")
    return seed


def test_get_recommendations_shape(client, shop):
    r = client.get("/api/v1/recommendations", params={"tenant_id": "tenant-1", "user_id": "u1", "limit": 5})
    assert r.status_code == 200
    assert r.headers.get("X-Request-ID")
    body = r.json()
    assert set(body) == {"data", "meta"}
    assert set(body["meta"]) == {"strategy", "isFallback", "experimentId", "variant", "cached"}
    assert body["meta"]["strategy"] == "trending"
    first = body["data"][0]
    assert first["productId"] == "a"
    assert first["score"] == 1.0
    assert first["name"] == "Product a"
    assert first["imageUrl"].endswith("a.png")
    assert first["price"] == 20
    assert first["reason"]


def test_new_user_collaborative_is_trending_fallback(client, shop):
    params = {"tenant_id": "tenant-1", "user_id": "fresh"}
    collab = client.get("/api/v1/recommendations", params={**params, "strategy": "collaborative"}).json()
    trend = client.get("/api/v1/recommendations", params={**params, "strategy": "trending"}).json()
    assert collab["meta"]["isFallback"] is True
    assert [d["productId"] for d in collab["data"]] == [d["productId"] for d in trend["data"]]


def test_second_call_is_cached(client, shop):
    params = {"tenant_id": "tenant-1", "user_id": "u1"}
    r1 = client.get("/api/v1/recommendations", params=params).json()
    r2 = client.get("/api/v1/recommendations", params=params).json()
    assert r1["meta"]["cached"] is False
    assert r2["meta"]["cached"] is True
    assert r1["data"] == r2["data"]


def test_cache_disabled_by_env(client, shop, monkeypatch):
    monkeypatch.setenv("CACHE_ENABLED", "0")
    params = {"tenant_id": "tenant-1", "user_id": "u1"}
    client.get("/api/v1/recommendations", params=params)
    r2 = client.get("/api/v1/recommendations", params=params).json()
    assert r2["meta"]["cached"] is False


def test_post_accepts_camel_case_body(client, shop):
    r = client.post(
        "/api/v1/recommendations",
        json={"tenantId": "tenant-1", "userId": "u1", "limit": 2, "strategy": "frequently_bought_together"},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["meta"]["isFallback"] is True
    assert len(body["data"]) == 2


@pytest.mark.parametrize(
    "params",
    [
        {"tenant_id": "tenant-1", "user_id": "u1", "limit": 0},
        {"tenant_id": "tenant-1", "user_id": "u1", "limit": 51},
        {"tenant_id": "tenant-1", "user_id": "u1", "strategy": "magic"},
        {"tenant_id": "tenant-1"},
    ],
)
def test_invalid_requests_rejected(client, shop, params):
    r = client.get("/api/v1/recommendations", params=params)
    assert r.status_code == 422


def test_experiment_metadata_exposed(client, shop):
    exp = shop.experiment(control="trending", variant="content_based", placement_id="home")
    r = client.get(
        "/api/v1/recommendations", params={"tenant_id": "tenant-1", "user_id": "u1", "placement_id": "home"}
    )
    meta = r.json()["meta"]
    assert meta["experimentId"] == exp.id
    assert meta["variant"] in ("control", "variant")


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
