# =============================================
# File: tests/test_experiments_endpoint.py
# Purpose: Experiment lifecycle over HTTP, including problem+json errors and the results view
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

BASE = "/api/v1/tenants/tenant-1/experiments"


def _create(client, **overrides):
    payload = {
        "name": "PDP ranking",
        "controlStrategy": "trending",
        "variantStrategy": "collaborative",
        "trafficSplit": 50,
        "metric": "ctr",
        "placementId": "pdp",
    }
    payload.update(overrides)
    r = client.post(BASE, json=payload)
    assert r.status_code == 201, r.text
    return r.json()["data"]


def test_create_starts_in_draft_with_result_rows(client, seed, stores):
    exp = _create(client)
    assert exp["status"] == "draft"
    assert exp["trafficSplit"] == 50
    assert exp["startedAt"] is None
    rows = stores.experiments.get_results(exp["id"])
    assert sorted(r.variant for r in rows) == ["control", "variant"]


def test_create_validates_split_and_strategy(client, seed):
    assert client.post(BASE, json={"name": "x", "controlStrategy": "trending", "variantStrategy": "collaborative", "trafficSplit": 100}).status_code == 422
    assert client.post(BASE, json={"name": "x", "controlStrategy": "nope", "variantStrategy": "collaborative"}).status_code == 422


def test_start_pause_complete(client, seed):
    exp = _create(client)
    url = f"{BASE}/{exp['id']}"

    running = client.put(url, json={"status": "running"}).json()["data"]
    assert running["status"] == "running" and running["startedAt"]

    assert client.put(url, json={"status": "paused"}).json()["data"]["status"] == "paused"
    done = client.put(url, json={"status": "completed"}).json()["data"]
    assert done["status"] == "completed" and done["completedAt"]

    r = client.put(url, json={"status": "running"})
    assert r.status_code == 400
    problem = r.json()
    assert problem["status"] == 400
    assert problem["type"].endswith("/bad-request")
    assert "completed" in problem["detail"]
    assert r.headers["content-type"].startswith("application/problem+json")


def test_second_running_experiment_on_placement_conflicts(client, seed):
    first = _create(client)
    second = _create(client, name="PDP ranking v2")
    assert client.put(f"{BASE}/{first['id']}", json={"status": "running"}).status_code == 200

    r = client.put(f"{BASE}/{second['id']}", json={"status": "running"})
    assert r.status_code == 409
    assert r.json()["title"] == "Conflict"


def test_update_name_and_split(client, seed):
    exp = _create(client)
    data = client.put(f"{BASE}/{exp['id']}", json={"name": "Renamed", "trafficSplit": 80}).json()["data"]
    assert data["name"] == "Renamed"
    assert data["trafficSplit"] == 80
    assert data["status"] == "draft"


def test_delete_rules(client, seed):
    exp = _create(client)
    url = f"{BASE}/{exp['id']}"
    client.put(url, json={"status": "running"})
    assert client.delete(url).status_code == 400

    client.put(url, json={"status": "completed"})
    assert client.delete(url).status_code == 200
    assert client.get(url).status_code == 404


def test_list_with_status_filter(client, seed):
    a = _create(client, placementId="home")
    _create(client, placementId="cart")
    client.put(f"{BASE}/{a['id']}", json={"status": "running"})

    body = client.get(BASE).json()
    assert body["pagination"]["total"] == 2
    running = client.get(BASE, params={"status": "running"}).json()
    assert [e["id"] for e in running["data"]] == [a["id"]]
    assert running["pagination"]["hasMore"] is False


def test_experiments_are_tenant_scoped(client, seed):
    exp = _create(client)
    r = client.get(f"/api/v1/tenants/someone-else/experiments/{exp['id']}")
    assert r.status_code == 404


def test_results_endpoint(client, seed):
    exp = _create(client)
    client.put(f"{BASE}/{exp['id']}", json={"status": "running"})
    seed.counters(exp["id"], "control", impressions=10000, clicks=800)
    seed.counters(exp["id"], "variant", impressions=10000, clicks=960)

    data = client.get(f"{BASE}/{exp['id']}/results").json()["data"]
    assert data["experimentName"] == "PDP ranking"
    assert data["metric"] == "ctr"
    assert data["control"]["strategy"] == "trending"
    assert data["variant"]["strategy"] == "collaborative"
    assert abs(data["lift"] - 0.2) < 1e-9
    assert data["isSignificant"] is True
    assert data["duration"]["days"] >= 0
    lo, hi = data["variant"]["confidenceInterval"]
    assert lo < data["variant"]["metricValue"] < hi


def test_results_for_untouched_experiment(client, seed):
    exp = _create(client)
    data = client.get(f"{BASE}/{exp['id']}/results").json()["data"]
    assert data["lift"] == 0
    assert data["pValue"] >= 1.0
    assert data["isSignificant"] is False
    assert data["duration"] == {"startedAt": None, "days": 0}
