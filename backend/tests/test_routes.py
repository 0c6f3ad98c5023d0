"""HTTP API tests against the Flask test client."""

from db.repositories.presets import QualityPresetRepository

API = "/api/v1"


def test_root(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.get_json()["name"] == "Grabarr"


def test_health(client):
    resp = client.get(f"{API}/health")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "healthy"
    assert body["services"]["database"] == "OK"
    assert body["services"]["scheduler"] == "stopped"
    assert body["services"]["circuits_open"] == 0


def test_metrics(client):
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert b"grabarr_" in resp.data


def test_config_endpoint(client):
    resp = client.get(f"{API}/config")
    assert resp.status_code == 200
    assert "max_retries" in resp.get_json()


def test_list_presets(client):
    presets = client.get(f"{API}/presets").get_json()
    assert len(presets) == 5
    assert [p["name"] for p in presets if p["is_default"]] == ["Balanced"]


def test_built_in_preset_is_locked(client):
    balanced = next(p for p in QualityPresetRepository().list_presets() if p["name"] == "Balanced")
    resp = client.put(f"{API}/presets/{balanced['id']}", json={"min_seeders": 0})
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "PRESET_001"


def test_duplicate_and_make_default(client):
    anime = next(p for p in QualityPresetRepository().list_presets() if p["name"] == "Anime")
    resp = client.post(f"{API}/presets/{anime['id']}/duplicate", json={"name": "My Anime"})
    assert resp.status_code == 201
    copy_id = resp.get_json()["id"]

    resp = client.post(f"{API}/presets/{copy_id}/default")
    assert resp.status_code == 200
    defaults = [p for p in client.get(f"{API}/presets").get_json() if p["is_default"]]
    assert [p["id"] for p in defaults] == [copy_id]


def test_unknown_preset_is_404(client):
    assert client.get(f"{API}/presets/9999").status_code == 404


def test_library_media_and_due(client, tmp_path):
    resp = client.post(f"{API}/libraries", json={"name": "Movies", "root_path": str(tmp_path)})
    assert resp.status_code == 201
    library_id = resp.get_json()["id"]

    resp = client.post(f"{API}/media", json={"library_id": library_id, "media_type": "movie",
                                             "title": "Arrival", "year": 2016})
    assert resp.status_code == 201
    media_id = resp.get_json()["id"]

    due = client.get(f"{API}/media/due").get_json()
    assert [m["id"] for m in due] == [media_id]

    client.put(f"{API}/media/{media_id}/monitored", json={"monitored": False})
    assert client.get(f"{API}/media/due").get_json() == []


def test_media_requires_library(client):
    resp = client.post(f"{API}/media", json={"title": "Orphan"})
    assert resp.status_code == 400


def test_search_without_indexers(client, movie):
    resp = client.post(f"{API}/media/{movie['id']}/search")
    assert resp.status_code == 200
    assert resp.get_json()["outcome"] == "no_candidate"


def test_blocklist_roundtrip(client):
    resp = client.post(f"{API}/blocklist", json={"release_title": "Arrival.2016.1080p.HDCAM-FAKE"})
    assert resp.status_code == 201
    assert resp.get_json()["is_manual"] is True

    listing = client.get(f"{API}/blocklist").get_json()
    assert listing["total"] == 1
    assert listing["data"][0]["release_group"] == "FAKE"

    assert client.post(f"{API}/blocklist", json={}).status_code == 400


def test_group_trust_routes(client):
    assert client.post(f"{API}/groups/blocked", json={"name": "FAKE"}).status_code == 201
    assert [g["name"] for g in client.get(f"{API}/groups/blocked").get_json()] == ["fake"]
    assert client.delete(f"{API}/groups/blocked/FAKE").status_code == 200
    assert client.get(f"{API}/groups/blocked").get_json() == []


def test_indexer_api_key_is_redacted(client):
    resp = client.post(f"{API}/indexers", json={"name": "Jackett", "protocol": "torznab",
                                                "url": "http://jackett:9117", "api_key": "secret"})
    assert resp.status_code == 201
    assert resp.get_json()["api_key"] == "***configured***"
    assert client.get(f"{API}/indexers").get_json()[0]["api_key"] == "***configured***"


def test_tasks(client):
    names = {t["name"] for t in client.get(f"{API}/tasks").get_json()}
    assert "search" in names
    assert client.post(f"{API}/tasks/nope/run?wait=true").status_code == 404

    resp = client.post(f"{API}/tasks/blocklist_expiry/run?wait=true")
    assert resp.status_code == 200
    assert resp.get_json()["result"] == {"purged": 0}


def test_event_catalog(client):
    events = {e["name"]: e for e in client.get(f"{API}/events").get_json()}
    assert "release_grabbed" in events
    assert "signal" not in events["release_grabbed"]
    assert "media_id" in events["release_grabbed"]["payload_keys"]
