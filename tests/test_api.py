import pytest
from fastapi.testclient import TestClient

from conftest import add_article, add_event, record_usage

from newsdesk.main import create_app
from newsdesk.schemas.base import Operation


@pytest.fixture
def client(pipeline, settings):
    with TestClient(create_app(pipeline=pipeline, settings=settings)) as c:
        yield c


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["database"] == "ok"
    assert body["key_pool"]["status"] == "HEALTHY"
    assert body["config"]["llm"]["keys"] == ["K1", "K2", "K3", "K4", "K5"]
    assert "secret-1" not in resp.text


def test_stats_use_camel_case_keys(client, db):
    add_article(db, title="A")
    body = client.get("/api/events/stats").json()
    assert body["pipeline"]["totalArticles"] == 1
    assert body["pipeline"]["unmapped"] == 1
    assert "processing_percentage" in body["aggregation"]


def test_map_all_returns_stage_result(client, generator, db):
    ids = [add_article(db, title=f"Story {i}") for i in range(2)]
    generator.queue([{"eventTitle": "Same story", "eventType": "politics", "confidenceScore": 0.8, "articleIds": ids}])
    resp = client.post("/api/events/map-all")
    assert resp.status_code == 200
    assert resp.json()["status"] == "COMPLETED"
    assert resp.json()["counters"]["events_created"] == 1


def test_stage_error_becomes_bad_gateway(client, generator, db):
    add_article(db, title="Story")
    generator.queue("nothing useful")
    resp = client.post("/api/events/map-all")
    assert resp.status_code == 502
    assert resp.json()["stage"] == "event_mapping"


def test_merge_accepts_window(client, db):
    add_event(db, [add_article(db, title="One")])
    resp = client.post("/api/events/merge", json={"window_hours": 12})
    assert resp.status_code == 200
    assert resp.json()["status"] == "NOTHING_TO_DO"


def test_api_key_gate(pipeline, settings):
    settings.api_key = "s3cret"
    with TestClient(create_app(pipeline=pipeline, settings=settings)) as c:
        assert c.post("/api/events/aggregate-all").status_code == 401
        ok = c.post("/api/events/aggregate-all", headers={"X-API-Key": "s3cret"})
        assert ok.status_code == 200
        assert c.get("/api/events/stats").status_code == 200


def test_event_views(client, db):
    event_id = add_event(db, [add_article(db, title="One")], event_type="sports")
    listed = client.get("/api/events", params={"event_type": "sports"}).json()
    assert listed["count"] == 1
    detail = client.get(f"/api/events/{event_id}").json()
    assert detail["articles"][0]["title"] == "One"
    assert client.get("/api/events/9999").status_code == 404
    assert client.get("/api/events/recent").json()["count"] == 1


def test_monitoring_routes(client, db):
    record_usage(db, "K1", Operation.AGGREGATE, count=300)
    record_usage(db, "K2", Operation.AGGREGATE, count=2, success=False)

    resp = client.get("/api/monitoring/can-use", params={"key": "K1", "operation": "AGGREGATION"})
    assert resp.json()["can_use"] is False
    assert client.get("/api/monitoring/health").json()["available_count"] == 4

    logs = client.get("/api/monitoring/logs", params={"key": "K2"}).json()
    assert logs["count"] == 2
    assert client.get("/api/monitoring/failures").json()["count"] == 2

    by_op = client.get("/api/monitoring/operations/AGGREGATION").json()
    assert by_op["total_calls"] == 302
    assert by_op["failed_calls"] == 2

    usage = client.get("/api/monitoring/usage").json()
    assert usage["keys"]["K1"]["hourly_requests"] == 300
    assert usage["limits"]["AGGREGATION"]["requests_per_hour"] == 300

    recs = client.get("/api/monitoring/recommendations").json()["recommendations"]
    assert any("K1" in r for r in recs)


def test_ingest_route(client):
    article = {"url": "https://news.example/x", "title": "X", "content": "Body", "source": "New Age"}
    resp = client.post("/api/events/ingest", json=[article, article])
    assert resp.json() == {"saved": 1, "duplicates": 1}
    bad = client.post("/api/events/ingest", json=[{**article, "title": "  "}])
    assert bad.status_code == 422
