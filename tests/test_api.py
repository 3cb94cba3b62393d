"""HTTP surface: feed cache, ingestion, analytics and degraded mode."""

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlmodel import Session

from balizas.api.deps import get_dgt_client
from balizas.config import settings
from balizas.connectors.dgt.client import DGTClient
from balizas.core.cache import FeedCache
from balizas.database import get_session
from balizas.main import app

from test_normalizer import DATEX2_XML


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class FeedStub:
    """Mock DGT endpoint counting how often it is hit."""

    def __init__(self, status_code=200, body=DATEX2_XML):
        self.status_code = status_code
        self.body = body
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        return httpx.Response(self.status_code, text=self.body)


class BrokenSession:
    """Session stand-in whose every query fails with ``error``."""

    def __init__(self, error):
        self.error = error

    def exec(self, *args, **kwargs):
        raise self.error

    def get(self, *args, **kwargs):
        raise self.error

    def rollback(self):
        pass


def connection_refused():
    return OperationalError(
        "SELECT 1", {}, ConnectionRefusedError(111, "Connection refused")
    )


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def feed():
    return FeedStub()


@pytest.fixture()
def client(engine, feed, clock, monkeypatch):
    monkeypatch.setattr(settings, "feed_source", "datex2")

    def _session():
        with Session(engine) as session:
            yield session

    def _dgt_client():
        return DGTClient(
            datex2_url="https://feed.test/datex2.xml",
            transport=httpx.MockTransport(feed),
            retry_base_delay=0,
        )

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_dgt_client] = _dgt_client
    app.state.feed_cache = FeedCache(60, clock=clock)
    yield TestClient(app)
    app.dependency_overrides.clear()


def broken_storage(error):
    def _session():
        yield BrokenSession(error)

    app.dependency_overrides[get_session] = _session


# ── Live feed ──


def test_feed_is_cached_until_ttl(client, feed, clock):
    first = client.get("/api/v16")
    assert first.status_code == 200
    ids = [b["id"] for b in first.json()["balizas"]]
    assert ids == ["SIT-1", "SIT-4"]
    assert first.json()["balizas"][0]["lastSeen"].startswith("2025-01-15T09:30:00")

    client.get("/api/v16")
    assert feed.calls == 1

    clock.now += 61
    client.get("/api/v16")
    assert feed.calls == 2


def test_feed_snapshot_is_persisted(client):
    client.get("/api/v16")

    stats = client.get("/api/admin/stats/general").json()

    assert stats["total"] == 2
    assert stats["activas"] == 2


def test_refresh_bypasses_cache(client, feed):
    client.get("/api/v16")

    resp = client.post("/api/v16/refresh")

    assert resp.json() == {"success": True, "message": "Cache actualizado", "count": 2}
    assert feed.calls == 2


def test_feed_outage_serves_example_beacons(client, feed):
    feed.status_code = 503

    resp = client.get("/api/v16")

    assert resp.status_code == 200
    assert [b["id"] for b in resp.json()["balizas"]] == ["1", "2"]
    assert feed.calls == 3


def test_unconfigured_rest_source_is_an_error(client, monkeypatch):
    monkeypatch.setattr(settings, "feed_source", "rest")
    monkeypatch.setattr(settings, "dgt_api_url", None)
    monkeypatch.setattr(settings, "dgt_api_token", None)

    resp = client.get("/api/v16")

    assert resp.status_code == 500
    assert set(resp.json()) == {"error", "message"}


def test_persistence_failure_does_not_break_feed(client):
    broken_storage(connection_refused())

    resp = client.get("/api/v16")

    assert resp.status_code == 200
    assert len(resp.json()["balizas"]) == 2


def test_health_reports_cache_age(client, clock):
    assert client.get("/health").json()["cacheAge"] is None

    client.get("/api/v16")
    clock.now += 2.5
    body = client.get("/health").json()

    assert body["status"] == "ok"
    assert body["cacheAge"] == 2500
    assert body["timestamp"].endswith("Z")


# ── Admin ──


def test_save_reports_counts(client):
    resp = client.post("/api/admin/save")

    assert resp.json() == {
        "success": True,
        "message": "Datos guardados exitosamente",
        "saved": 2,
        "updated": 0,
        "errors": 0,
        "total": 2,
    }
    again = client.post("/api/admin/save").json()
    assert (again["saved"], again["updated"]) == (0, 0)


def test_analytics_endpoints_after_ingest(client):
    client.post("/api/admin/save")

    by_location = client.get("/api/admin/stats/by-location").json()
    assert {p["provincia"] for p in by_location["byProvincia"]} == {"Madrid", "Valencia"}

    counts = client.get("/api/admin/timeseries/counts").json()
    assert counts["agrupacion"] == "hour"

    locations = client.get(
        "/api/admin/timeseries/locations", params={"tipo": "comunidad"}
    ).json()
    assert locations["tipo"] == "comunidad"
    assert "series" in locations and "locations" in locations

    history = client.get("/api/admin/history/SIT-1").json()
    assert history["balizaId"] == "SIT-1"
    assert [h["change_type"] for h in history["history"]] == ["new"]

    assert client.get("/api/admin/locations/provincias").json() == ["Madrid", "Valencia"]
    assert client.get("/api/admin/locations/comunidades").json() == ["Comunidad de Madrid"]

    raw = client.get("/api/admin/data/raw", params={"provincia": "Madrid"}).json()
    assert raw["total"] == 1
    assert (raw["limit"], raw["offset"]) == (1000, 0)


def test_export_is_an_attachment(client):
    client.post("/api/admin/save")

    resp = client.get("/api/admin/export")

    assert resp.status_code == 200
    assert resp.headers["content-disposition"].startswith("attachment;")
    assert sorted(row["id"] for row in resp.json()) == ["SIT-1", "SIT-4"]


@pytest.mark.parametrize(
    "path, params",
    [
        ("/api/admin/timeseries/counts", {"agrupacion": "year"}),
        ("/api/admin/timeseries/patterns", {"tipo": "minute"}),
        ("/api/admin/timeseries/comparison", {"comparison_type": "next"}),
        ("/api/admin/timeseries/locations", {"tipo": "municipio"}),
        ("/api/admin/stats/general", {"status": "broken"}),
        ("/api/admin/stats/general", {"fecha_inicio": "yesterday-ish"}),
    ],
)
def test_invalid_parameters_are_400(client, path, params):
    resp = client.get(path, params=params)

    assert resp.status_code == 400
    assert set(resp.json()) == {"error", "message"}


# ── Degraded mode ──


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/api/admin/stats/general", {
            "total": 0, "activas": 0, "perdidas": 0,
            "provincias": 0, "comunidades": 0, "carreteras": 0,
        }),
        ("/api/admin/stats/by-location", {"byProvincia": [], "byComunidad": []}),
        ("/api/admin/stats/accumulated", {"agrupacion": "day", "data": []}),
        ("/api/admin/timeseries/counts", {"agrupacion": "hour", "data": []}),
        ("/api/admin/timeseries/patterns", {"labels": [], "data": []}),
        ("/api/admin/timeseries/comparison", {"current": [], "comparison": []}),
        ("/api/admin/timeseries/trends", {
            key: {"first": 0, "last": 0, "change": 0}
            for key in ("total", "activas", "perdidas", "nuevas")
        }),
        ("/api/admin/data/raw", {"data": [], "total": 0, "limit": 1000, "offset": 0}),
        ("/api/admin/history/SIT-1", {"balizaId": "SIT-1", "history": []}),
        ("/api/admin/locations/provincias", []),
        ("/api/admin/locations/comunidades", []),
        ("/api/admin/export", []),
    ],
)
def test_storage_outage_returns_empty_shapes(client, path, expected):
    broken_storage(connection_refused())

    resp = client.get(path)

    assert resp.status_code == 200
    assert resp.json() == expected


def test_missing_table_is_treated_as_outage(client):
    broken_storage(
        OperationalError("SELECT", {}, Exception("no such table: balizas"))
    )

    assert client.get("/api/admin/stats/general").json()["total"] == 0


def test_query_errors_are_500(client):
    broken_storage(
        ProgrammingError("SELECT", {}, Exception('syntax error at or near "FROM"'))
    )

    resp = client.get("/api/admin/stats/general")

    assert resp.status_code == 500
    assert set(resp.json()) == {"error", "message"}
