"""Endpoint tests for the stop search, nearby and arrival routes."""
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

import main
from sgbus.data.stops import FALLBACK_STOPS, RankedStop, StopRecord
from sgbus.lta.client import ProviderError


class FakeLTAClient:
    def __init__(self, stops=(), services=(), error=None):
        self.stops = list(stops)
        self.services = list(services)
        self.error = error
        self.skips = []

    def get_bus_stops_page(self, skip):
        self.skips.append(skip)
        if self.error is not None:
            raise self.error
        return self.stops[skip:skip + 500]

    def get_bus_arrival(self, stop_code):
        if self.error is not None:
            raise self.error
        return {"stop_code": stop_code, "services": self.services}

    def probe(self, stop_code="03111"):
        return {"endpoint": "fake", "status": 200, "success": True}


def _vehicle(minutes):
    eta = datetime.now(timezone.utc) + timedelta(minutes=minutes, seconds=30)
    return {"estimated_arrival": eta.isoformat(), "load": "SDA", "feature": "WAB", "type": "DD"}


EMPTY = {"estimated_arrival": "", "load": "", "feature": "", "type": ""}


@pytest.fixture
def client():
    main.limiter.reset()
    main.app.state.lta_client = None
    main.app.state.nearby_source = None
    yield TestClient(main.app)
    main.app.state.lta_client = None
    main.app.state.nearby_source = None
    main.limiter.reset()


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "lta_configured": False}


def test_metrics_counts_requests(client):
    client.get("/health")
    data = client.get("/metrics").json()
    assert data["requests_total"] >= 1
    assert "requests_by_route" in data


def test_search_without_key_serves_fallback(client):
    r = client.get("/stops/search", params={"q": "orchard"})
    assert r.status_code == 200
    codes = {s["stop_code"] for s in r.json()["bus_stops"]}
    assert {"09037", "09047"} <= codes
    assert all(s["distance_km"] is None for s in r.json()["bus_stops"])


def test_search_with_location_sorts_and_filters(client, city_stops):
    main.app.state.lta_client = FakeLTAClient(stops=city_stops)
    r = client.get("/stops/search", params={"lat": 1.3, "lng": 103.85, "max_distance_km": 1})
    assert r.status_code == 200
    stops = r.json()["bus_stops"]
    assert [s["stop_code"] for s in stops] == ["A0001", "A0003", "A0005"]
    assert stops[1]["distance_label"] == "300m"
    assert stops[2]["distance_bucket"] == "moderate"


def test_search_caps_results(client):
    many = [StopRecord(f"{i:05d}", f"Stop {i}", "Road", 1.3, 103.85) for i in range(250)]
    main.app.state.lta_client = FakeLTAClient(stops=many)
    r = client.get("/stops/search")
    assert len(r.json()["bus_stops"]) == 100


def test_search_rejects_bad_coordinates(client):
    r = client.get("/stops/search", params={"lat": 95, "lng": 103.85})
    assert r.status_code == 400


@pytest.mark.parametrize("params", [{"lat": 95, "lng": 103.85}, {"lat": 1.3, "lng": 103.85, "max_distance_km": 0}])
def test_search_validates_before_paging_catalog(client, params):
    lta = FakeLTAClient(stops=[StopRecord("A1", "Stop", "Road", 1.3, 103.85)])
    main.app.state.lta_client = lta
    r = client.get("/stops/search", params=params)
    assert r.status_code == 400
    assert lta.skips == []


def test_nearby_returns_counts(client, city_stops):
    main.app.state.lta_client = FakeLTAClient(stops=city_stops)
    r = client.get("/stops/nearby", params={"lat": 1.3, "lng": 103.85, "radius_km": 2})
    assert r.status_code == 200
    data = r.json()
    assert [s["stop_code"] for s in data["stops"]] == ["A0001", "A0003", "A0005", "A0002"]
    assert data["counts"] == {"0.5": 2, "1.0": 3, "2.0": 4}


def test_nearby_falls_back_when_provider_down(client):
    main.app.state.lta_client = FakeLTAClient(error=ProviderError("down", status=500))
    r = client.get("/stops/nearby", params={"lat": 1.2996, "lng": 103.8551, "radius_km": 0.5})
    assert r.status_code == 200
    codes = {s["stop_code"] for s in r.json()["stops"]}
    assert codes <= {s.stop_code for s in FALLBACK_STOPS}
    assert "01012" in codes


def test_nearby_uses_server_side_source_when_configured(client, city_stops):
    class FixedSource:
        def search_nearby(self, origin, radius_km, query=""):
            return [RankedStop(city_stops[1], 1.11)]

    main.app.state.nearby_source = FixedSource()
    r = client.get("/stops/nearby", params={"lat": 1.3, "lng": 103.85})
    assert [s["stop_code"] for s in r.json()["stops"]] == ["A0002"]


@pytest.mark.parametrize("radius", [0, -1, 25])
def test_nearby_rejects_bad_radius(client, radius):
    r = client.get("/stops/nearby", params={"lat": 1.3, "lng": 103.85, "radius_km": radius})
    assert r.status_code == 400


def test_nearby_requires_coordinates(client):
    assert client.get("/stops/nearby").status_code == 422


def test_arrivals_without_key_is_503(client):
    r = client.get("/stops/01012/arrivals")
    assert r.status_code == 503


def test_arrivals_invalid_stop_code(client):
    main.app.state.lta_client = FakeLTAClient()
    assert client.get("/stops/01-012/arrivals").status_code == 400


def test_arrivals_sorted_and_filtered(client):
    services = [
        {"service_number": "111", "operator": "SBST", "next": _vehicle(4), "next2": EMPTY, "next3": EMPTY},
        {"service_number": "2", "operator": "GAS", "next": _vehicle(1), "next2": _vehicle(9), "next3": EMPTY},
        {"service_number": "14", "operator": "SBST", "next": _vehicle(6), "next2": EMPTY, "next3": EMPTY},
    ]
    main.app.state.lta_client = FakeLTAClient(services=services)
    r = client.get("/stops/01012/arrivals")
    assert r.status_code == 200
    data = r.json()
    assert data["stop_code"] == "01012"
    assert [a["service_number"] for a in data["arrivals"]] == ["2", "2", "14", "111"]
    first = data["arrivals"][0]
    assert first["minutes_until_arrival"] == 1
    assert first["crowd_level"] == "medium"
    assert first["decker_class"] == "double"
    assert first["wheelchair_accessible"] is True

    r = client.get("/stops/01012/arrivals", params={"services": "14,111"})
    assert [a["service_number"] for a in r.json()["arrivals"]] == ["14", "111"]


def test_arrivals_provider_error_is_502(client):
    main.app.state.lta_client = FakeLTAClient(error=ProviderError("down", status=500))
    r = client.get("/stops/01012/arrivals")
    assert r.status_code == 502


def test_debug_probe(client):
    assert client.get("/debug/lta").status_code == 503
    main.app.state.lta_client = FakeLTAClient()
    r = client.get("/debug/lta")
    assert r.status_code == 200
    assert r.json()["result"]["success"] is True


def test_nearby_ignores_catalog_rows_with_impossible_positions(client):
    main.app.state.lta_client = FakeLTAClient(stops=[
        StopRecord("A1", "Good", "Road", 1.3005, 103.85),
        StopRecord("A2", "Bad", "Road", 91.0, 103.85),
    ])
    r = client.get("/stops/nearby", params={"lat": 1.3, "lng": 103.85})
    assert r.status_code == 200
    assert [s["stop_code"] for s in r.json()["stops"]] == ["A1"]


def test_requests_over_rate_limit_get_429(client):
    statuses = [client.get("/stops/search", params={"q": "orchard"}).status_code for _ in range(101)]
    assert statuses[:100] == [200] * 100
    assert statuses[100] == 429


def test_health_is_exempt_from_rate_limit(client):
    statuses = {client.get("/health").status_code for _ in range(105)}
    assert statuses == {200}


def test_lifespan_passes_key_to_nearby_source():
    with patch.object(main.settings, "nearby_source_url", "https://api.example.test"), \
            patch.object(main.settings, "nearby_source_api_key", "remote-key"):
        with TestClient(main.app):
            source = main.app.state.nearby_source
            assert source is not None
            assert source._api_key == "remote-key"
    assert main.app.state.nearby_source is None
