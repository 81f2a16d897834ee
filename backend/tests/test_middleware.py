"""Tests for optional API key auth and request logging middleware."""
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from sgbus.middleware import OptionalAPIKeyMiddleware, RequestLoggingMiddleware, get_valid_api_keys
from sgbus.middleware.auth import is_valid_key
from sgbus.monitoring import get_metrics


def _app(required: bool) -> FastAPI:
    app = FastAPI()

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/stops/{stop_code}/arrivals")
    def arrivals(stop_code: str):
        return {"stop_code": stop_code}

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(OptionalAPIKeyMiddleware, api_key_required=required, api_keys={"key1", "key2"})
    return app


def test_get_valid_api_keys():
    assert get_valid_api_keys(" key1, ,key2 ") == {"key1", "key2"}
    assert get_valid_api_keys("") == set()


def test_is_valid_key():
    assert is_valid_key("key1", {"key1"})
    assert not is_valid_key("key", {"key1"})
    assert not is_valid_key(None, {"key1"})


def test_auth_disabled_lets_requests_through():
    client = TestClient(_app(required=False))
    assert client.get("/stops/01012/arrivals").status_code == 200


@pytest.mark.parametrize(
    "headers",
    [{"X-API-Key": "key1"}, {"apikey": "key2"}, {"Authorization": "Bearer key1"}],
)
def test_auth_accepts_key_headers(headers):
    client = TestClient(_app(required=True))
    assert client.get("/stops/01012/arrivals", headers=headers).status_code == 200


def test_auth_rejects_missing_or_wrong_key():
    client = TestClient(_app(required=True))
    assert client.get("/stops/01012/arrivals").status_code == 401
    assert client.get("/stops/01012/arrivals", headers={"X-API-Key": "nope"}).status_code == 401


def test_health_exempt_from_auth():
    client = TestClient(_app(required=True))
    assert client.get("/health").status_code == 200


def test_request_logging_adds_timing_header_and_metrics():
    client = TestClient(_app(required=False))
    before = get_metrics()["requests_2xx"]
    r = client.get("/health")
    assert "X-Response-Time-Ms" in r.headers
    assert get_metrics()["requests_2xx"] == before + 1
