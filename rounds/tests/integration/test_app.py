"""Integration tests for the round feed HTTP and WebSocket endpoints."""

import time

import pytest
from starlette.testclient import TestClient

from rounds.logic.timer import TimerConfig
from rounds.messaging.encoder import decode_message
from rounds.server.app import create_app
from rounds.server.settings import RoundFeedSettings
from rounds.session.engine import RoundSyncEngine
from rounds.session.supervisor import ReconnectPolicy
from rounds.tests.mocks import FakeClock, MockConnectionFactory, MockFeedConnection


def _wait_until(predicate, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            pytest.fail("condition not met in time")
        time.sleep(0.01)


@pytest.fixture
def connection():
    conn = MockFeedConnection()
    # Frames queued before startup are read as soon as the engine connects.
    conn.simulate_frame("20250701194956 30S 2025-07-01 19:49:56")
    conn.simulate_frame("20250701194956 30S 7")
    return conn


@pytest.fixture
def engine(connection):
    return RoundSyncEngine(
        MockConnectionFactory(connection),
        reconnect_policy=ReconnectPolicy(initial_delay_seconds=0.01, max_delay_seconds=0.05),
        timer_config=TimerConfig(tick_seconds=0.01),
        clock=FakeClock(),
    )


@pytest.fixture
def client(engine):
    app = create_app(settings=RoundFeedSettings(feed_url="ws://feed.test/ws"), engine=engine)
    with TestClient(app) as client:
        _wait_until(lambda: engine.store.get_snapshot("30S").pending_result is not None)
        yield client


class TestHttpEndpoints:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_status_reports_readiness(self, client):
        body = client.get("/status").json()
        assert body["ready"] is True
        assert body["connectivity_error"] is False
        assert body["variants"] == 4

    def test_list_rounds(self, client):
        body = client.get("/rounds").json()

        assert body["ready"] is True
        assert [v["variant_code"] for v in body["variants"]] == ["30S", "1M", "3M", "5M"]
        first = body["variants"][0]
        assert first["current_period_id"] == "20250701194956"
        assert first["remaining_seconds"] == 26
        assert first["pending_result"]["outcome_number"] == 7
        assert first["pending_result"]["color"] == "green"
        assert first["pending_result"]["size"] == "Big"

    def test_get_round(self, client):
        response = client.get("/rounds/30S")
        assert response.status_code == 200
        assert response.json()["anchor_instant"] == "2025-07-01T19:49:56Z"

    def test_get_round_for_idle_variant(self, client):
        body = client.get("/rounds/5M").json()
        assert body["current_period_id"] == ""
        assert body["pending_result"] is None

    def test_unknown_variant_is_404(self, client):
        assert client.get("/rounds/9X").status_code == 404
        assert client.get("/rounds/9X/history").status_code == 404

    def test_history(self, client):
        body = client.get("/rounds/30S/history").json()
        assert body["variant_code"] == "30S"
        assert [r["period_id"] for r in body["results"]] == ["20250701194956"]

    def test_cors_header_for_allowed_origin(self, client):
        response = client.get("/health", headers={"Origin": "http://localhost:5173"})
        assert response.headers["access-control-allow-origin"] == "http://localhost:5173"


class TestSnapshotStream:
    def test_sends_snapshot_on_connect(self, client):
        with client.websocket_connect("/ws") as ws:
            message = decode_message(ws.receive_bytes())

        assert message["type"] == "snapshot"
        assert message["ready"] is True
        assert len(message["variants"]) == 4
        assert message["variants"][0]["pending_result"]["outcome_number"] == 7

    def test_pushes_variant_updates(self, client, connection):
        with client.websocket_connect("/ws") as ws:
            decode_message(ws.receive_bytes())
            client.portal.call(connection.simulate_frame, "20250701195000 1M 2025-07-01 19:49:00")
            message = decode_message(ws.receive_bytes())

        assert message["type"] == "variant_update"
        assert message["variant_code"] == "1M"
        assert message["current_period_id"] == "20250701195000"
        assert message["remaining_seconds"] == 30

    def test_reports_connectivity_error_without_store_updates(self, connection):
        engine = RoundSyncEngine(
            MockConnectionFactory(connection),
            reconnect_policy=ReconnectPolicy(
                initial_delay_seconds=0.01,
                max_delay_seconds=0.05,
                readiness_timeout_seconds=0.05,
            ),
            timer_config=TimerConfig(tick_seconds=0.01),
            clock=FakeClock(),
        )
        app = create_app(settings=RoundFeedSettings(feed_url="ws://feed.test/ws"), engine=engine)
        with TestClient(app) as client, client.websocket_connect("/ws") as ws:
            _wait_until(lambda: engine.ready)
            decode_message(ws.receive_bytes())
            client.portal.call(connection.simulate_drop)

            readiness = []
            for _ in range(20):
                message = decode_message(ws.receive_bytes())
                if message["type"] == "readiness":
                    readiness.append(message)
                    if message["connectivity_error"]:
                        break

        assert readiness[-1] == {"type": "readiness", "ready": False, "connectivity_error": True}


class TestLifespan:
    def test_engine_stops_on_shutdown(self, engine, connection):
        app = create_app(settings=RoundFeedSettings(feed_url="ws://feed.test/ws"), engine=engine)
        with TestClient(app):
            assert engine.is_started

        assert engine.is_started is False
        assert connection.is_closed
