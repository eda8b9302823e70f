# tests/test_api.py

import time
import pytest
from fastapi.testclient import TestClient

from tokenwatch.core.config import IndexerConfig
from tokenwatch.core.exceptions import RepositoryError
from tokenwatch.core.models import TokenRecord
from tokenwatch.messaging.hub import FanoutHub
from tokenwatch.services.indexer.main import AppContext, create_app
from tokenwatch.services.indexer.service import IndexerService
from tests.conftest import FakeLedger, transfer


class FakeRepository:
    """Read side of the token repository backed by a list"""
    def __init__(self, records: list[TokenRecord] | None = None, fail: bool = False):
        self.records = list(records or [])
        self.fail = fail
        self.requested_limits: list[int] = []

    async def list_recent(self, limit: int = 100) -> list[TokenRecord]:
        self.requested_limits.append(limit)
        if self.fail:
            raise RepositoryError("database is locked")
        ordered = sorted(self.records, key=lambda r: r.last_height, reverse=True)
        return ordered[:limit]

    async def get(self, token_id: str) -> TokenRecord | None:
        return next((r for r in self.records if r.token_id == token_id), None)

    async def max_height(self) -> int | None:
        return max((r.last_height for r in self.records), default=None)


def make_context(repository=None, ledger=None) -> AppContext:
    repository = repository or FakeRepository()
    ledger = ledger or FakeLedger(height=5)
    hub = FanoutHub(queue_size=10)
    service = IndexerService(repository, ledger, hub, IndexerConfig())
    return AppContext(repository=repository, ledger=ledger, hub=hub, service=service)


def test_health_reports_remote_height():
    app = create_app(make_context(ledger=FakeLedger(height=1834512)))
    with TestClient(app) as client:
        response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "currentRemoteHeight": 1834512}


def test_health_reports_unreachable_ledger():
    ledger = FakeLedger()
    ledger.fail_height = True
    app = create_app(make_context(ledger=ledger))
    with TestClient(app) as client:
        response = client.get("/api/health")

    assert response.status_code == 503
    body = response.json()
    assert body["status"] == "error"
    assert "connection refused" in body["error"]


def test_list_tokens_most_recent_first():
    repository = FakeRepository([
        TokenRecord(token_id="1", owner="0xA", last_height=3),
        TokenRecord(token_id="2", owner="0xB", last_height=9),
    ])
    app = create_app(make_context(repository=repository))
    with TestClient(app) as client:
        response = client.get("/api/tokens")

    assert response.status_code == 200
    assert response.json() == [
        {"tokenId": "2", "owner": "0xB", "lastUpdate": 9},
        {"tokenId": "1", "owner": "0xA", "lastUpdate": 3},
    ]
    assert repository.requested_limits == [100]


def test_list_tokens_limit_is_capped():
    app = create_app(make_context())
    with TestClient(app) as client:
        assert client.get("/api/tokens?limit=5").status_code == 200
        assert client.get("/api/tokens?limit=101").status_code == 422
        assert client.get("/api/tokens?limit=0").status_code == 422


def test_list_tokens_storage_failure():
    app = create_app(make_context(repository=FakeRepository(fail=True)))
    with TestClient(app) as client:
        response = client.get("/api/tokens")

    assert response.status_code == 500


def test_get_single_token():
    repository = FakeRepository([TokenRecord(token_id="42", owner="0xC", last_height=7)])
    app = create_app(make_context(repository=repository))
    with TestClient(app) as client:
        found = client.get("/api/tokens/42")
        missing = client.get("/api/tokens/43")

    assert found.json() == {"tokenId": "42", "owner": "0xC", "lastUpdate": 7}
    assert missing.status_code == 404


def test_status_endpoint():
    app = create_app(make_context())
    with TestClient(app) as client:
        response = client.get("/api/status")

    assert response.status_code == 200
    assert "Indexer Service Status" in response.json()["status"]


def _wait_for_subscribers(hub: FanoutHub, count: int) -> None:
    deadline = time.monotonic() + 2
    while hub.subscriber_count != count:
        if time.monotonic() > deadline:
            pytest.fail(f"expected {count} subscribers, have {hub.subscriber_count}")
        time.sleep(0.01)


def test_websocket_feed_receives_transfers():
    context = make_context()
    app = create_app(context)
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as websocket:
            _wait_for_subscribers(context.hub, 1)

            client.portal.call(context.hub.publish, transfer("1", "0xA", 3))
            client.portal.call(context.hub.publish, transfer("1", "0xB", 5))

            assert websocket.receive_json() == {"tokenId": "1", "owner": "0xA", "height": 3}
            assert websocket.receive_json() == {"tokenId": "1", "owner": "0xB", "height": 5}

        _wait_for_subscribers(context.hub, 0)
