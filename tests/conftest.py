import pytest
import pytest_asyncio

from tokenwatch.core.config import DatabaseConfig, IndexerConfig
from tokenwatch.core.exceptions import AdapterError
from tokenwatch.core.models import TransferEvent
from tokenwatch.database.connection import DatabaseConnection
from tokenwatch.database.repositories import TokenRepository
from tokenwatch.messaging.hub import FanoutHub


def transfer(token_id: str, owner: str, height: int, log_index: int = 0,
             sender: str = "0x0000000000000000000000000000000000000000") -> TransferEvent:
    """Shorthand for building transfer events in tests"""
    return TransferEvent(
        from_address=sender,
        to_address=owner,
        token_id=token_id,
        height=height,
        log_index=log_index
    )


class FakeLedger:
    """
    In-memory stand-in for the ledger client.

    ``events`` are served by height range; ``fail_fetches`` / ``fail_height``
    make the next calls raise ``AdapterError``.
    """
    def __init__(self, height: int = 0, events: list[TransferEvent] | None = None):
        self.height = height
        self.events = list(events or [])
        self.fail_fetches = 0
        self.fail_height = False
        self.requested_ranges: list[tuple[int, int]] = []

    async def current_height(self) -> int:
        if self.fail_height:
            raise AdapterError("eth_blockNumber request failed: connection refused")
        return self.height

    async def fetch_events(self, from_height: int, to_height: int) -> list[TransferEvent]:
        self.requested_ranges.append((from_height, to_height))
        if self.fail_fetches:
            self.fail_fetches -= 1
            raise AdapterError("eth_getLogs request failed: timeout")
        selected = [e for e in self.events if from_height <= e.height <= to_height]
        return sorted(selected, key=lambda e: e.ordering_key)

    async def cleanup(self) -> None:
        pass


class RecordingSubscriber:
    """Subscriber double that keeps every frame it receives"""
    def __init__(self):
        self.messages: list[str] = []

    async def send_text(self, data: str) -> None:
        self.messages.append(data)


class FailingSubscriber:
    """Subscriber whose connection is already gone"""
    def __init__(self):
        self.attempts = 0

    async def send_text(self, data: str) -> None:
        self.attempts += 1
        raise ConnectionError("socket closed")


@pytest.fixture
def db_config(tmp_path) -> DatabaseConfig:
    return DatabaseConfig(dialect="sqlite", path=str(tmp_path / "tokens.db"))


@pytest_asyncio.fixture
async def db(db_config):
    connection = DatabaseConnection(db_config)
    await connection.initialize()
    yield connection
    await connection.close()


@pytest_asyncio.fixture
async def repository(db) -> TokenRepository:
    return TokenRepository(db)


@pytest_asyncio.fixture
async def hub():
    fanout = FanoutHub(queue_size=100)
    yield fanout
    await fanout.close()


@pytest.fixture
def indexer_config() -> IndexerConfig:
    return IndexerConfig(start_height=0, batch_size=50, idle_interval=0.01, backoff_interval=0.05)
