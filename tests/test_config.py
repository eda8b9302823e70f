# tests/test_config.py

import pytest

from tokenwatch.core.config import Config, DatabaseConfig, IndexerConfig, LedgerConfig
from tokenwatch.core.exceptions import ConfigurationError


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("RPC_URL", "CONTRACT_ADDRESS", "START_BLOCK", "INDEXER_BATCH_SIZE",
                 "INDEXER_IDLE_INTERVAL", "INDEXER_BACKOFF_INTERVAL", "DB_DIALECT", "DB_PATH", "PORT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("tokenwatch.core.config.load_dotenv", lambda: None)
    return monkeypatch


def test_defaults(clean_env):
    config = Config()

    assert config.indexer.start_height == 0
    assert config.indexer.batch_size == 50
    assert config.indexer.idle_interval == 2.0
    assert config.indexer.backoff_interval == 5.0
    assert config.ledger.rpc_url == "https://testnet-rpc.monad.xyz"
    assert config.database.url == "sqlite+aiosqlite:///tokens.db"
    assert config.api.port == 3000


def test_environment_overrides(clean_env):
    clean_env.setenv("START_BLOCK", "1200")
    clean_env.setenv("INDEXER_BATCH_SIZE", "10")
    clean_env.setenv("INDEXER_IDLE_INTERVAL", "0.5")
    clean_env.setenv("INDEXER_BACKOFF_INTERVAL", "3")
    clean_env.setenv("DB_DIALECT", "postgresql")

    config = Config()

    assert config.indexer == IndexerConfig(start_height=1200, batch_size=10, idle_interval=0.5, backoff_interval=3.0)
    assert config.database.url.startswith("postgresql+asyncpg://")


def test_invalid_number_is_configuration_error(clean_env):
    clean_env.setenv("START_BLOCK", "latest")

    with pytest.raises(ConfigurationError):
        Config()


def test_backoff_shorter_than_idle_rejected():
    with pytest.raises(ConfigurationError):
        IndexerConfig(idle_interval=5, backoff_interval=2)


def test_batch_size_must_be_positive():
    with pytest.raises(ConfigurationError):
        IndexerConfig(batch_size=0)


def test_invalid_contract_address():
    with pytest.raises(ConfigurationError):
        LedgerConfig(contract_address="0x1234")


def test_unsupported_dialect():
    with pytest.raises(ConfigurationError):
        DatabaseConfig(dialect="mysql")
