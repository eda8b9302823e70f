from typing import Any, Dict, List
from dataclasses import dataclass, field
import os
from dotenv import load_dotenv

from .enums import DatabaseDialect
from .exceptions import ConfigurationError

@dataclass
class DatabaseConfig:
    """Database configuration settings"""
    dialect: str = DatabaseDialect.SQLITE.value
    path: str = "tokens.db"
    host: str = "localhost"
    port: int = 5432
    user: str = "user"
    password: str = "password"
    database: str = "tokenwatch"
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    echo: bool = False

    def __post_init__(self) -> None:
        """Validate database configuration"""
        if self.dialect not in [d.value for d in DatabaseDialect]:
            raise ConfigurationError(f"Unsupported database dialect '{self.dialect}'")
        if self.pool_size <= 0:
            raise ConfigurationError("Pool size must be positive")

    @property
    def is_sqlite(self) -> bool:
        return self.dialect == DatabaseDialect.SQLITE.value

    @property
    def url(self) -> str:
        """Get async database URL"""
        driver = DatabaseDialect(self.dialect).driver
        if self.is_sqlite:
            return f"{self.dialect}+{driver}:///{self.path}"
        return f"{self.dialect}+{driver}://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"

    def get_engine_options(self) -> Dict[str, Any]:
        """Get SQLAlchemy engine options; SQLite manages its own pool"""
        if self.is_sqlite:
            return {'echo': self.echo}
        return {
            'pool_pre_ping': True,
            'pool_size': self.pool_size,
            'max_overflow': self.max_overflow,
            'pool_timeout': self.pool_timeout,
            'pool_recycle': self.pool_recycle,
            'echo': self.echo
        }

@dataclass
class LedgerConfig:
    """Remote ledger JSON-RPC configuration"""
    rpc_url: str = "https://testnet-rpc.monad.xyz"
    contract_address: str = "0x07169f0F890C3595421512D98DC79b8bce6E5fA6"
    timeout: float = 30.0
    rate_limit: int = 50         # requests per window
    rate_limit_window: int = 1   # seconds

    def __post_init__(self) -> None:
        """Validate ledger configuration"""
        if not self.rpc_url:
            raise ConfigurationError("RPC URL must be specified")
        address = self.contract_address
        if not (address.startswith("0x") and len(address) == 42):
            raise ConfigurationError(f"Invalid contract address '{address}'")
        if self.timeout <= 0:
            raise ConfigurationError("RPC timeout must be positive")
        if self.rate_limit <= 0 or self.rate_limit_window <= 0:
            raise ConfigurationError("Rate limit and window must be positive")

@dataclass
class IndexerConfig:
    """Ingestion loop configuration"""
    start_height: int = 0
    batch_size: int = 50
    idle_interval: float = 2.0     # seconds between cycles
    backoff_interval: float = 5.0  # seconds after a failed cycle

    def __post_init__(self) -> None:
        """Validate indexer configuration"""
        if self.start_height < 0:
            raise ConfigurationError("Start height cannot be negative")
        if self.batch_size <= 0:
            raise ConfigurationError("Batch size must be positive")
        if self.idle_interval < 0:
            raise ConfigurationError("Idle interval cannot be negative")
        if self.backoff_interval < self.idle_interval:
            raise ConfigurationError("Backoff interval must not be shorter than the idle interval")

@dataclass
class FanoutConfig:
    """Subscriber fan-out configuration"""
    queue_size: int = 1000  # pending messages per subscriber

    def __post_init__(self) -> None:
        if self.queue_size <= 0:
            raise ConfigurationError("Subscriber queue size must be positive")

@dataclass
class APIConfig:
    """HTTP/websocket surface configuration"""
    port: int = 3000
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

class Config:
    """Application configuration"""

    def __init__(self):
        # Load environment variables
        load_dotenv()

        self.database = self._init_database_config()
        self.ledger = self._init_ledger_config()
        self.indexer = self._init_indexer_config()
        self.fanout = self._init_fanout_config()
        self.api = self._init_api_config()

    def _init_database_config(self) -> DatabaseConfig:
        """Initialize database configuration"""
        try:
            return DatabaseConfig(
                dialect=os.getenv('DB_DIALECT', 'sqlite'),
                path=os.getenv('DB_PATH', 'tokens.db'),
                host=os.getenv('DB_HOST', 'localhost'),
                port=int(os.getenv('DB_PORT', '5432')),
                user=os.getenv('DB_USER', 'user'),
                password=os.getenv('DB_PASSWORD', 'password'),
                database=os.getenv('DB_NAME', 'tokenwatch'),
                pool_size=int(os.getenv('DB_POOL_SIZE', '5')),
                max_overflow=int(os.getenv('DB_MAX_OVERFLOW', '10')),
                pool_timeout=int(os.getenv('DB_POOL_TIMEOUT', '30')),
                pool_recycle=int(os.getenv('DB_POOL_RECYCLE', '1800')),
                echo=bool(os.getenv('DB_ECHO', 'False').lower() == 'true')
            )
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Invalid database configuration: {e}")

    def _init_ledger_config(self) -> LedgerConfig:
        """Initialize ledger configuration"""
        try:
            return LedgerConfig(
                rpc_url=os.getenv('RPC_URL', 'https://testnet-rpc.monad.xyz'),
                contract_address=os.getenv('CONTRACT_ADDRESS', '0x07169f0F890C3595421512D98DC79b8bce6E5fA6'),
                timeout=float(os.getenv('RPC_TIMEOUT', '30')),
                rate_limit=int(os.getenv('RPC_RATE_LIMIT', '50')),
                rate_limit_window=int(os.getenv('RPC_RATE_LIMIT_WINDOW', '1'))
            )
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Invalid ledger configuration: {e}")

    def _init_indexer_config(self) -> IndexerConfig:
        """Initialize indexer configuration"""
        try:
            return IndexerConfig(
                start_height=int(os.getenv('START_BLOCK', '0')),
                batch_size=int(os.getenv('INDEXER_BATCH_SIZE', '50')),
                idle_interval=float(os.getenv('INDEXER_IDLE_INTERVAL', '2')),
                backoff_interval=float(os.getenv('INDEXER_BACKOFF_INTERVAL', '5'))
            )
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Invalid indexer configuration: {e}")

    def _init_fanout_config(self) -> FanoutConfig:
        """Initialize fan-out configuration"""
        try:
            return FanoutConfig(
                queue_size=int(os.getenv('FANOUT_QUEUE_SIZE', '1000'))
            )
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Invalid fan-out configuration: {e}")

    def _init_api_config(self) -> APIConfig:
        """Initialize API configuration"""
        try:
            return APIConfig(
                port=int(os.getenv('PORT', '3000')),
                cors_origins=os.getenv('API_CORS_ORIGINS', '*').split(',')
            )
        except Exception as e:
            raise ConfigurationError(f"Invalid API configuration: {e}")
