from enum import Enum


class ServiceStatus(str, Enum):
    """Service statuses"""
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"


class IndexerState(str, Enum):
    """
    Phases of a single ingestion cycle.

    IDLE -> FETCHING -> APPLYING -> PUBLISHING -> IDLE on success,
    FETCHING or APPLYING -> BACKOFF on failure, STOPPED while the loop is not running.
    """
    IDLE = "idle"
    FETCHING = "fetching"
    APPLYING = "applying"
    PUBLISHING = "publishing"
    BACKOFF = "backoff"
    STOPPED = "stopped"


class IsolationLevel(str, Enum):
    """Transaction isolation levels"""
    REPEATABLE_READ = "REPEATABLE READ"


class DatabaseDialect(str, Enum):
    """Supported storage backends and their async drivers"""
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"

    @property
    def driver(self) -> str:
        return {
            self.SQLITE: "aiosqlite",
            self.POSTGRESQL: "asyncpg",
        }[self]
