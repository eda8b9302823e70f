from typing import Any, Protocol, Sequence
import aiohttp
import asyncio

from .models import TransferEvent


class Service(Protocol):
    """
    Base protocol for long-running services.

    Features:
    - Service lifecycle (start/stop)
    - Status reporting
    """
    async def start(self) -> None:
        """Initialize resources and start background tasks"""
        ...

    async def stop(self) -> None:
        """Cancel background tasks and release resources"""
        ...

    def get_service_status(self) -> str:
        """
        Generate detailed service status report.

        Returns:
            str: Multi-line status report
        """
        ...


class RangeFetcher(Protocol):
    """
    Read access to the remote ledger.

    Preconditions callers rely on:
    - ``fetch_events`` returns events ordered by ``(height, log_index)``
    - consecutive calls over increasing ranges never go back in height
    Any failure (transport, RPC error, malformed payload) raises ``AdapterError``.
    """

    async def current_height(self) -> int:
        ...

    async def fetch_events(self, from_height: int, to_height: int) -> Sequence[TransferEvent]:
        ...


class Subscriber(Protocol):
    """Anything able to receive a text frame (a websocket connection, a test double)"""

    async def send_text(self, data: str) -> None:
        ...


class APIAdapter(Protocol):
    """
    Base class for HTTP adapters providing session management.
    """

    _session: aiohttp.ClientSession | None = None
    _session_lock = asyncio.Lock()

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session"""
        if self._session is None:
            async with self._session_lock:
                if self._session is None:
                    self._session = await self._create_session()
        return self._session

    async def _create_session(self) -> aiohttp.ClientSession:
        """Create new session with adapter-specific configuration"""
        ...

    async def _request(self,
                      method: str,
                      endpoint: str,
                      **kwargs: Any) -> Any:
        """Make API request with rate limiting"""
        ...

    async def cleanup(self) -> None:
        """Cleanup resources"""
        if self._session:
            async with self._session_lock:
                await self._session.close()
                self._session = None
