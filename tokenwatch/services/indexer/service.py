import asyncio

from tokenwatch.core.config import IndexerConfig
from tokenwatch.core.enums import IndexerState, ServiceStatus
from tokenwatch.core.exceptions import ServiceError
from tokenwatch.core.models import TransferEvent
from tokenwatch.core.protocols import RangeFetcher, Service
from tokenwatch.database.repositories import TokenRepository
from tokenwatch.messaging.hub import FanoutHub
from tokenwatch.utils.logger import LoggerSetup
from tokenwatch.utils.time import format_duration, format_timestamp, get_current_timestamp


def next_range(latest_indexed: int, head: int, batch_size: int) -> tuple[int, int] | None:
    """
    Next inclusive height range to index, capped at ``batch_size`` heights.

    Returns:
        Optional[tuple[int, int]]: (from_height, to_height), or None when caught up
    """
    if head <= latest_indexed:
        return None
    from_height = latest_indexed + 1
    return from_height, min(head, from_height + batch_size - 1)


class IndexerService(Service):
    """
    Tails the ledger and keeps the token projection up to date.

    Each cycle fetches one bounded range after the checkpoint, applies it to
    the projection in a single transaction, advances the checkpoint and then
    publishes the applied transfers. A failing fetch or write leaves
    the checkpoint untouched so the same range is retried after the backoff
    interval, indefinitely.

    The checkpoint is never stored: it is read back from the projection
    (highest recorded height) when the service starts.
    """

    def __init__(self,
                 repository: TokenRepository,
                 ledger: RangeFetcher,
                 hub: FanoutHub,
                 config: IndexerConfig):

        # Core dependencies
        self.repository = repository
        self.ledger = ledger
        self.hub = hub
        self._config = config

        # Ingestion state
        self.latest_indexed: int | None = None
        self.state: IndexerState = IndexerState.STOPPED
        self.remote_height: int | None = None

        # Service state
        self._status: ServiceStatus = ServiceStatus.STOPPED
        self._start_time: int | None = None
        self._last_error: Exception | None = None
        self._last_success: int | None = None
        self._cycles = 0
        self._failures = 0
        self._applied = 0

        # Task management
        self._loop_task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()

        self.logger = LoggerSetup.setup(__class__.__name__)


    async def initialize(self) -> int:
        """
        Derive the checkpoint from the projection.

        Returns:
            int: Highest recorded height, or the configured start height if nothing is indexed yet
        """
        checkpoint = await self.repository.max_height()
        self.latest_indexed = checkpoint if checkpoint is not None else self._config.start_height
        self.logger.info(f"Resuming from block {self.latest_indexed}")
        return self.latest_indexed


    async def start(self) -> None:
        """Start the ingestion loop"""
        try:
            self._status = ServiceStatus.STARTING
            self._start_time = get_current_timestamp()
            self.logger.info("Starting indexer service")

            await self.initialize()

            self._stop_event.clear()
            self._loop_task = asyncio.create_task(self._run())

            self._status = ServiceStatus.RUNNING
            self.logger.info("Indexer service started successfully")

        except Exception as e:
            self._status = ServiceStatus.ERROR
            self._last_error = e
            self.logger.error(f"Failed to start indexer service: {e}")
            raise ServiceError(f"Service start failed: {str(e)}")


    async def stop(self) -> None:
        """Stop the ingestion loop between cycle steps"""
        try:
            self._status = ServiceStatus.STOPPING
            self.logger.info("Stopping indexer service")

            self._stop_event.set()
            if self._loop_task:
                self._loop_task.cancel()
                try:
                    await self._loop_task
                except asyncio.CancelledError:
                    pass
                self._loop_task = None

            self.state = IndexerState.STOPPED
            self._status = ServiceStatus.STOPPED
            self.logger.info("Indexer service stopped successfully")

        except Exception as e:
            self._status = ServiceStatus.ERROR
            self._last_error = e
            self.logger.error(f"Error during service shutdown: {e}")
            raise ServiceError(f"Service stop failed: {str(e)}")


    async def run_cycle(self) -> float:
        """
        Run one ingestion cycle.

        Returns:
            float: Seconds to wait before the next cycle (idle or backoff interval)
        """
        latest_indexed = self.latest_indexed
        if latest_indexed is None:
            latest_indexed = await self.initialize()

        self._cycles += 1
        try:
            self.state = IndexerState.FETCHING
            head = await self.ledger.current_height()
            self.remote_height = head

            block_range = next_range(latest_indexed, head, self._config.batch_size)
            if block_range is None:
                self.state = IndexerState.IDLE
                return self._config.idle_interval

            from_height, to_height = block_range
            self.logger.info(f"Indexing blocks {from_height} -> {to_height}")
            events = await self.ledger.fetch_events(from_height, to_height)

            self.state = IndexerState.APPLYING
            await self.repository.apply_batch(events)

        except Exception as e:
            self._failures += 1
            self._last_error = e
            self.state = IndexerState.BACKOFF
            self.logger.error(f"Indexer error: {e}")
            return self._config.backoff_interval

        # Committed ranges advance even when publishing fails
        self.latest_indexed = to_height
        self._applied += len(events)
        self._last_success = get_current_timestamp()

        self.state = IndexerState.PUBLISHING
        try:
            await self._publish(events)
        except Exception as e:
            self._last_error = e
            self.logger.error(f"Failed to publish blocks {from_height} -> {to_height}: {e}")

        self.state = IndexerState.IDLE
        return self._config.idle_interval


    async def _publish(self, events: list[TransferEvent]) -> None:
        for event in events:
            await self.hub.publish(event)


    async def _run(self) -> None:
        """Drive cycles until stopped"""
        try:
            while not self._stop_event.is_set():
                delay = await self.run_cycle()
                await self._wait(delay)

        except asyncio.CancelledError:
            self.logger.info("Indexer loop cancelled")
            raise


    async def _wait(self, delay: float) -> None:
        """Sleep for ``delay`` seconds, waking early when the service is stopped"""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass


    def get_service_status(self) -> str:
        """Get comprehensive service status"""
        uptime = get_current_timestamp() - self._start_time if self._start_time else 0
        status_lines = [
            "Indexer Service Status:",
            f"Service State: {self._status.value}",
            f"Cycle State: {self.state.value}",
            f"Uptime: {format_duration(uptime)}",
            "",
            "Ingestion Status:",
            f"Latest Indexed Block: {self.latest_indexed}",
            f"Remote Block: {self.remote_height}",
            f"Cycles: {self._cycles} ({self._failures} failed)",
            f"Transfers Applied: {self._applied}",
            f"Last Successful Range: {format_timestamp(self._last_success)}",
            "",
            "Fan-out Status:",
            self.hub.get_status(),
            "",
            "Recent Error:",
            f"{type(self._last_error).__name__} {str(self._last_error)}" if self._last_error else "None"
        ]

        return "\n".join(status_lines)
