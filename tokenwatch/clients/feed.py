import asyncio
import json
from typing import AsyncIterator, Awaitable, Callable

from pydantic import ValidationError
from websockets.asyncio.client import connect, ClientConnection
from websockets.exceptions import ConnectionClosed

from tokenwatch.messaging.schemas import TransferMessage
from tokenwatch.utils.logger import LoggerSetup

TransferHandler = Callable[[TransferMessage], Awaitable[None]]


class TokenFeedClient:
    """
    Consumer for the ``/ws`` transfer feed.

    Reconnects on connection loss. The feed has no replay, so transfers
    published while disconnected are missed; use ``/api/tokens`` to resync.
    """

    def __init__(self, url: str = "ws://localhost:3000/ws"):
        self._url = url
        self._ws: ClientConnection | None = None
        self._runner: asyncio.Task | None = None

        self.logger = LoggerSetup.setup(__class__.__name__)

    async def start(self, handler: TransferHandler) -> None:
        """Start consuming in the background"""
        self._runner = asyncio.create_task(self._run(handler))

    async def stop(self) -> None:
        """Stop consuming"""
        if self._runner:
            self._runner.cancel()
            try:
                await self._runner
            except asyncio.CancelledError:
                pass
        self._runner = None
        self._ws = None

    async def _run(self, handler: TransferHandler) -> None:
        async for message in self.messages():
            try:
                await handler(message)
            except Exception as e:
                self.logger.error(f"Transfer handler failed for token {message.token_id}: {e}")

    async def messages(self) -> AsyncIterator[TransferMessage]:
        """Yield transfers as they arrive, reconnecting forever"""
        async for websocket in connect(
            self._url,
            ping_interval=20,
            ping_timeout=20,
            close_timeout=10
        ):
            self._ws = websocket
            self.logger.info(f"Connected to {self._url}")
            try:
                async for raw in websocket:
                    message = self._parse(raw)
                    if message is not None:
                        yield message

            except ConnectionClosed:
                self.logger.info("Connection closed, reconnecting...")
                self._ws = None
                continue

    def _parse(self, raw: str | bytes) -> TransferMessage | None:
        try:
            return TransferMessage.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            self.logger.warning(f"Ignoring malformed feed message: {e}")
            return None
