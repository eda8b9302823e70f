import asyncio
import itertools
from typing import Any

import aiohttp

from tokenwatch.core.config import LedgerConfig
from tokenwatch.core.exceptions import AdapterError
from tokenwatch.core.models import TransferEvent
from tokenwatch.core.protocols import APIAdapter
from tokenwatch.utils.logger import LoggerSetup
from tokenwatch.utils.rate_limit import RateLimiter

# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


def _parse_quantity(value: Any) -> int:
    """Decode a JSON-RPC quantity (``0x``-prefixed hex, or a plain int)"""
    if isinstance(value, bool):
        raise ValueError(f"Invalid quantity {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.startswith("0x"):
        return int(value, 16)
    raise ValueError(f"Invalid quantity {value!r}")


def _topic_to_address(topic: str) -> str:
    """Indexed address arguments are left-padded to 32 bytes"""
    if not isinstance(topic, str) or len(topic) != 66 or not topic.startswith("0x"):
        raise ValueError(f"Invalid address topic {topic!r}")
    int(topic, 16)
    return "0x" + topic[-40:].lower()


class LedgerClient(APIAdapter):
    """
    Async JSON-RPC client for an EVM ledger, scoped to the Transfer events of one contract.

    The client does not retry: every failure surfaces as ``AdapterError`` and
    the indexer decides when to try again. Returned events are sorted by
    ``(height, log_index)`` so callers can apply them in order as-is.
    """

    def __init__(self, config: LedgerConfig):
        self._config = config
        self._session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()
        self._rate_limiter = RateLimiter(
            calls_per_window=config.rate_limit,
            window_size=config.rate_limit_window
        )
        self._request_ids = itertools.count(1)
        self.contract_address = config.contract_address.lower()

        self.logger = LoggerSetup.setup(__class__.__name__)

    async def _create_session(self) -> aiohttp.ClientSession:
        """Create new session with JSON-RPC headers and timeout"""
        return aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self._config.timeout),
            headers={
                'Accept': 'application/json',
                'Content-Type': 'application/json'
            }
        )

    async def _request(self, method: str, params: list[Any], **kwargs: Any) -> Any:
        """
        Perform a single JSON-RPC call.

        Args:
            method: RPC method name (e.g. ``eth_getLogs``)
            params: Positional RPC parameters

        Returns:
            The ``result`` member of the response

        Raises:
            AdapterError: On transport failure, HTTP error, RPC error object
                or a response without a result
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": method,
            "params": params
        }
        session = await self._get_session()
        await self._rate_limiter.acquire()

        try:
            async with session.post(self._config.rpc_url, json=payload, **kwargs) as response:
                response.raise_for_status()
                body = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise AdapterError(f"{method} request failed: {type(e).__name__} {e}") from e

        if not isinstance(body, dict):
            raise AdapterError(f"{method} returned a non-object response")
        if body.get("error"):
            error = body["error"]
            message = error.get("message") if isinstance(error, dict) else error
            raise AdapterError(f"{method} returned error: {message}")
        if "result" not in body:
            raise AdapterError(f"{method} response has no result")

        return body["result"]

    async def current_height(self) -> int:
        """Get the latest block height known to the node"""
        result = await self._request("eth_blockNumber", [])
        try:
            return _parse_quantity(result)
        except ValueError as e:
            raise AdapterError(f"Malformed block number: {e}") from e

    async def fetch_events(self, from_height: int, to_height: int) -> list[TransferEvent]:
        """
        Get the contract's Transfer events within an inclusive height range.

        Args:
            from_height: First height of the range
            to_height: Last height of the range

        Returns:
            List[TransferEvent]: Events in ascending (height, log_index) order

        Raises:
            AdapterError: If the call fails or any log cannot be decoded;
                no partial result is returned
        """
        if from_height > to_height:
            raise ValueError(f"Invalid range [{from_height}, {to_height}]")

        logs = await self._request("eth_getLogs", [{
            "address": self.contract_address,
            "topics": [TRANSFER_TOPIC],
            "fromBlock": hex(from_height),
            "toBlock": hex(to_height)
        }])

        if not isinstance(logs, list):
            raise AdapterError("eth_getLogs returned a non-list result")

        events = [self._decode_log(log) for log in logs]
        events.sort(key=lambda e: e.ordering_key)

        self.logger.debug(f"Fetched {len(events)} transfers in [{from_height}, {to_height}]")
        return events

    def _decode_log(self, log: Any) -> TransferEvent:
        """
        Decode a raw ERC-721 Transfer log.
        All three arguments are indexed, so the log carries four topics and no data.
        """
        try:
            topics = log["topics"]
            if len(topics) != 4 or topics[0].lower() != TRANSFER_TOPIC:
                raise ValueError(f"unexpected topics {topics!r}")

            return TransferEvent(
                from_address=_topic_to_address(topics[1]),
                to_address=_topic_to_address(topics[2]),
                token_id=str(_parse_quantity(topics[3])),
                height=_parse_quantity(log["blockNumber"]),
                log_index=_parse_quantity(log.get("logIndex", 0)),
                transaction_hash=log.get("transactionHash")
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise AdapterError(f"Malformed transfer log: {e}") from e
