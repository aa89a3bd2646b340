"""
Solana RPC Client

Facade over the HTTP request transport and the WebSocket duplex channel.
Domain calls are opaque JSON-RPC 2.0 requests; their results are returned
as parsed JSON without interpretation.

API Documentation: https://solana.com/docs/rpc
"""

import asyncio
import base64
import dataclasses
import itertools
import logging
from typing import Any, Callable, Dict, List, Optional, Union

import aiohttp

from .backoff import BackoffPolicy
from .block_stream import BlockStream, LocalFetch
from .channel import DuplexChannel
from .config import ClientConfig, StreamConfig
from .errors import SubscriptionError
from .transport import RequestTransport
from .types import ChannelState, Commitment


class SolanaClient:
    """
    Solana RPC client.

    Provides:
    - HTTP JSON-RPC calls with endpoint rotation and retries
    - WebSocket requests and subscriptions over one shared connection
    - Ordered block streaming with bounded prefetch

    Usage:
        async with SolanaClient(url=["https://a", "https://b"]) as solana:
            slot = await solana.get_slot()
            block = await solana.get_block(slot)

            async for result in solana.create_block_stream(start=slot - 10):
                ...
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        url: Union[str, List[str], None] = None,
        ws: Optional[str] = None,
        commitment: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        proxy: Optional[str] = None,
        on_proxy: Optional[Callable[[], Optional[str]]] = None,
        channel: Optional[DuplexChannel] = None,
        backoff: Optional[BackoffPolicy] = None,
    ):
        """
        Initialize client.

        Args:
            config: Client configuration (defaults to public endpoints)
            url: One endpoint or a list of equivalent endpoints
            ws: WebSocket endpoint
            commitment: Default commitment for queries
            session: Externally owned aiohttp session
            proxy: Fixed proxy URL for HTTP requests
            on_proxy: Called per attempt to pick a proxy URL
            channel: Prebuilt duplex channel (tests)
            backoff: Retry policy for HTTP requests
        """
        self.config = dataclasses.replace(config) if config is not None else ClientConfig()
        if url is not None:
            self.config.urls = [url] if isinstance(url, str) else list(url)
        if ws is not None:
            self.config.ws_url = ws
        if commitment is not None:
            self.config.commitment = commitment
        if proxy is not None:
            self.config.proxy = proxy
        self.config.validate()

        self._logger = logging.getLogger("SolanaClient")
        self._ids = itertools.count(1)

        self.transport = RequestTransport(
            self.config.urls,
            backoff=backoff or BackoffPolicy(
                max_attempts=self.config.max_attempts,
                delay=self.config.retry_delay,
            ),
            timeout=self.config.request_timeout,
            session=session,
            proxy=self.config.proxy,
            on_proxy=on_proxy,
        )
        self.socket = channel or DuplexChannel(
            self.config.ws_url,
            keepalive_interval=self.config.keepalive_interval,
            ack_timeout=self.config.ack_timeout,
        )

    @property
    def commitment(self) -> str:
        return self.config.commitment

    @property
    def urls(self) -> List[str]:
        return list(self.config.urls)

    def _commitment(self, opts: Dict[str, Any]) -> str:
        commitment = opts.get('commitment') or self.config.commitment
        if isinstance(commitment, Commitment):
            return commitment.value
        return commitment

    def _confirmed_commitment(self, opts: Dict[str, Any]) -> str:
        """Commitment for calls that reject 'processed'."""
        commitment = self._commitment(opts)
        if commitment == Commitment.PROCESSED.value and not opts.get('commitment'):
            return Commitment.CONFIRMED.value
        return commitment

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def connect(self) -> None:
        await self.socket.connect()

    async def disconnect(self) -> None:
        await self.socket.disconnect()

    async def close(self) -> None:
        """Disconnect the socket (including one still connecting) and close the HTTP session."""
        if self.socket.state is not ChannelState.DISCONNECTED:
            await self.socket.disconnect()
        await self.transport.close()

    async def __aenter__(self) -> "SolanaClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def wait_for_message(self, predicate: Callable[[Any], bool], timeout: Optional[float] = None) -> Any:
        return await self.socket.wait_for_message(predicate, timeout)

    # =========================================================================
    # Transport
    # =========================================================================

    async def request(self, method: str, params: Optional[list] = None) -> Any:
        """HTTP JSON-RPC call; returns the `result` member."""
        data = await self.api({
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params if params is not None else [],
        })
        return data.get('result')

    async def api(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """Raw request body in, parsed response envelope out."""
        return await self.transport.execute(body)

    async def send(self, method: str, params: Optional[list] = None, wait: bool = True) -> Any:
        """WebSocket JSON-RPC call; returns the result, or {"id": n} when not waiting."""
        result = await self.socket.request(method, params, wait=wait)
        if not wait:
            return {"id": result}
        return result

    # =========================================================================
    # Slots and blocks
    # =========================================================================

    async def get_slot(self, **opts) -> int:
        return await self.request('getSlot', [
            {"commitment": self._commitment(opts)}
        ])

    async def get_block(self, slot: int, **opts) -> Optional[Dict[str, Any]]:
        return await self.request('getBlock', [
            slot,
            {
                "encoding": opts.get('encoding') or 'json',
                "commitment": self._confirmed_commitment(opts),
                "transactionDetails": opts.get('transaction_details') or 'full',
                "maxSupportedTransactionVersion": 0,
            }
        ])

    async def get_blocks(self, start: int, end: int, **opts) -> List[Optional[Dict[str, Any]]]:
        """Blocks for [start, end) fetched concurrently; start == end fetches one."""
        if start == end:
            return [await self.get_block(start, **opts)]

        return list(await asyncio.gather(*(
            self.get_block(slot, **opts) for slot in range(start, end)
        )))

    def create_block_stream(
        self,
        config: Optional[StreamConfig] = None,
        local: Optional[LocalFetch] = None,
        **options,
    ) -> BlockStream:
        return BlockStream(self, config=config, local=local, **options)

    # =========================================================================
    # Transactions and accounts
    # =========================================================================

    async def send_transaction(self, tx: Any, **opts) -> str:
        return await self.request('sendTransaction', [
            maybe_encode_transaction(tx),
            {
                "encoding": opts.get('encoding') or 'base64',
                "skipPreflight": True,
                "preflightCommitment": 'confirmed',
            }
        ])

    async def get_transaction(self, signature: str, **opts) -> Optional[Dict[str, Any]]:
        return await self.request('getTransaction', [
            signature,
            {
                "encoding": opts.get('encoding') or 'json',
                "commitment": self._confirmed_commitment(opts),
                "maxSupportedTransactionVersion": 0,
            }
        ])

    async def get_signatures_for_address(self, address: str, **opts) -> List[Dict[str, Any]]:
        config = {
            "commitment": self._confirmed_commitment(opts),
            "limit": opts.get('limit') or 1000,
        }
        for key, name in (('min_context_slot', 'minContextSlot'), ('before', 'before'), ('until', 'until')):
            if opts.get(key) is not None:
                config[name] = opts[key]

        return await self.request('getSignaturesForAddress', [address, config])

    async def get_account_info(self, address: str, **opts) -> Optional[Dict[str, Any]]:
        return await self.request('getAccountInfo', [
            address,
            {
                "encoding": opts.get('encoding') or 'base64',
                "commitment": self._commitment(opts),
            }
        ])

    async def get_balance(self, owner: str, **opts) -> Dict[str, Any]:
        return await self.request('getBalance', [
            owner,
            {"commitment": self._commitment(opts)}
        ])

    async def get_token_accounts_by_owner(self, owner: str, **opts) -> Dict[str, Any]:
        token_filter = {}
        if opts.get('mint'):
            token_filter['mint'] = opts['mint']
        if opts.get('program_id'):
            token_filter['programId'] = opts['program_id']

        return await self.request('getTokenAccountsByOwner', [
            owner,
            token_filter,
            {
                "commitment": self._commitment(opts),
                "encoding": opts.get('encoding') or 'json',
            }
        ])

    # =========================================================================
    # Subscriptions
    # =========================================================================

    async def logs_subscribe(
        self,
        mentions: Union[str, List[str]],
        callback: Callable[[Any], Any],
        **opts,
    ) -> int:
        """
        Subscribe to logs mentioning the given addresses.

        Retried with linear backoff while the node acknowledges without a
        subscription id.
        """
        if not isinstance(mentions, list):
            mentions = [mentions]

        policy = BackoffPolicy(
            max_attempts=self.config.subscribe_attempts,
            delay=self.config.retry_delay,
        )
        params = [{"mentions": mentions}, {"commitment": self._commitment(opts)}]

        for attempt in range(1, policy.max_attempts + 1):
            try:
                return await self.socket.subscribe('logsSubscribe', params, callback)
            except SubscriptionError as e:
                if attempt >= policy.max_attempts:
                    self._logger.error(f"logsSubscribe failed after {attempt} attempts")
                    raise SubscriptionError("Failed to subscribe") from e
                self._logger.warning(f"logsSubscribe attempt {attempt} got no id, retrying")
                await policy.wait(attempt)

        raise SubscriptionError("Failed to subscribe")

    async def logs_unsubscribe(self, subscription_id: int) -> bool:
        return await self.socket.unsubscribe(subscription_id)

    async def slot_subscribe(self, callback: Callable[[Any], Any]) -> int:
        return await self.socket.subscribe('slotSubscribe', [], callback)

    async def subscribe(self, method: str, params: Optional[list], callback: Callable[[Any], Any]) -> Any:
        return await self.socket.subscribe(method, params, callback)

    async def unsubscribe(self, subscription_id: Any) -> Any:
        return await self.socket.unsubscribe(subscription_id)


def maybe_encode_transaction(tx: Any) -> Any:
    """Serialize and base64-encode transaction objects and raw bytes; pass strings through."""
    if tx is not None and hasattr(tx, 'serialize'):
        tx = tx.serialize()

    if isinstance(tx, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(tx)).decode('ascii')

    return tx
