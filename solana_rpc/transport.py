"""
Request Transport

Executes one JSON-RPC request/response exchange over HTTP with retries.

Each attempt goes to the next endpoint of the rotator. Outcomes:
- network failure, timeout, unreadable body: retry after linear backoff
- HTTP 402 (proxy/quota rejection): fatal immediately
- remote error 429 / node unhealthy: retry after linear backoff
- remote error -32602 (invalid params): fatal, message carries error data
- any other remote error: fatal
- success: returned immediately
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, Optional, Union

import aiohttp

from .backoff import BackoffPolicy, Decision
from .endpoints import EndpointRotator
from .errors import (
    INVALID_PARAMS,
    FatalError,
    RpcError,
    TransportExhaustedError,
)
from .metrics import TransportMetrics

HTTP_PAYMENT_REQUIRED = 402

JsonBody = Union[Dict[str, Any], list]


class RequestTransport:
    """
    HTTP JSON-RPC transport with endpoint rotation and linear backoff.

    Usage:
        transport = RequestTransport(["https://a", "https://b"])
        data = await transport.execute({"jsonrpc": "2.0", "id": 1, "method": "getSlot"})
        await transport.close()
    """

    def __init__(
        self,
        urls: Iterable[str],
        backoff: Optional[BackoffPolicy] = None,
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
        proxy: Optional[str] = None,
        on_proxy: Optional[Callable[[], Optional[str]]] = None,
    ):
        """
        Initialize transport.

        Args:
            urls: Equivalent endpoints, used round-robin per attempt
            backoff: Retry policy (3 attempts, 1s linear by default)
            timeout: Per-attempt timeout in seconds
            session: Externally owned aiohttp session (not closed by us)
            proxy: Fixed proxy URL
            on_proxy: Called on every attempt to pick a proxy URL
        """
        self._rotator = EndpointRotator(urls)
        self._backoff = backoff or BackoffPolicy()
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._proxy = proxy
        self._on_proxy = on_proxy
        self._logger = logging.getLogger("RequestTransport")

        self.metrics = TransportMetrics()

    @property
    def rotator(self) -> EndpointRotator:
        return self._rotator

    @property
    def backoff(self) -> BackoffPolicy:
        return self._backoff

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this transport created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    # =========================================================================
    # Execution
    # =========================================================================

    async def execute(self, body: JsonBody) -> Any:
        """
        Send one request body and return the parsed response.

        Raises:
            FatalError: non-retryable rejection
            TransportExhaustedError: every attempt failed with a retryable error
        """
        self.metrics.requests += 1
        method = body.get('method', '?') if isinstance(body, dict) else 'batch'
        max_attempts = self._backoff.max_attempts
        last_error: Optional[BaseException] = None

        for attempt in range(1, max_attempts + 1):
            url = self._rotator.next()
            self.metrics.record_attempt(url)
            self._logger.debug(f"{method} attempt {attempt}/{max_attempts} -> {url}")

            try:
                data = await self._post(url, body)
            except FatalError as e:
                self.metrics.fatal_errors += 1
                self._logger.error(f"{method} rejected by {url}: {e}")
                raise
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                last_error = e
                self._logger.warning(
                    f"{method} attempt {attempt}/{max_attempts} to {url} failed: "
                    f"{type(e).__name__}: {e}"
                )
            else:
                error = data.get('error') if isinstance(data, dict) else None
                if not error:
                    self.metrics.succeeded += 1
                    return data

                remote = RpcError.from_payload(error)
                if self._backoff.classify(remote) is Decision.FATAL:
                    self.metrics.fatal_errors += 1
                    message = remote.message
                    if remote.code == INVALID_PARAMS:
                        message = remote.decorated_message
                    self._logger.error(f"{method} failed with code {remote.code}: {message}")
                    raise FatalError(message, code=remote.code, data=remote.data) from remote

                last_error = remote
                self._logger.warning(
                    f"{method} attempt {attempt}/{max_attempts} to {url} "
                    f"returned retryable error {remote.code}: {remote.message}"
                )

            if attempt < max_attempts:
                self.metrics.retries += 1
                await self._backoff.wait(attempt)

        self.metrics.exhausted += 1
        self._logger.error(f"{method}: all {max_attempts} attempts failed: {last_error}")
        raise TransportExhaustedError(last_error, max_attempts) from last_error

    async def _post(self, url: str, body: JsonBody) -> Any:
        """Issue a single POST and decode the JSON body."""
        session = await self._get_session()
        proxy = self._on_proxy() if self._on_proxy is not None else self._proxy

        async with session.post(
            url,
            json=body,
            headers={"Content-Type": "application/json"},
            proxy=proxy,
            timeout=aiohttp.ClientTimeout(total=self._timeout),
        ) as response:
            if response.status == HTTP_PAYMENT_REQUIRED:
                # Proxy error probably
                raise FatalError("Payment required", http_status=response.status)

            return await response.json(content_type=None)
