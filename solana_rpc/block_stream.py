"""
Ordered Block Stream

Yields blocks for slots start, start+1, ... strictly in order while keeping
up to `prefetch` fetches running ahead of the read cursor.

The cache maps slot -> fetch task. Output order comes from the cursor
walking the cache, never from completion order. An entry leaves the cache
only when the cursor consumes it, so the cache never exceeds the window.

Modes:
- snapshot (default): the tip queried at open becomes the end
- explicit end: stop before `end`
- live: follow the tip forever, polling while caught up

Usage:
    stream = BlockStream(client, start=250_000_000, end=250_000_100)
    async for result in stream:
        if result.missing:
            continue
        process(result.slot, result.block)
"""

import asyncio
import dataclasses
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from .config import StreamConfig
from .errors import BlockUnavailableError, is_missing_slot
from .metrics import StreamMetrics
from .types import BlockResult, Missing, Present, StreamState

LocalFetch = Callable[[int], Awaitable[Optional[Dict[str, Any]]]]


class BlockStream:
    """
    Forward-only, non-restartable async iterator of BlockResult.

    `source` must provide `await get_slot()` (current tip) and
    `await get_block(slot)`; SolanaClient does.
    """

    def __init__(
        self,
        source: Any,
        config: Optional[StreamConfig] = None,
        local: Optional[LocalFetch] = None,
        **options,
    ):
        """
        Initialize stream.

        Args:
            source: Tip query and fetch-by-slot capability
            config: Stream configuration (keyword options override it)
            local: Optional hook tried before source.get_block(); returning
                None falls through to the source
        """
        if config is None:
            config = StreamConfig(**options)
        elif options:
            config = dataclasses.replace(config, **options)

        self.config = config
        self._source = source
        self._local = local
        self._logger = logging.getLogger("BlockStream")

        # Bounds
        self._cursor = config.start
        self._end = config.end
        self._tip = 0
        self._live = config.live
        self._snapshot = config.snapshot and not config.live

        # Window
        self._window = config.prefetch
        self._in_flight_limit = config.in_flight_limit
        self._poll_interval = config.poll_interval
        self._skip_missing = config.missing_policy
        self._cache: Dict[int, asyncio.Future] = {}

        self._state = StreamState.OPENING
        self.metrics = StreamMetrics()

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def tip(self) -> int:
        return self._tip

    @property
    def end(self) -> Optional[int]:
        return self._end

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    @property
    def window(self) -> int:
        return self._window

    # =========================================================================
    # Iteration
    # =========================================================================

    def __aiter__(self) -> "BlockStream":
        return self

    async def __anext__(self) -> BlockResult:
        if self._state is StreamState.DONE:
            raise StopAsyncIteration

        try:
            if self._state is StreamState.OPENING:
                await self._open()
            result = await self._read()
        except BaseException:
            self._finish()
            raise

        if result is None:
            self._logger.info(
                f"Stream ended at slot {self._cursor} "
                f"({self.metrics.blocks_emitted} blocks, {self.metrics.missing_slots} missing)"
            )
            self._finish()
            raise StopAsyncIteration

        return result

    async def __aenter__(self) -> "BlockStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stop the stream. In-flight fetches finish on their own and are discarded."""
        self._finish()

    def _finish(self) -> None:
        self._state = StreamState.DONE
        self._cache.clear()

    async def _open(self) -> None:
        if self._end is None:
            self._tip = await self._poll_tip()
            if self._snapshot:
                self._end = self._tip

        self._state = StreamState.STREAMING
        bound = 'live' if self._live and self._end is None else self._upper_bound()
        self._logger.info(
            f"Streaming from slot {self._cursor} to {bound} (window {self._window})"
        )

    async def _read(self) -> Optional[BlockResult]:
        if self._end is not None and self._cursor >= self._end:
            return None

        if self._live:
            await self._wait_for_tip()

        self._replenish()

        if self._cursor >= self._upper_bound():
            return None

        slot = self._cursor
        future = self._cache.pop(slot, None)
        if future is None:
            future = self._start_fetch(slot)
        self._cursor += 1

        try:
            block = await asyncio.shield(future)
        except Exception as e:
            if self._skip_missing and is_missing_slot(e):
                self.metrics.missing_slots += 1
                self._logger.debug(f"Slot {slot} missing: {e}")
                return Missing(slot, str(e))

            self._logger.error(f"Stream stopped at slot {slot}: {e}")
            raise

        self.metrics.blocks_emitted += 1
        return Present(slot, block)

    def _upper_bound(self) -> int:
        """Exclusive slot limit for fetching and emitting right now."""
        if self._end is None:
            return self._tip
        if self._live:
            return min(self._end, self._tip)
        return self._end

    # =========================================================================
    # Tip tracking
    # =========================================================================

    async def _poll_tip(self) -> int:
        self.metrics.tip_polls += 1
        return int(await self._source.get_slot())

    async def _wait_for_tip(self) -> None:
        """Block until the tip moves past the cursor, polling at poll_interval."""
        while self._cursor >= self._tip:
            tip = await self._poll_tip()
            if tip > self._tip:
                self._tip = tip
                if self._cursor < self._tip:
                    break
            await asyncio.sleep(self._poll_interval)

    # =========================================================================
    # Prefetch
    # =========================================================================

    def _replenish(self) -> None:
        """Launch fetches from the cursor forward until the window is full."""
        if self._state is StreamState.DONE:
            return

        limit = self._upper_bound()
        in_flight = sum(1 for future in self._cache.values() if not future.done())
        slot = self._cursor

        while (
            slot < limit
            and len(self._cache) < self._window
            and in_flight < self._in_flight_limit
        ):
            if slot not in self._cache:
                self._cache[slot] = self._start_fetch(slot)
                in_flight += 1
            slot += 1

        if len(self._cache) > self.metrics.peak_cache_size:
            self.metrics.peak_cache_size = len(self._cache)

    def _start_fetch(self, slot: int) -> asyncio.Future:
        self.metrics.fetches_started += 1
        task = asyncio.ensure_future(self._fetch(slot))
        task.add_done_callback(self._on_fetch_done)
        return task

    def _on_fetch_done(self, task: asyncio.Future) -> None:
        # Failures surface when the slot is consumed
        if not task.cancelled() and task.exception() is not None:
            self.metrics.fetches_failed += 1
            self._logger.debug(f"Prefetch failed: {task.exception()}")

        self._replenish()

    async def _fetch(self, slot: int) -> Dict[str, Any]:
        if self._local is not None:
            try:
                block = await self._local(slot)
            except Exception as e:
                self._logger.debug(f"Local fetch for slot {slot} failed: {e}")
                block = None
            if block is not None:
                self.metrics.local_hits += 1
                return block

        block = await self._source.get_block(slot)
        if not block:
            raise BlockUnavailableError(slot)
        return block
