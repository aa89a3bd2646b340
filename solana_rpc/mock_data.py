"""
Mock Ledger for Solana RPC

Deterministic stand-in for a node, for offline development and tests.
Blocks follow the shape of real getBlock responses (json encoding) but
carry no real transactions.

Use cases:
- Unit testing BlockStream without network access
- Simulating skipped slots, slow fetches and failing fetches
- Measuring fetch concurrency under a prefetch window
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from .errors import BLOCK_CLEANED_UP, BLOCK_NOT_AVAILABLE, SLOT_SKIPPED, FatalError


@dataclass
class MockConfig:
    """Configuration for the mock ledger."""

    # Tip at creation
    tip: int = 1_000

    # Slots the tip advances on every get_slot() call (live simulation)
    tip_step: int = 0

    # Slots that never produced a block
    skipped_slots: Set[int] = field(default_factory=set)

    # Slots whose block was pruned from the node (code -32001)
    pruned_slots: Set[int] = field(default_factory=set)

    # Slots whose block exists but is not served yet (code -32004)
    unavailable_slots: Set[int] = field(default_factory=set)

    # Slots whose fetch fails with a generic error
    failing_slots: Set[int] = field(default_factory=set)

    # Slots whose fetch returns None instead of a block
    empty_slots: Set[int] = field(default_factory=set)

    # Per-fetch completion delay range in seconds
    latency_range: tuple = (0.0, 0.0)

    # Transactions generated per block
    transactions_per_block: int = 2


class MockLedger:
    """
    Mock node exposing get_slot() and get_block() like SolanaClient.

    Fetch delays are drawn per slot from a seeded generator, so the same
    seed gives the same completion order across runs.

    Usage:
        ledger = MockLedger(MockConfig(tip=110, latency_range=(0.0, 0.01)), seed=7)
        stream = BlockStream(ledger, start=100)
        async for result in stream:
            ...
    """

    def __init__(self, config: Optional[MockConfig] = None, seed: int = None):
        """Initialize mock ledger.

        Args:
            config: Mock ledger configuration
            seed: Random seed for reproducible latencies
        """
        self._config = config or MockConfig()
        self._random = random.Random(seed)
        self._tip = self._config.tip

        # Recording
        self.fetched: List[int] = []
        self.slot_calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def tip(self) -> int:
        return self._tip

    def advance(self, slots: int = 1) -> int:
        """Move the tip forward and return it."""
        self._tip += slots
        return self._tip

    async def get_slot(self, **opts) -> int:
        """Return the current tip, then advance it by tip_step."""
        self.slot_calls += 1
        tip = self._tip
        self._tip += self._config.tip_step
        return tip

    async def get_block(self, slot: int, **opts) -> Optional[Dict[str, Any]]:
        """Return a generated block for slot.

        Raises:
            FatalError: slot is configured as skipped (-32007), pruned (-32001)
                or not yet available (-32004)
            RuntimeError: slot is configured to fail
        """
        self.fetched.append(slot)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)

        try:
            delay = self._random.uniform(*self._config.latency_range)
            await asyncio.sleep(delay)

            if slot in self._config.skipped_slots:
                raise FatalError(
                    f"Slot {slot} was skipped, or missing due to ledger jump to recent snapshot",
                    code=SLOT_SKIPPED,
                )
            if slot in self._config.pruned_slots:
                raise FatalError(
                    f"Block {slot} cleaned up, does not exist on node. First available block: {slot + 1}",
                    code=BLOCK_CLEANED_UP,
                )
            if slot in self._config.unavailable_slots:
                raise FatalError(f"Block not available for slot {slot}", code=BLOCK_NOT_AVAILABLE)
            if slot in self._config.failing_slots:
                raise RuntimeError(f"Mock failure for slot {slot}")
            if slot in self._config.empty_slots:
                return None

            return self.make_block(slot)
        finally:
            self.in_flight -= 1

    def make_block(self, slot: int) -> Dict[str, Any]:
        """Generate a block dict for slot."""
        return {
            'blockHeight': slot - 10,
            'blockTime': 1_700_000_000 + slot // 2,
            'blockhash': f"mockhash{slot:012d}",
            'parentSlot': slot - 1,
            'previousBlockhash': f"mockhash{slot - 1:012d}",
            'rewards': [],
            'transactions': [
                {
                    'meta': {'err': None, 'fee': 5000, 'logMessages': []},
                    'transaction': {'signatures': [f"mocksig{slot}x{i}"]},
                }
                for i in range(self._config.transactions_per_block)
            ],
        }
