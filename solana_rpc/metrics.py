"""
Solana RPC Metrics

Dataclasses for tracking transport, channel and stream health.
"""

from dataclasses import dataclass, field
from typing import Dict
import time


@dataclass
class TransportMetrics:
    """Metrics for RequestTransport."""

    # Logical requests
    requests: int = 0
    succeeded: int = 0

    # Attempts
    attempts: int = 0
    retries: int = 0
    endpoint_attempts: Dict[str, int] = field(default_factory=dict)

    # Failures
    fatal_errors: int = 0
    exhausted: int = 0

    # Timing
    last_request_time: float = 0.0

    @property
    def retry_rate(self) -> float:
        return self.retries / self.attempts if self.attempts > 0 else 0.0

    def record_attempt(self, url: str) -> None:
        self.attempts += 1
        self.endpoint_attempts[url] = self.endpoint_attempts.get(url, 0) + 1
        self.last_request_time = time.time()


@dataclass
class ChannelMetrics:
    """Metrics for DuplexChannel."""

    # Connection
    connects: int = 0
    disconnects: int = 0
    is_connected: bool = False

    # Traffic
    messages_sent: int = 0
    messages_received: int = 0
    notifications_delivered: int = 0
    keepalives: int = 0

    # Errors
    parse_errors: int = 0
    listener_errors: int = 0
    ack_timeouts: int = 0

    # Timing
    connected_at: float = 0.0
    last_message_time: float = 0.0


@dataclass
class StreamMetrics:
    """Metrics for BlockStream."""

    # Fetching
    fetches_started: int = 0
    fetches_failed: int = 0
    local_hits: int = 0

    # Output
    blocks_emitted: int = 0
    missing_slots: int = 0

    # Tip tracking
    tip_polls: int = 0

    # Window (never above the configured prefetch)
    peak_cache_size: int = 0

    # Timing
    start_time: float = field(default_factory=time.time)

    @property
    def blocks_per_second(self) -> float:
        elapsed = time.time() - self.start_time
        return self.blocks_emitted / elapsed if elapsed > 0 else 0.0
