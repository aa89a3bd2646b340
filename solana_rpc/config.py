"""
Solana RPC Configuration

All configurable parameters for the client facade and the block stream.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv


# Public endpoints
DEFAULT_API_URL = "https://solana-rpc.publicnode.com"
DEFAULT_WS_URL = "wss://solana-rpc.publicnode.com"


@dataclass
class ClientConfig:
    """Configuration for SolanaClient."""

    # ========== Endpoints ==========
    # Equivalent HTTP endpoints, rotated round-robin per attempt
    urls: List[str] = field(default_factory=lambda: [DEFAULT_API_URL])

    # WebSocket endpoint for subscriptions
    ws_url: str = DEFAULT_WS_URL

    # Default commitment for queries
    commitment: str = "finalized"

    # Fixed proxy URL for HTTP requests (None = direct)
    proxy: Optional[str] = None

    # ========== Request Transport ==========
    # Per-attempt timeout (seconds)
    request_timeout: float = 30.0

    # Attempts per logical request (including the first)
    max_attempts: int = 3

    # Linear backoff unit: attempt n waits retry_delay * n
    retry_delay: float = 1.0

    # ========== Duplex Channel ==========
    # Keepalive tick interval (seconds)
    keepalive_interval: float = 15.0

    # Deadline for a reply to a socket request (seconds)
    ack_timeout: float = 60.0

    # Attempts for a subscribe that is acknowledged without an id
    subscribe_attempts: int = 5

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Normalize urls and reject unusable values."""
        if isinstance(self.urls, str):
            self.urls = [self.urls]
        if not self.urls:
            raise ValueError("At least one RPC url is required")
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.retry_delay < 0:
            raise ValueError(f"retry_delay must be >= 0, got {self.retry_delay}")

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "ClientConfig":
        """
        Build a config from environment variables (and a .env file if present).

        SOLANA_RPC_URL may hold several comma separated endpoints.
        """
        load_dotenv(dotenv_path)

        config = cls()

        urls = os.getenv('SOLANA_RPC_URL')
        if urls:
            config.urls = [u.strip() for u in urls.split(',') if u.strip()]

        config.ws_url = os.getenv('SOLANA_WS_URL', config.ws_url)
        config.commitment = os.getenv('SOLANA_COMMITMENT', config.commitment)
        config.proxy = os.getenv('SOLANA_RPC_PROXY', config.proxy)

        timeout = os.getenv('SOLANA_RPC_TIMEOUT')
        if timeout:
            config.request_timeout = float(timeout)

        config.validate()
        return config


@dataclass
class StreamConfig:
    """Configuration for BlockStream."""

    # First slot to emit
    start: int = 0

    # Exclusive upper bound (None = resolve from the tip at open)
    end: Optional[int] = None

    # Follow the tip forever instead of stopping
    live: bool = False

    # Freeze the tip queried at open as the end (ignored when live)
    snapshot: bool = True

    # Window: max slots cached or in flight ahead of the cursor
    prefetch: int = 30

    # Absolute ceiling on concurrent fetches (None = prefetch)
    max_in_flight: Optional[int] = None

    # Delay between tip polls while waiting for new slots (seconds)
    poll_interval: float = 0.5

    # Emit Missing for skipped slots instead of failing (None = follow live)
    skip_missing: Optional[bool] = None

    def __post_init__(self):
        if self.prefetch < 1:
            raise ValueError(f"prefetch window must be >= 1, got {self.prefetch}")
        if self.max_in_flight is not None and self.max_in_flight < 1:
            raise ValueError(f"max_in_flight must be >= 1, got {self.max_in_flight}")
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be > 0, got {self.poll_interval}")
        if self.start < 0:
            raise ValueError(f"start must be >= 0, got {self.start}")
        if self.end is not None and self.end < 0:
            self.end = None

    @property
    def in_flight_limit(self) -> int:
        if self.max_in_flight is None:
            return self.prefetch
        return min(self.max_in_flight, self.prefetch)

    @property
    def missing_policy(self) -> bool:
        if self.skip_missing is None:
            return self.live
        return self.skip_missing
