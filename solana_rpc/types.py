"""
Solana RPC Data Types

Plain data structures shared by the transport, the channel and the block
stream. No network access happens here.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Union


class Commitment(Enum):
    """Requested durability level for a query."""
    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"


class ChannelState(Enum):
    """Duplex channel lifecycle."""
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    DISCONNECTING = "DISCONNECTING"


class StreamState(Enum):
    """Block stream lifecycle."""
    OPENING = "OPENING"
    STREAMING = "STREAMING"
    DONE = "DONE"


# =========================================================================
# Stream results
# =========================================================================

@dataclass(frozen=True)
class Present:
    """A block that was fetched for its slot."""
    slot: int
    block: Dict[str, Any]

    @property
    def missing(self) -> bool:
        return False


@dataclass(frozen=True)
class Missing:
    """Marker for a slot that has no block (skipped or pruned upstream)."""
    slot: int
    reason: str = ""

    @property
    def missing(self) -> bool:
        return True


BlockResult = Union[Present, Missing]


# =========================================================================
# Channel registries
# =========================================================================

@dataclass
class PendingRequest:
    """
    A registered wait for one inbound message.

    Resolved or rejected exactly once through its future, then removed from
    the channel registry.
    """
    id: int
    predicate: Callable[[Any], bool]
    future: asyncio.Future
    timeout: float
    created_at: float = field(default_factory=time.monotonic)

    @property
    def deadline(self) -> float:
        return self.created_at + self.timeout

    @property
    def done(self) -> bool:
        return self.future.done()

    def resolve(self, message: Any) -> bool:
        if self.future.done():
            return False
        self.future.set_result(message)
        return True

    def reject(self, error: BaseException) -> bool:
        if self.future.done():
            return False
        self.future.set_exception(error)
        return True


@dataclass
class Subscription:
    """Remote subscription id bound to a local notification callback."""
    id: int
    method: str  # e.g. "logsSubscribe"
    notification: str  # e.g. "logsNotification"
    unsubscribe_method: str  # e.g. "logsUnsubscribe"
    callback: Callable[[Any], Any]
    created_at: float = field(default_factory=time.time)
    notifications: int = 0

    @classmethod
    def for_method(cls, subscription_id: int, method: str, callback: Callable[[Any], Any]) -> "Subscription":
        """Derive notification/unsubscribe names from a `<name>Subscribe` method."""
        prefix = method[:-len("Subscribe")] if method.endswith("Subscribe") else method
        return cls(
            id=subscription_id,
            method=method,
            notification=f"{prefix}Notification",
            unsubscribe_method=f"{prefix}Unsubscribe",
            callback=callback,
        )

    def matches(self, message: Dict[str, Any]) -> bool:
        if message.get('method') != self.notification:
            return False
        params = message.get('params')
        return isinstance(params, dict) and params.get('subscription') == self.id
