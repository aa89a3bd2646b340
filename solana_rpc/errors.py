"""
Solana RPC Errors

Exception taxonomy for the request transport, the duplex channel and the
block stream. Everything raised by this package derives from SolanaRpcError.
"""

from typing import Any, Optional


# JSON-RPC error codes
RATE_LIMITED = 429
NODE_UNHEALTHY = -32005
INVALID_PARAMS = -32602

# Codes that are retried with backoff instead of surfaced
RETRYABLE_CODES = frozenset({RATE_LIMITED, NODE_UNHEALTHY})

# Block exists but is not served yet (not a missing slot)
BLOCK_NOT_AVAILABLE = -32004

# Codes meaning the slot was legitimately never produced or was pruned
BLOCK_CLEANED_UP = -32001
SLOT_SKIPPED = -32007
LONG_TERM_STORAGE_SLOT_SKIPPED = -32009
MISSING_SLOT_CODES = frozenset({
    BLOCK_CLEANED_UP,
    SLOT_SKIPPED,
    LONG_TERM_STORAGE_SLOT_SKIPPED,
})


class SolanaRpcError(Exception):
    """Base class for all errors raised by this package."""


# =========================================================================
# Remote errors
# =========================================================================

class RpcError(SolanaRpcError):
    """Structured error returned by the remote node: {code, message, data}."""

    def __init__(self, code: Optional[int], message: str, data: Any = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    @classmethod
    def from_payload(cls, error: Any) -> "RpcError":
        """Build from the `error` member of a JSON-RPC response."""
        if not isinstance(error, dict):
            return cls(None, str(error))
        return cls(error.get('code'), str(error.get('message', 'Unknown error')), error.get('data'))

    @property
    def retryable(self) -> bool:
        return self.code in RETRYABLE_CODES

    @property
    def decorated_message(self) -> str:
        """Message with any attached diagnostic data appended."""
        if self.data:
            return f"{self.message}: {self.data}"
        return self.message


# =========================================================================
# Transport errors
# =========================================================================

class TransportError(SolanaRpcError):
    """Raised by RequestTransport.execute()."""
    kind = "transport"


class FatalError(TransportError):
    """Non-retryable rejection: bad params, payment required, other remote codes."""
    kind = "fatal"

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        http_status: Optional[int] = None,
        data: Any = None,
    ):
        super().__init__(message)
        self.code = code
        self.http_status = http_status
        self.data = data


class TransportExhaustedError(TransportError):
    """All attempts used up; carries the last recorded cause."""
    kind = "exhausted"

    def __init__(self, cause: Optional[BaseException], attempts: int):
        message = str(cause) if cause is not None else "Unknown error"
        super().__init__(message)
        self.cause = cause
        self.attempts = attempts


# =========================================================================
# Channel errors
# =========================================================================

class ChannelError(SolanaRpcError):
    """Base class for duplex channel failures."""


class NotConnectedError(ChannelError):
    """Send attempted while the socket is not open."""


class ConnectError(ChannelError):
    """Handshake failed or the socket closed before becoming ready."""


class AckTimeoutError(ChannelError):
    """No matching inbound message arrived before the deadline."""


class ConnectionClosedError(ChannelError):
    """The channel closed while a reply was still awaited."""


class UnknownSubscriptionError(ChannelError):
    """Unsubscribe requested for an identifier that is not registered."""

    def __init__(self, subscription_id: Any):
        super().__init__(f"Unknown subscription: {subscription_id}")
        self.subscription_id = subscription_id


class SubscriptionError(ChannelError):
    """Subscribe was acknowledged without a subscription identifier."""


# =========================================================================
# Stream errors
# =========================================================================

class BlockUnavailableError(SolanaRpcError):
    """A block fetch succeeded but returned nothing for the slot."""

    def __init__(self, slot: int):
        super().__init__(f"Block not available: {slot}")
        self.slot = slot


def is_missing_slot(error: BaseException) -> bool:
    """True when the error means the slot has no block (skipped or pruned)."""
    if isinstance(error, BlockUnavailableError):
        return True

    if isinstance(error, TransportExhaustedError) and error.cause is not None:
        return is_missing_slot(error.cause)

    code = getattr(error, 'code', None)
    if code in MISSING_SLOT_CODES:
        return True

    return isinstance(error, (RpcError, FatalError)) and 'was skipped' in str(error).lower()
