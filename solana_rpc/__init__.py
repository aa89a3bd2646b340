"""
Solana RPC Client Module

Components:
- transport.py: HTTP JSON-RPC transport with endpoint rotation and retries
- channel.py: WebSocket duplex channel (requests, waits, subscriptions)
- block_stream.py: Ordered block stream with bounded prefetch
- client.py: Facade combining transport, channel and domain calls
- mock_data.py: Deterministic mock ledger for offline testing
"""

from .backoff import BackoffPolicy, Decision
from .block_stream import BlockStream
from .channel import DuplexChannel
from .client import SolanaClient, maybe_encode_transaction
from .config import ClientConfig, StreamConfig
from .endpoints import EndpointRotator
from .errors import (
    AckTimeoutError,
    BlockUnavailableError,
    ChannelError,
    ConnectError,
    ConnectionClosedError,
    FatalError,
    NotConnectedError,
    RpcError,
    SolanaRpcError,
    SubscriptionError,
    TransportError,
    TransportExhaustedError,
    UnknownSubscriptionError,
    is_missing_slot,
)
from .transport import RequestTransport
from .types import BlockResult, ChannelState, Commitment, Missing, Present, StreamState

__all__ = [
    'SolanaClient',
    'RequestTransport',
    'DuplexChannel',
    'BlockStream',
    'EndpointRotator',
    'BackoffPolicy',
    'Decision',
    'ClientConfig',
    'StreamConfig',
    'BlockResult',
    'Present',
    'Missing',
    'Commitment',
    'ChannelState',
    'StreamState',
    'SolanaRpcError',
    'RpcError',
    'TransportError',
    'FatalError',
    'TransportExhaustedError',
    'ChannelError',
    'NotConnectedError',
    'ConnectError',
    'AckTimeoutError',
    'ConnectionClosedError',
    'UnknownSubscriptionError',
    'SubscriptionError',
    'BlockUnavailableError',
    'is_missing_slot',
    'maybe_encode_transaction',
]
