"""
Unit tests for SolanaClient.

The transport and channel are replaced with mocks; tests check the
JSON-RPC envelopes the facade builds and how it routes results.
"""

import base64

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from solana_rpc.block_stream import BlockStream
from solana_rpc.channel import DuplexChannel
from solana_rpc.client import SolanaClient, maybe_encode_transaction
from solana_rpc.config import ClientConfig
from solana_rpc.errors import SubscriptionError
from solana_rpc.types import ChannelState


def sent_request(execute: AsyncMock) -> dict:
    """Body of the last transport call."""
    return execute.call_args.args[0]


@pytest.fixture
def client():
    """Client with default commitment 'processed' and two endpoints."""
    return SolanaClient(url=["https://a", "https://b"], commitment="processed")


@pytest.fixture
def execute(client):
    """Mocked transport.execute returning a fixed result."""
    mock = AsyncMock(return_value={"jsonrpc": "2.0", "id": 1, "result": "ok"})
    with patch.object(client.transport, 'execute', new=mock):
        yield mock


class TestClientConstruction:
    """Tests for configuration handling."""

    def test_overrides(self, client):
        assert client.urls == ["https://a", "https://b"]
        assert client.commitment == "processed"
        assert client.transport.rotator.urls == ["https://a", "https://b"]

    def test_config_not_mutated(self):
        config = ClientConfig(urls=["https://a"])
        client = SolanaClient(config, url="https://b")

        assert client.urls == ["https://b"]
        assert config.urls == ["https://a"]

    def test_retry_settings_reach_transport(self):
        client = SolanaClient(ClientConfig(max_attempts=5, retry_delay=0.25))

        assert client.transport.backoff.max_attempts == 5
        assert client.transport.backoff.delay == 0.25

    @pytest.mark.asyncio
    async def test_context_manager_closes(self):
        client = SolanaClient()
        with patch.object(client.transport, 'close', new=AsyncMock()) as close:
            async with client:
                pass

        close.assert_awaited_once()


class TestClientRequests:
    """Tests for request envelopes."""

    @pytest.mark.asyncio
    async def test_request_envelope(self, client, execute):
        result = await client.request('getHealth')

        body = sent_request(execute)
        assert result == "ok"
        assert body["jsonrpc"] == "2.0"
        assert body["method"] == 'getHealth'
        assert body["params"] == []
        assert isinstance(body["id"], int)

    @pytest.mark.asyncio
    async def test_ids_increase(self, client, execute):
        await client.request('getHealth')
        first = sent_request(execute)["id"]
        await client.request('getHealth')

        assert sent_request(execute)["id"] > first

    @pytest.mark.asyncio
    async def test_get_slot_uses_default_commitment(self, client, execute):
        await client.get_slot()

        assert sent_request(execute)["params"] == [{"commitment": "processed"}]

    @pytest.mark.asyncio
    async def test_get_block_upgrades_processed(self, client, execute):
        await client.get_block(250)

        slot, options = sent_request(execute)["params"]
        assert slot == 250
        assert options == {
            "encoding": "json",
            "commitment": "confirmed",
            "transactionDetails": "full",
            "maxSupportedTransactionVersion": 0,
        }

    @pytest.mark.asyncio
    async def test_explicit_commitment_wins(self, client, execute):
        await client.get_block(250, commitment="finalized", transaction_details="signatures")

        options = sent_request(execute)["params"][1]
        assert options["commitment"] == "finalized"
        assert options["transactionDetails"] == "signatures"

    @pytest.mark.asyncio
    async def test_get_blocks_fetches_range(self, client, execute):
        blocks = await client.get_blocks(10, 13)

        assert blocks == ["ok", "ok", "ok"]
        slots = [call.args[0]["params"][0] for call in execute.call_args_list]
        assert sorted(slots) == [10, 11, 12]

    @pytest.mark.asyncio
    async def test_get_blocks_single(self, client, execute):
        assert await client.get_blocks(10, 10) == ["ok"]
        assert execute.await_count == 1

    @pytest.mark.asyncio
    async def test_send_transaction(self, client, execute):
        await client.send_transaction(b"\x01\x02")

        tx, options = sent_request(execute)["params"]
        assert tx == base64.b64encode(b"\x01\x02").decode()
        assert options == {
            "encoding": "base64",
            "skipPreflight": True,
            "preflightCommitment": "confirmed",
        }

    @pytest.mark.asyncio
    async def test_signatures_for_address_options(self, client, execute):
        await client.get_signatures_for_address("Addr", before="sigB", limit=10)

        address, options = sent_request(execute)["params"]
        assert address == "Addr"
        assert options == {"commitment": "confirmed", "limit": 10, "before": "sigB"}

    @pytest.mark.asyncio
    async def test_token_accounts_filter(self, client, execute):
        await client.get_token_accounts_by_owner("Owner", mint="Mint")

        owner, token_filter, options = sent_request(execute)["params"]
        assert owner == "Owner"
        assert token_filter == {"mint": "Mint"}
        assert options == {"commitment": "processed", "encoding": "json"}

    @pytest.mark.asyncio
    async def test_get_balance_and_account_info(self, client, execute):
        await client.get_balance("Owner")
        assert sent_request(execute)["method"] == "getBalance"

        await client.get_account_info("Acct", encoding="jsonParsed")
        body = sent_request(execute)
        assert body["method"] == "getAccountInfo"
        assert body["params"][1] == {"encoding": "jsonParsed", "commitment": "processed"}

    def test_create_block_stream(self, client):
        stream = client.create_block_stream(start=5, end=10, prefetch=2)

        assert isinstance(stream, BlockStream)
        assert stream.window == 2
        assert stream.end == 10


class TestClientSocket:
    """Tests for socket routing and subscriptions."""

    @pytest.fixture
    def socket(self):
        socket = MagicMock(spec=DuplexChannel)
        socket.state = ChannelState.DISCONNECTED
        socket.subscribe = AsyncMock(return_value=42)
        socket.unsubscribe = AsyncMock(return_value=True)
        socket.request = AsyncMock(return_value=7)
        return socket

    @pytest.fixture
    def socket_client(self, socket):
        return SolanaClient(ClientConfig(retry_delay=0.0), channel=socket)

    @pytest.mark.asyncio
    async def test_send_waits_for_result(self, socket_client, socket):
        assert await socket_client.send('getSlot') == 7
        socket.request.assert_awaited_once_with('getSlot', None, wait=True)

    @pytest.mark.asyncio
    async def test_send_without_wait(self, socket_client, socket):
        assert await socket_client.send('getSlot', wait=False) == {"id": 7}

    @pytest.mark.asyncio
    async def test_logs_subscribe(self, socket_client, socket):
        callback = MagicMock()

        assert await socket_client.logs_subscribe("Prog", callback) == 42

        method, params, passed = socket.subscribe.call_args.args
        assert method == 'logsSubscribe'
        assert params == [{"mentions": ["Prog"]}, {"commitment": "finalized"}]
        assert passed is callback

    @pytest.mark.asyncio
    async def test_logs_subscribe_retries_without_id(self, socket_client, socket):
        socket.subscribe.side_effect = [SubscriptionError("no id"), SubscriptionError("no id"), 42]

        assert await socket_client.logs_subscribe(["A", "B"], MagicMock()) == 42
        assert socket.subscribe.await_count == 3

    @pytest.mark.asyncio
    async def test_logs_subscribe_gives_up(self, socket_client, socket):
        socket.subscribe.side_effect = SubscriptionError("no id")

        with pytest.raises(SubscriptionError):
            await socket_client.logs_subscribe("Prog", MagicMock())

        assert socket.subscribe.await_count == 5

    @pytest.mark.asyncio
    async def test_unsubscribe_routes_to_channel(self, socket_client, socket):
        assert await socket_client.logs_unsubscribe(42) is True
        socket.unsubscribe.assert_awaited_once_with(42)

    @pytest.mark.asyncio
    async def test_close_disconnects_connected_socket(self, socket_client, socket):
        socket.state = ChannelState.CONNECTED

        await socket_client.close()

        socket.disconnect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_disconnects_socket_still_connecting(self, socket_client, socket):
        socket.state = ChannelState.CONNECTING

        await socket_client.close()

        socket.disconnect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_skips_disconnected_socket(self, socket_client, socket):
        await socket_client.close()

        socket.disconnect.assert_not_awaited()


class TestMaybeEncodeTransaction:
    """Tests for transaction encoding."""

    def test_bytes(self):
        assert maybe_encode_transaction(b"abc") == "YWJj"

    def test_serializable_object(self):
        tx = MagicMock()
        tx.serialize.return_value = b"abc"
        assert maybe_encode_transaction(tx) == "YWJj"

    def test_string_passes_through(self):
        assert maybe_encode_transaction("already-encoded") == "already-encoded"
