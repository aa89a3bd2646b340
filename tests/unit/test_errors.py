"""
Unit tests for the error taxonomy and missing-slot detection.
"""

from solana_rpc.errors import (
    BLOCK_CLEANED_UP,
    BLOCK_NOT_AVAILABLE,
    SLOT_SKIPPED,
    BlockUnavailableError,
    FatalError,
    RpcError,
    TransportExhaustedError,
    is_missing_slot,
)


class TestRpcError:
    """Tests for remote error payloads."""

    def test_from_payload(self):
        error = RpcError.from_payload({"code": -32602, "message": "Invalid params", "data": "bad slot"})
        assert error.code == -32602
        assert error.message == "Invalid params"
        assert error.decorated_message == "Invalid params: bad slot"

    def test_from_non_dict_payload(self):
        error = RpcError.from_payload("boom")
        assert error.code is None
        assert str(error) == "boom"

    def test_decorated_without_data(self):
        assert RpcError(-32602, "Invalid params").decorated_message == "Invalid params"


class TestTransportExhaustedError:
    """Tests for the exhausted error."""

    def test_carries_cause(self):
        cause = TimeoutError("slow")
        error = TransportExhaustedError(cause, 3)
        assert error.cause is cause
        assert error.attempts == 3
        assert error.kind == "exhausted"
        assert str(error) == "slow"

    def test_unknown_error_without_cause(self):
        assert str(TransportExhaustedError(None, 3)) == "Unknown error"


class TestIsMissingSlot:
    """Tests for skipped/pruned slot detection."""

    def test_skipped_code(self):
        assert is_missing_slot(FatalError("Slot 5 was skipped", code=SLOT_SKIPPED))

    def test_skipped_message_without_code(self):
        assert is_missing_slot(RpcError(None, "Slot 5 was skipped, or missing"))

    def test_pruned_block(self):
        """Blocks cleaned up by the node count as missing."""
        assert is_missing_slot(FatalError("Block 5 cleaned up, does not exist on node", code=BLOCK_CLEANED_UP))

    def test_not_yet_available_is_not_missing(self):
        """A block the node has not served yet must not be reported as absent."""
        assert not is_missing_slot(FatalError("Block not available for slot 5", code=BLOCK_NOT_AVAILABLE))
        assert not is_missing_slot(RpcError(BLOCK_NOT_AVAILABLE, "Block not available for slot 5"))

    def test_block_unavailable(self):
        error = BlockUnavailableError(12)
        assert is_missing_slot(error)
        assert str(error) == "Block not available: 12"

    def test_exhausted_looks_at_cause(self):
        assert is_missing_slot(TransportExhaustedError(RpcError(BLOCK_CLEANED_UP, "Block 7 cleaned up"), 3))
        assert not is_missing_slot(TransportExhaustedError(TimeoutError(), 3))

    def test_other_errors(self):
        assert not is_missing_slot(FatalError("Payment required", http_status=402))
        assert not is_missing_slot(RuntimeError("was skipped"))
