"""
Unit tests for ClientConfig and StreamConfig.
"""

import pytest

from solana_rpc.config import DEFAULT_API_URL, ClientConfig, StreamConfig


class TestClientConfig:
    """Tests for client configuration."""

    def test_defaults(self):
        config = ClientConfig()
        assert config.urls == [DEFAULT_API_URL]
        assert config.commitment == "finalized"
        assert config.max_attempts == 3
        assert config.retry_delay == 1.0
        assert config.request_timeout == 30.0

    def test_single_url_string_normalized(self):
        config = ClientConfig(urls="https://a")
        assert config.urls == ["https://a"]

    def test_empty_urls_rejected(self):
        with pytest.raises(ValueError):
            ClientConfig(urls=[])

    def test_invalid_attempts_rejected(self):
        with pytest.raises(ValueError):
            ClientConfig(max_attempts=0)

    def test_from_env(self, monkeypatch, tmp_path):
        """Test environment variables override defaults."""
        monkeypatch.setenv('SOLANA_RPC_URL', 'https://a, https://b')
        monkeypatch.setenv('SOLANA_WS_URL', 'wss://a')
        monkeypatch.setenv('SOLANA_COMMITMENT', 'confirmed')
        monkeypatch.setenv('SOLANA_RPC_TIMEOUT', '5')
        monkeypatch.delenv('SOLANA_RPC_PROXY', raising=False)

        config = ClientConfig.from_env(str(tmp_path / "missing.env"))

        assert config.urls == ["https://a", "https://b"]
        assert config.ws_url == "wss://a"
        assert config.commitment == "confirmed"
        assert config.request_timeout == 5.0
        assert config.proxy is None

    def test_from_env_invalid_timeout(self, monkeypatch, tmp_path):
        monkeypatch.setenv('SOLANA_RPC_TIMEOUT', 'soon')
        with pytest.raises(ValueError):
            ClientConfig.from_env(str(tmp_path / "missing.env"))


class TestStreamConfig:
    """Tests for stream configuration."""

    def test_defaults(self):
        config = StreamConfig()
        assert config.start == 0
        assert config.end is None
        assert config.prefetch == 30
        assert config.poll_interval == 0.5
        assert config.in_flight_limit == 30

    def test_in_flight_limit_never_exceeds_window(self):
        assert StreamConfig(prefetch=5, max_in_flight=50).in_flight_limit == 5
        assert StreamConfig(prefetch=5, max_in_flight=2).in_flight_limit == 2

    def test_missing_policy_follows_live(self):
        assert StreamConfig(live=True).missing_policy is True
        assert StreamConfig(live=False).missing_policy is False
        assert StreamConfig(live=False, skip_missing=True).missing_policy is True

    def test_negative_end_means_unbounded(self):
        assert StreamConfig(end=-1).end is None

    @pytest.mark.parametrize("options", [
        {"prefetch": 0},
        {"poll_interval": 0},
        {"start": -1},
        {"max_in_flight": 0},
    ])
    def test_invalid_values_rejected(self, options):
        with pytest.raises(ValueError):
            StreamConfig(**options)
