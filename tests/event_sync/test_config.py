"""
Tests for sync configuration.
"""

import pytest

from event_sync.config import LATEST, SyncConfig, parse_start_block


ENV_KEYS = (
    "RPC_URL", "FACTORY_ADDRESS", "START_BLOCK", "POLL_INTERVAL_SECONDS",
    "MAX_BLOCK_RANGE", "RPC_TIMEOUT_SECONDS", "RPC_MAX_RETRIES", "PORT", "LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """No inherited settings and no .env file in the working directory."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


class TestParseStartBlock:
    """Tests for START_BLOCK parsing."""

    @pytest.mark.parametrize("raw", [None, "", "  ", "latest", "LATEST"])
    def test_latest(self, raw):
        assert parse_start_block(raw) == LATEST

    def test_decimal(self):
        assert parse_start_block("100") == 100

    def test_zero_is_explicit(self):
        assert parse_start_block("0") == 0

    def test_hex(self):
        assert parse_start_block("0x64") == 100

    @pytest.mark.parametrize("raw", ["-1", "abc"])
    def test_invalid(self, raw):
        with pytest.raises(ValueError):
            parse_start_block(raw)


class TestSyncConfig:
    """Tests for SyncConfig.from_env / validate."""

    def test_defaults(self, clean_env):
        config = SyncConfig.from_env()

        assert config.rpc_url == ""
        assert config.factory_address == ""
        assert config.start_block == LATEST
        assert config.poll_interval_seconds == 5.0
        assert config.max_block_range == 10
        assert config.rpc_timeout_seconds == 30.0
        assert config.api_port == 4000
        assert config.log_level == "INFO"
        assert not config.sync_enabled

    def test_from_env(self, clean_env):
        clean_env.setenv("RPC_URL", "https://sepolia.base.org")
        clean_env.setenv("FACTORY_ADDRESS", "0x" + "F" * 40)
        clean_env.setenv("START_BLOCK", "12345")
        clean_env.setenv("POLL_INTERVAL_SECONDS", "2.5")
        clean_env.setenv("MAX_BLOCK_RANGE", "500")
        clean_env.setenv("PORT", "8080")

        config = SyncConfig.from_env()

        assert config.sync_enabled
        assert config.factory_address == "0x" + "f" * 40
        assert config.start_block == 12345
        assert config.poll_interval_seconds == 2.5
        assert config.max_block_range == 500
        assert config.api_port == 8080
        assert config.validate() == []

    def test_reads_dotenv_file(self, clean_env, tmp_path):
        (tmp_path / ".env").write_text("RPC_URL=http://localhost:8545\nMAX_BLOCK_RANGE=25\n")

        config = SyncConfig.from_env()

        assert config.rpc_url == "http://localhost:8545"
        assert config.max_block_range == 25

    def test_api_only_without_factory(self):
        """No factory: sync is off and RPC_URL is not needed."""
        assert SyncConfig().validate() == []

    def test_sync_requires_rpc_and_factory(self):
        errors = SyncConfig().validate(require_sync=True)
        assert any("RPC_URL" in e for e in errors)
        assert any("FACTORY_ADDRESS" in e for e in errors)

    def test_factory_requires_rpc(self):
        errors = SyncConfig(factory_address="0x" + "f" * 40).validate()
        assert len(errors) == 1
        assert "RPC_URL" in errors[0]

    def test_invalid_values(self):
        config = SyncConfig(
            rpc_url="http://x",
            factory_address="0x1234",
            poll_interval_seconds=0,
            max_block_range=0,
            api_port=70000,
        )
        errors = config.validate()
        assert len(errors) == 4
