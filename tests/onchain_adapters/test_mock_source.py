"""
Tests for the in-memory mock log source.
"""

import pytest

from onchain_adapters.exceptions import FetchError
from onchain_adapters.models import AdapterStatus, LogFilter
from onchain_adapters.providers.mock import MockConfig, MockLogSource


TOPIC = "0x" + "ab" * 32
OTHER = "0x" + "cd" * 32


class TestMockLogSource:
    """Tests for MockLogSource."""

    def test_add_log_assigns_index_and_bumps_height(self):
        source = MockLogSource()
        first = source.add_log(address="0x" + "A" * 40, topics=[TOPIC], block_number=5)
        second = source.add_log(address="0x" + "A" * 40, topics=[TOPIC], block_number=5)

        assert (first.log_index, second.log_index) == (0, 1)
        assert first.tx_hash != second.tx_hash
        assert first.address == "0x" + "a" * 40

    @pytest.mark.asyncio
    async def test_height_follows_logs(self):
        source = MockLogSource(MockConfig(initial_height=3))
        source.add_log(address="0x" + "1" * 40, topics=[TOPIC], block_number=9)

        assert await source.current_height() == 9

    @pytest.mark.asyncio
    async def test_returns_chain_order(self):
        source = MockLogSource()
        source.add_log(address="0x" + "1" * 40, topics=[TOPIC], block_number=8)
        source.add_log(address="0x" + "1" * 40, topics=[TOPIC], block_number=2)
        source.add_log(address="0x" + "1" * 40, topics=[OTHER], block_number=3)

        logs = await source.logs_in_range(LogFilter(topic0=TOPIC), 0, 10)

        assert [log.block_number for log in logs] == [2, 8]

    @pytest.mark.asyncio
    async def test_injected_failures_are_counted(self):
        source = MockLogSource()
        source.fail_on(TOPIC, times=2)

        for _ in range(2):
            with pytest.raises(FetchError):
                await source.logs_in_range(LogFilter(topic0=TOPIC), 0, 1)
        assert await source.logs_in_range(LogFilter(topic0=TOPIC), 0, 1) == []

        assert len(source.calls) == 3
        assert source.get_health().status == AdapterStatus.HEALTHY

    @pytest.mark.asyncio
    async def test_health_check_reads_height(self):
        source = MockLogSource(MockConfig(initial_height=42))

        health = await source.health_check()

        assert health.last_height == 42
        assert health.last_check is not None
