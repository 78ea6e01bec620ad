"""
Mock Log Source.

============================================================
PURPOSE
============================================================
Deterministic in-memory chain for testing the sync engine.

FEATURES:
- Scriptable chain height and logs
- Node-like filtering (address, topic0, inclusive range)
- Optional provider range cap
- Error injection per event signature or on height reads
- Call recording for ordering assertions

============================================================
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from onchain_adapters.base import BaseLogSource
from onchain_adapters.exceptions import FetchError, RpcResponseError
from onchain_adapters.models import LogEntry, LogFilter


logger = logging.getLogger(__name__)


@dataclass
class MockConfig:
    """Configuration for the mock log source."""

    initial_height: int = 0
    """Chain height reported before set_height() is called."""

    max_block_range: Optional[int] = None
    """Refuse eth_getLogs windows wider than this (None = unlimited)."""


@dataclass
class RecordedCall:
    """One logs_in_range() call as seen by the mock."""

    topic0: str
    address: Optional[str]
    from_block: int
    to_block: int


@dataclass
class _Failure:
    remaining: int
    message: str = "Injected failure"


class MockLogSource(BaseLogSource):
    """
    In-memory log source.

    Logs are stored in insertion order and returned in chain order,
    exactly like a node answering eth_getLogs.
    """

    def __init__(self, config: Optional[MockConfig] = None) -> None:
        # One attempt only: injected failures must reach the caller
        super().__init__(max_retries=1)
        self._config = config or MockConfig()
        self._height = self._config.initial_height
        self._logs: list[LogEntry] = []
        self._log_counter: dict[int, int] = {}

        self.calls: list[RecordedCall] = []
        self.height_calls = 0

        self._log_failures: dict[str, _Failure] = {}
        self._height_failure: Optional[_Failure] = None

    @property
    def name(self) -> str:
        """Unique identifier."""
        return "mock"

    # ─────────────────────────────────────────────────────────────
    # Chain scripting
    # ─────────────────────────────────────────────────────────────

    def set_height(self, height: int) -> None:
        """Set the chain height reported by current_height()."""
        self._height = height

    def add_log(
        self,
        address: str,
        topics: list[str],
        data: str = "0x",
        block_number: int = 0,
        tx_hash: Optional[str] = None,
        log_index: Optional[int] = None,
    ) -> LogEntry:
        """Append a raw log to the chain."""
        if log_index is None:
            log_index = self._log_counter.get(block_number, 0)
        self._log_counter[block_number] = max(self._log_counter.get(block_number, 0), log_index + 1)
        if tx_hash is None:
            tx_hash = "0x" + f"{block_number:08x}{log_index:08x}".rjust(64, "0")

        entry = LogEntry(
            address=address.lower(),
            topics=tuple(t.lower() for t in topics),
            data=data,
            block_number=block_number,
            tx_hash=tx_hash.lower(),
            log_index=log_index,
        )
        self._logs.append(entry)
        if block_number > self._height:
            self._height = block_number
        return entry

    def fail_on(self, topic0: str, times: int = 1, message: str = "Injected failure") -> None:
        """Make the next `times` fetches for a signature fail."""
        self._log_failures[topic0.lower()] = _Failure(remaining=times, message=message)

    def fail_height(self, times: int = 1, message: str = "Injected failure") -> None:
        """Make the next `times` height reads fail."""
        self._height_failure = _Failure(remaining=times, message=message)

    # ─────────────────────────────────────────────────────────────
    # BaseLogSource
    # ─────────────────────────────────────────────────────────────

    async def current_height(self) -> int:
        """Return the scripted height."""
        self.height_calls += 1
        return await self._with_retry("eth_blockNumber", self._read_height)

    async def _read_height(self) -> int:
        failure = self._height_failure
        if failure and failure.remaining > 0:
            failure.remaining -= 1
            raise FetchError(message=failure.message, adapter_name=self.name, method="eth_blockNumber")
        self._health.last_height = self._height
        return self._height

    async def logs_in_range(
        self,
        log_filter: LogFilter,
        from_block: int,
        to_block: int,
    ) -> list[LogEntry]:
        """Return matching logs in chain order."""
        self.calls.append(RecordedCall(
            topic0=log_filter.topic0,
            address=log_filter.address,
            from_block=from_block,
            to_block=to_block,
        ))

        async def _query() -> list[LogEntry]:
            failure = self._log_failures.get(log_filter.topic0)
            if failure and failure.remaining > 0:
                failure.remaining -= 1
                raise FetchError(message=failure.message, adapter_name=self.name, method="eth_getLogs")

            cap = self._config.max_block_range
            if cap is not None and to_block - from_block + 1 > cap:
                raise RpcResponseError(
                    message=f"query exceeds max block range {cap}",
                    adapter_name=self.name,
                    method="eth_getLogs",
                    rpc_code=-32600,
                )

            matched = [
                log for log in self._logs
                if from_block <= log.block_number <= to_block
                and log_filter.matches(log.address, log.topics)
            ]
            matched.sort(key=lambda e: e.sort_key)
            return matched

        return await self._with_retry("eth_getLogs", _query)

    @property
    def logs(self) -> list[LogEntry]:
        """All scripted logs in insertion order."""
        return list(self._logs)
