"""
Event Sync - Chunked Range Fetcher.

Providers cap eth_getLogs to a small block window. The fetcher splits
an arbitrary inclusive range into fixed-width windows and fetches them
one at a time, in ascending order, so the concatenated result is what
a single unbounded query would have returned.

No partial results: if any window fails the whole call fails and the
caller records no progress.
"""

import logging
from typing import Iterator, List, Tuple

from onchain_adapters.base import BaseLogSource
from onchain_adapters.models import LogEntry, LogFilter


logger = logging.getLogger(__name__)


def iter_windows(from_block: int, to_block: int, max_range: int) -> Iterator[Tuple[int, int]]:
    """
    Yield consecutive inclusive windows covering [from_block, to_block].

    Every window spans at most max_range blocks. Empty when
    from_block > to_block.
    """
    if max_range < 1:
        raise ValueError(f"max_range must be at least 1, got {max_range}")

    start = from_block
    while start <= to_block:
        end = min(start + max_range - 1, to_block)
        yield start, end
        start = end + 1


class ChunkedRangeFetcher:
    """Sequential, order-preserving log fetch over provider-sized windows."""

    def __init__(self, source: BaseLogSource, max_block_range: int) -> None:
        if max_block_range < 1:
            raise ValueError(f"max_block_range must be at least 1, got {max_block_range}")
        self._source = source
        self._max_block_range = max_block_range

    @property
    def max_block_range(self) -> int:
        return self._max_block_range

    async def fetch(
        self,
        log_filter: LogFilter,
        from_block: int,
        to_block: int,
    ) -> List[LogEntry]:
        """
        Fetch every log matching the filter in [from_block, to_block].

        Raises whatever the source raises for the first failing window.
        """
        if from_block > to_block:
            return []

        results: List[LogEntry] = []
        windows = 0
        for start, end in iter_windows(from_block, to_block, self._max_block_range):
            results.extend(await self._source.logs_in_range(log_filter, start, end))
            windows += 1

        logger.debug(
            f"[fetcher] {log_filter.topic0[:10]} {from_block}-{to_block}: "
            f"{len(results)} logs in {windows} windows"
        )
        return results
