"""
Event Sync - Sync Scheduler.

============================================================
RESPONSIBILITY
============================================================
Fixed-interval polling loop driving Fetcher -> Ingestor -> Cursor.

- At most one cycle in flight; a tick that fires while a cycle
  is still running is skipped
- The cursor advances only after all three event kinds for the
  range have been applied
- A failed cycle is logged and retried on the next tick; the
  loop itself never exits because of an ingestion error

============================================================
CYCLE PROTOCOL
============================================================
1. H = current chain height (binds a "latest" start block once)
2. from = cursor + 1, or the resolved start block
3. from > H: nothing to do
4. created (factory only), claimed, withdrawn over [from, H]
5. cursor = H

============================================================
"""

import asyncio
import json
import logging
import sys
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union

from onchain_adapters.base import BaseLogSource
from onchain_adapters.models import LogFilter
from event_sync.chunking import ChunkedRangeFetcher
from event_sync.config import LATEST, SyncConfig
from event_sync.cursor import CursorStore
from event_sync.events import EVENT_ORDER, EventKind
from event_sync.ingestor import EventIngestor, IngestResult


logger = logging.getLogger(__name__)


# ============================================================
# LOGGING SETUP
# ============================================================

def setup_logging(level: str = "INFO", log_format: str = "text") -> None:
    """
    Configure root logging on stdout.

    Args:
        level: Log level name
        log_format: "text" or "json"
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
            })
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]


# ============================================================
# STATE
# ============================================================

class SchedulerState(Enum):
    UNINITIALIZED = "uninitialized"
    AWAITING_FIRST_POLL = "awaiting_first_poll"
    CYCLING = "cycling"


class StartBlock:
    """
    Start block binding: Unresolved or Resolved(block).

    An explicit block number is resolved from the outset. "latest"
    stays unresolved until the first successful height read and then
    binds to that height for good.
    """

    def __init__(self, block: Optional[int] = None) -> None:
        self._block = block

    @classmethod
    def from_setting(cls, setting: Union[int, str, None]) -> "StartBlock":
        if setting is None or setting == LATEST:
            return cls()
        block = int(setting)
        if block < 0:
            raise ValueError(f"start block must be >= 0, got {block}")
        return cls(block)

    @property
    def is_resolved(self) -> bool:
        return self._block is not None

    @property
    def block(self) -> Optional[int]:
        return self._block

    def resolve(self, height: int) -> int:
        """Bind to `height` if still unresolved; return the bound block."""
        if self._block is None:
            self._block = height
            logger.info(f"[scheduler] start block resolved to latest height {height}")
        return self._block

    def __repr__(self) -> str:
        if self._block is None:
            return "StartBlock(unresolved)"
        return f"StartBlock({self._block})"


@dataclass
class SyncCycleResult:
    """Result of one sync cycle."""
    cycle_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    from_block: Optional[int] = None
    to_block: Optional[int] = None
    success: bool = False
    skipped: bool = False
    reason: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    cursor_before: Optional[int] = None
    cursor_after: Optional[int] = None
    ingested: Dict[EventKind, IngestResult] = field(default_factory=dict)

    def inserted(self, kind: EventKind) -> int:
        result = self.ingested.get(kind)
        return result.inserted if result else 0

    @property
    def duration_ms(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds() * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle_id": self.cycle_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_ms": self.duration_ms,
            "from_block": self.from_block,
            "to_block": self.to_block,
            "success": self.success,
            "skipped": self.skipped,
            "reason": self.reason,
            "error": self.error,
            "error_type": self.error_type,
            "cursor_before": self.cursor_before,
            "cursor_after": self.cursor_after,
            "ingested": {k.value: r.to_dict() for k, r in self.ingested.items()},
        }


# ============================================================
# SCHEDULER
# ============================================================

class SyncScheduler:
    """
    Single-worker sync loop.

    Usage:
        scheduler = SyncScheduler(source, EventIngestor(), CursorStore(),
                                  factory_address="0x...", start_block=100)
        await scheduler.run_forever()
    """

    def __init__(
        self,
        source: BaseLogSource,
        ingestor: EventIngestor,
        cursor: CursorStore,
        factory_address: str,
        start_block: Union[StartBlock, int, str, None] = LATEST,
        poll_interval: float = 5.0,
        max_block_range: int = 10,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {poll_interval}")

        self._source = source
        self._ingestor = ingestor
        self._cursor = cursor
        self._factory_address = factory_address.lower()
        self._start_block = (
            start_block if isinstance(start_block, StartBlock)
            else StartBlock.from_setting(start_block)
        )
        self._poll_interval = poll_interval
        self._fetcher = ChunkedRangeFetcher(source, max_block_range)

        self._state = SchedulerState.UNINITIALIZED
        self._lock = asyncio.Lock()
        self._stop_event: Optional[asyncio.Event] = None
        self._stop_requested = False
        self._inflight: Optional[asyncio.Task] = None

        self._last_result: Optional[SyncCycleResult] = None
        self._cycles_completed = 0
        self._cycles_failed = 0
        self._skipped_ticks = 0

    @classmethod
    def from_config(
        cls,
        config: SyncConfig,
        source: BaseLogSource,
        session_factory=None,
    ) -> "SyncScheduler":
        """Wire a scheduler from configuration."""
        return cls(
            source=source,
            ingestor=EventIngestor(session_factory),
            cursor=CursorStore(session_factory),
            factory_address=config.factory_address,
            start_block=config.start_block,
            poll_interval=config.poll_interval_seconds,
            max_block_range=config.max_block_range,
        )

    # --------------------------------------------------------
    # Properties
    # --------------------------------------------------------

    @property
    def source(self) -> BaseLogSource:
        return self._source

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def start_block(self) -> StartBlock:
        return self._start_block

    @property
    def is_cycle_running(self) -> bool:
        return self._lock.locked()

    @property
    def last_result(self) -> Optional[SyncCycleResult]:
        return self._last_result

    @property
    def cycles_completed(self) -> int:
        return self._cycles_completed

    @property
    def cycles_failed(self) -> int:
        return self._cycles_failed

    @property
    def skipped_ticks(self) -> int:
        return self._skipped_ticks

    # --------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------

    def start(self) -> None:
        if self._state is SchedulerState.UNINITIALIZED:
            self._state = SchedulerState.AWAITING_FIRST_POLL
            logger.info(
                f"[scheduler] started | factory={self._factory_address} "
                f"start={self._start_block} interval={self._poll_interval}s "
                f"max_range={self._fetcher.max_block_range}"
            )

    def stop(self) -> None:
        """Stop starting new cycles. A cycle in flight runs to completion."""
        self._stop_requested = True
        if self._stop_event is not None:
            self._stop_event.set()
        logger.info("[scheduler] stop requested")

    # --------------------------------------------------------
    # Cycle
    # --------------------------------------------------------

    async def run_cycle(self) -> SyncCycleResult:
        """
        Execute one sync cycle. Never raises.

        Not guarded against overlap; use run_once() or run_forever().
        """
        result = SyncCycleResult(
            cycle_id=uuid.uuid4().hex[:8],
            started_at=datetime.now(timezone.utc),
        )

        try:
            height = await self._source.current_height()
            self._start_block.resolve(height)
            if self._state is not SchedulerState.CYCLING:
                self._state = SchedulerState.CYCLING

            cursor = await asyncio.to_thread(self._cursor.get)
            result.cursor_before = cursor
            result.cursor_after = cursor
            from_block = cursor + 1 if cursor is not None else self._start_block.block
            result.from_block = from_block
            result.to_block = height

            if from_block > height:
                result.success = True
                result.skipped = True
                result.reason = "no new blocks"
                logger.debug(f"[scheduler] no new blocks (next={from_block}, head={height})")
                return result

            for kind in EVENT_ORDER:
                logs = await self._fetcher.fetch(self._filter_for(kind), from_block, height)
                # Blocking SQL writes stay off the loop shared with the API
                result.ingested[kind] = await asyncio.to_thread(self._ingestor.ingest, kind, logs)

            result.cursor_after = await asyncio.to_thread(self._cursor.advance, height)
            result.success = True

            created = result.inserted(EventKind.CREATED)
            claimed = result.inserted(EventKind.CLAIMED)
            withdrawn = result.inserted(EventKind.WITHDRAWN)
            if created or claimed or withdrawn:
                logger.info(
                    f"[scheduler] block {from_block}-{height}: {created} created, "
                    f"{claimed} claimed, {withdrawn} withdrawn"
                )

        except Exception as e:
            result.success = False
            result.error = str(e)
            result.error_type = type(e).__name__
            logger.error(
                f"[scheduler] cycle {result.cycle_id} failed "
                f"(range {result.from_block}-{result.to_block}, cursor unchanged): {e}"
            )

        finally:
            result.finished_at = datetime.now(timezone.utc)
            self._last_result = result
            if result.success:
                self._cycles_completed += 1
            else:
                self._cycles_failed += 1

        return result

    async def run_once(self) -> Optional[SyncCycleResult]:
        """Run one guarded cycle; None if a cycle is already in flight."""
        if self._lock.locked():
            self._skipped_ticks += 1
            logger.warning("[scheduler] cycle still running, tick skipped")
            return None

        self.start()
        async with self._lock:
            return await self.run_cycle()

    async def run_forever(self) -> None:
        """
        Tick immediately, then every poll_interval seconds, until stop().

        Ticks are fixed-interval and independent of cycle duration.
        """
        self.start()
        self._stop_event = asyncio.Event()
        if self._stop_requested:
            return

        loop = asyncio.get_running_loop()
        next_tick = loop.time()

        while not self._stop_requested:
            self._tick()

            next_tick += self._poll_interval
            wait_seconds = next_tick - loop.time()
            if wait_seconds < 0:
                # Fell behind: realign without bursting missed ticks
                next_tick = loop.time()
                wait_seconds = 0
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=wait_seconds)
            except asyncio.TimeoutError:
                pass

        if self._inflight is not None and not self._inflight.done():
            await self._inflight

        logger.info(
            f"[scheduler] stopped | completed={self._cycles_completed} "
            f"failed={self._cycles_failed} skipped_ticks={self._skipped_ticks}"
        )

    def _tick(self) -> None:
        inflight = self._inflight is not None and not self._inflight.done()
        if inflight or self._lock.locked():
            self._skipped_ticks += 1
            logger.warning("[scheduler] cycle still running, tick skipped")
            return
        self._inflight = asyncio.ensure_future(self.run_once())

    def _filter_for(self, kind: EventKind) -> LogFilter:
        # Claims and withdrawals come from per-bounty clones, so only
        # creation is scoped to the factory
        if kind is EventKind.CREATED:
            return LogFilter(topic0=kind.topic0, address=self._factory_address)
        return LogFilter(topic0=kind.topic0)

    # --------------------------------------------------------
    # Status
    # --------------------------------------------------------

    def status(self) -> Dict[str, Any]:
        """Scheduler status for health reporting."""
        try:
            cursor: Optional[int] = self._cursor.get()
        except Exception as e:
            logger.warning(f"[scheduler] cursor unreadable for status: {e}")
            cursor = None

        return {
            "state": self._state.value,
            "cursor": cursor,
            "start_block": self._start_block.block,
            "factory_address": self._factory_address,
            "poll_interval_seconds": self._poll_interval,
            "max_block_range": self._fetcher.max_block_range,
            "cycle_running": self.is_cycle_running,
            "cycles_completed": self._cycles_completed,
            "cycles_failed": self._cycles_failed,
            "skipped_ticks": self._skipped_ticks,
            "last_result": self._last_result.to_dict() if self._last_result else None,
            "source": self._source.status(),
        }


__all__ = [
    "setup_logging",
    "SchedulerState",
    "StartBlock",
    "SyncCycleResult",
    "SyncScheduler",
]
