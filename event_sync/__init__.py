"""
Event Sync Engine.

============================================================
PURPOSE
============================================================
Keeps the bounty index in step with the chain.

Log Source -> Chunked Range Fetcher -> Event Ingestor -> Cursor Store,
driven by the Sync Scheduler.

GUARANTEES:
- Replay-safe: re-ingesting any range leaves the store unchanged
- Crash-consistent: the cursor moves only after its range is applied
- Provider-friendly: log queries never exceed max_block_range blocks

============================================================
"""

from event_sync.config import LATEST, SyncConfig, parse_start_block
from event_sync.exceptions import SyncError, EventDecodeError, CursorError
from event_sync.events import (
    EventKind,
    EVENT_ORDER,
    BountyCreated,
    BountyClaimed,
    BountyWithdrawn,
    decode_log,
    event_topic,
)
from event_sync.chunking import ChunkedRangeFetcher, iter_windows
from event_sync.cursor import CURSOR_KEY, CursorStore
from event_sync.ingestor import EventIngestor, IngestResult
from event_sync.scheduler import (
    SchedulerState,
    StartBlock,
    SyncCycleResult,
    SyncScheduler,
    setup_logging,
)


__version__ = "1.0.0"

__all__ = [
    # Config
    "LATEST",
    "SyncConfig",
    "parse_start_block",
    # Exceptions
    "SyncError",
    "EventDecodeError",
    "CursorError",
    # Events
    "EventKind",
    "EVENT_ORDER",
    "BountyCreated",
    "BountyClaimed",
    "BountyWithdrawn",
    "decode_log",
    "event_topic",
    # Pipeline
    "ChunkedRangeFetcher",
    "iter_windows",
    "CURSOR_KEY",
    "CursorStore",
    "EventIngestor",
    "IngestResult",
    # Scheduler
    "SchedulerState",
    "StartBlock",
    "SyncCycleResult",
    "SyncScheduler",
    "setup_logging",
]
