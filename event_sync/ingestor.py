"""
Event Sync - Event Ingestor.

Maps raw logs of each event kind to idempotent row insertions. Each
routine decodes the whole batch first and then writes it in a single
transaction, so a malformed log leaves the store untouched.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session, sessionmaker

from database.engine import transaction_scope
from database.persistence import persist_bounties, persist_claims, persist_withdrawals
from onchain_adapters.models import LogEntry
from event_sync.events import EventKind, decode_log, has_event_layout


logger = logging.getLogger(__name__)

PersistFn = Callable[[Session, List[Dict[str, Any]]], Tuple[int, int]]


@dataclass(frozen=True)
class IngestResult:
    """Outcome of one ingestion batch."""
    kind: EventKind
    received: int
    inserted: int
    ignored: int
    skipped: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "received": self.received,
            "inserted": self.inserted,
            "ignored": self.ignored,
            "skipped": self.skipped,
        }


class EventIngestor:
    """
    Idempotent writer for decoded bounty events.

    - created: insert unless the bounty address is known; the id comes
      from the storage-owned sequence inside the same transaction
    - claimed: insert-or-ignore on (bounty_address, executor)
    - withdrawn: insert-or-ignore on the log identity (tx_hash, log_index);
      several per bounty allowed

    Claimed and withdrawn logs are fetched from every contract. Logs of
    those kinds whose layout cannot be the bounty event are skipped;
    anything else that fails to decode aborts the batch.
    """

    _PERSIST: Dict[EventKind, PersistFn] = {
        EventKind.CREATED: persist_bounties,
        EventKind.CLAIMED: persist_claims,
        EventKind.WITHDRAWN: persist_withdrawals,
    }

    _UNFILTERED = frozenset({EventKind.CLAIMED, EventKind.WITHDRAWN})

    def __init__(self, session_factory: Optional[sessionmaker] = None) -> None:
        self._session_factory = session_factory

    def _drop_foreign(self, kind: EventKind, logs: Sequence[LogEntry]) -> List[LogEntry]:
        kept = []
        for log in logs:
            if has_event_layout(kind, log):
                kept.append(log)
            else:
                logger.warning(
                    f"[ingestor] {kind.event_name}: skipping log {log.tx_hash}:{log.log_index} "
                    f"from {log.address}, layout does not match"
                )
        return kept

    def ingest(self, kind: EventKind, logs: Sequence[LogEntry]) -> IngestResult:
        """Decode and persist a batch of logs of one kind, in order."""
        received = len(logs)
        if kind in self._UNFILTERED:
            logs = self._drop_foreign(kind, logs)
        skipped = received - len(logs)

        rows = [decode_log(kind, log).to_row() for log in logs]

        if not rows:
            return IngestResult(kind=kind, received=received, inserted=0, ignored=0, skipped=skipped)

        with transaction_scope(self._session_factory) as session:
            inserted, ignored = self._PERSIST[kind](session, rows)

        if ignored:
            logger.debug(f"[ingestor] {kind.event_name}: {ignored} already indexed")

        return IngestResult(
            kind=kind,
            received=received,
            inserted=inserted,
            ignored=ignored,
            skipped=skipped,
        )

    def ingest_created(self, logs: Sequence[LogEntry]) -> IngestResult:
        return self.ingest(EventKind.CREATED, logs)

    def ingest_claimed(self, logs: Sequence[LogEntry]) -> IngestResult:
        return self.ingest(EventKind.CLAIMED, logs)

    def ingest_withdrawn(self, logs: Sequence[LogEntry]) -> IngestResult:
        return self.ingest(EventKind.WITHDRAWN, logs)
