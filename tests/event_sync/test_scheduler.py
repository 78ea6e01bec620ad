"""
Tests for the Sync Scheduler.

============================================================
PURPOSE
============================================================
End-to-end cycles against a scripted chain and a real
in-memory store.

TEST PRINCIPLES:
- The cursor only advances after all three kinds are applied
- A failed cycle is retried in full and re-ingests safely
- Cycles never overlap

============================================================
"""

import asyncio
import logging
import threading

import pytest

from database.engine import get_table_row_counts
from onchain_adapters.providers.mock import MockConfig, MockLogSource
from event_sync.cursor import CursorStore
from event_sync.events import EventKind
from event_sync.ingestor import EventIngestor
from event_sync.scheduler import (
    SchedulerState,
    StartBlock,
    SyncScheduler,
)


class GatedLogSource(MockLogSource):
    """Mock source whose height read blocks until the gate opens."""

    def __init__(self, config=None):
        super().__init__(config)
        self.gate = asyncio.Event()
        self.active = 0
        self.max_active = 0

    async def current_height(self) -> int:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await self.gate.wait()
            return await super().current_height()
        finally:
            self.active -= 1


@pytest.fixture
def make_scheduler(session_factory, chain, script):
    def make(source=None, start_block=100, poll_interval=5.0, max_block_range=10):
        return SyncScheduler(
            source=source or chain,
            ingestor=EventIngestor(session_factory),
            cursor=CursorStore(session_factory),
            factory_address=script.FACTORY,
            start_block=start_block,
            poll_interval=poll_interval,
            max_block_range=max_block_range,
        )
    return make


# ============================================================
# START BLOCK
# ============================================================

class TestStartBlock:
    """Tests for the start block binding."""

    def test_explicit_block_is_resolved(self):
        start = StartBlock.from_setting(100)
        assert start.is_resolved
        assert start.resolve(500) == 100

    def test_zero_is_an_explicit_block(self):
        assert StartBlock.from_setting(0).block == 0

    def test_latest_binds_once(self):
        start = StartBlock.from_setting("latest")
        assert not start.is_resolved

        assert start.resolve(50) == 50
        assert start.resolve(60) == 50
        assert start.block == 50

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            StartBlock.from_setting(-1)


# ============================================================
# CYCLE PROTOCOL
# ============================================================

class TestCycle:
    """Tests for run_cycle / run_once."""

    @pytest.mark.asyncio
    async def test_first_cycle_from_start_block(self, engine, chain, script, make_scheduler):
        """Created at 100 and claimed at 105, head 106: one row each, cursor 106."""
        script.created(block=100)
        script.claimed(block=105)
        chain.set_height(106)
        scheduler = make_scheduler(start_block=100)

        result = await scheduler.run_once()

        assert result.success
        assert (result.from_block, result.to_block) == (100, 106)
        counts = get_table_row_counts(engine)
        assert counts["bounties"] == 1
        assert counts["claims"] == 1
        assert CursorStore().get() == 106
        assert scheduler.state is SchedulerState.CYCLING

    @pytest.mark.asyncio
    async def test_no_new_blocks_is_noop(self, chain, script, make_scheduler):
        """Head unchanged at 106: from 107 > 106, nothing fetched, cursor stays."""
        script.created(block=100)
        chain.set_height(106)
        scheduler = make_scheduler(start_block=100)
        await scheduler.run_once()
        calls_before = len(chain.calls)

        result = await scheduler.run_once()

        assert result.success
        assert result.skipped
        assert result.reason == "no new blocks"
        assert result.from_block == 107
        assert len(chain.calls) == calls_before
        assert CursorStore().get() == 106

    @pytest.mark.asyncio
    async def test_failure_after_partial_ingest_retries_whole_range(
        self, engine, chain, script, make_scheduler,
    ):
        """Withdrawn fetch fails after created/claimed succeeded: no advance, safe retry."""
        script.created(block=100)
        script.claimed(block=105)
        script.withdrawn(block=106)
        chain.set_height(106)
        chain.fail_on(EventKind.WITHDRAWN.topic0, times=1)
        scheduler = make_scheduler(start_block=100)

        failed = await scheduler.run_once()

        assert not failed.success
        assert failed.error_type == "FetchError"
        assert CursorStore().get() is None
        assert scheduler.cycles_failed == 1

        calls_before = len(chain.calls)
        retried = await scheduler.run_once()

        assert retried.success
        assert (retried.from_block, retried.to_block) == (100, 106)
        retry_topics = [c.topic0 for c in chain.calls[calls_before:]]
        assert retry_topics == [
            EventKind.CREATED.topic0,
            EventKind.CLAIMED.topic0,
            EventKind.WITHDRAWN.topic0,
        ]
        assert retried.ingested[EventKind.CREATED].ignored == 1
        assert retried.ingested[EventKind.CLAIMED].ignored == 1
        assert retried.ingested[EventKind.WITHDRAWN].inserted == 1
        counts = get_table_row_counts(engine)
        assert (counts["bounties"], counts["claims"], counts["withdrawals"]) == (1, 1, 1)
        assert CursorStore().get() == 106

    @pytest.mark.asyncio
    async def test_kinds_fetched_in_fixed_order_with_scope(self, chain, script, make_scheduler):
        """Created is scoped to the factory, claimed and withdrawn are global."""
        chain.set_height(106)
        scheduler = make_scheduler(start_block=100)

        await scheduler.run_once()

        assert [(c.topic0, c.address) for c in chain.calls] == [
            (EventKind.CREATED.topic0, script.FACTORY),
            (EventKind.CLAIMED.topic0, None),
            (EventKind.WITHDRAWN.topic0, None),
        ]

    @pytest.mark.asyncio
    async def test_created_from_other_contract_ignored(self, engine, chain, script, make_scheduler):
        script.created(block=100, emitter="0x" + "9" * 40)
        chain.set_height(106)

        result = await make_scheduler(start_block=100).run_once()

        assert result.success
        assert get_table_row_counts(engine)["bounties"] == 0

    @pytest.mark.asyncio
    async def test_range_is_chunked(self, session_factory, script, make_scheduler):
        capped = MockLogSource(MockConfig(max_block_range=10))
        script.chain = capped
        script.created(block=100)
        script.created(bounty=script.BOUNTY_B, block=124)
        capped.set_height(125)

        result = await make_scheduler(source=capped, start_block=100, max_block_range=10).run_once()

        assert result.success
        assert result.inserted(EventKind.CREATED) == 2
        assert len(capped.calls) == 9
        assert all(c.to_block - c.from_block + 1 <= 10 for c in capped.calls)

    @pytest.mark.asyncio
    async def test_cursor_never_decreases(self, chain, script, make_scheduler):
        """A lagging provider reporting a lower head leaves the cursor alone."""
        chain.set_height(106)
        scheduler = make_scheduler(start_block=100)
        await scheduler.run_once()

        chain.set_height(103)
        result = await scheduler.run_once()

        assert result.skipped
        assert CursorStore().get() == 106

        chain.set_height(110)
        await scheduler.run_once()
        assert CursorStore().get() == 110

    @pytest.mark.asyncio
    async def test_latest_start_binds_to_first_height(self, engine, chain, script, make_scheduler):
        """History before the first observed head is never fetched."""
        script.created(block=40)
        chain.set_height(50)
        scheduler = make_scheduler(start_block="latest")

        first = await scheduler.run_once()

        assert (first.from_block, first.to_block) == (50, 50)
        assert scheduler.start_block.block == 50
        assert get_table_row_counts(engine)["bounties"] == 0

        script.created(bounty=script.BOUNTY_B, block=53)
        chain.set_height(55)
        second = await scheduler.run_once()

        assert (second.from_block, second.to_block) == (51, 55)
        assert get_table_row_counts(engine)["bounties"] == 1

    @pytest.mark.asyncio
    async def test_height_failure_keeps_start_unresolved(self, chain, make_scheduler):
        chain.set_height(50)
        chain.fail_height(times=1)
        scheduler = make_scheduler(start_block="latest")

        result = await scheduler.run_once()

        assert not result.success
        assert not scheduler.start_block.is_resolved
        assert scheduler.state is SchedulerState.AWAITING_FIRST_POLL

        chain.set_height(52)
        await scheduler.run_once()
        assert scheduler.start_block.block == 52
        assert scheduler.state is SchedulerState.CYCLING

    @pytest.mark.asyncio
    async def test_decode_error_aborts_cycle(self, engine, chain, script, make_scheduler):
        chain.add_log(
            address=script.FACTORY,
            topics=[EventKind.CREATED.topic0],
            data="0x",
            block_number=101,
        )
        chain.set_height(106)

        result = await make_scheduler(start_block=100).run_once()

        assert not result.success
        assert result.error_type == "EventDecodeError"
        assert CursorStore().get() is None

    @pytest.mark.asyncio
    async def test_foreign_withdrawn_log_does_not_stall(self, engine, chain, script, make_scheduler):
        """A same-signature log with other indexing is skipped and the cursor moves on."""
        chain.add_log(
            address="0x" + "9" * 40,
            topics=[EventKind.WITHDRAWN.topic0],
            data="0x" + script.BOUNTY_A[2:].rjust(64, "0") + script.CREATOR[2:].rjust(64, "0") + f"{1:064x}",
            block_number=102,
        )
        script.withdrawn(block=103)
        chain.set_height(106)

        result = await make_scheduler(start_block=100).run_once()

        assert result.success
        assert result.ingested[EventKind.WITHDRAWN].skipped == 1
        assert result.inserted(EventKind.WITHDRAWN) == 1
        assert CursorStore().get() == 106
        assert get_table_row_counts(engine)["withdrawals"] == 1

    @pytest.mark.asyncio
    async def test_writes_run_off_the_event_loop(self, session_factory, chain, script):
        """Ingestion and cursor writes execute in a worker thread."""
        loop_thread = threading.get_ident()
        seen = []

        class RecordingIngestor(EventIngestor):
            def ingest(self, kind, logs):
                seen.append(threading.get_ident())
                return super().ingest(kind, logs)

        script.created(block=100)
        chain.set_height(101)
        scheduler = SyncScheduler(
            source=chain,
            ingestor=RecordingIngestor(session_factory),
            cursor=CursorStore(session_factory),
            factory_address=script.FACTORY,
            start_block=100,
        )

        result = await scheduler.run_once()

        assert result.success
        assert len(seen) == 3
        assert loop_thread not in seen

    @pytest.mark.asyncio
    async def test_cycle_summary_logged(self, chain, script, make_scheduler, caplog):
        script.created(block=100)
        script.claimed(block=105)
        chain.set_height(106)

        with caplog.at_level(logging.INFO, logger="event_sync.scheduler"):
            await make_scheduler(start_block=100).run_once()

        assert "[scheduler] block 100-106: 1 created, 1 claimed, 0 withdrawn" in caplog.text

    @pytest.mark.asyncio
    async def test_status(self, chain, script, make_scheduler):
        script.created(block=100)
        chain.set_height(106)
        scheduler = make_scheduler(start_block=100)
        await scheduler.run_once()

        status = scheduler.status()

        assert status["state"] == "cycling"
        assert status["cursor"] == 106
        assert status["cycles_completed"] == 1
        assert status["last_result"]["ingested"]["created"]["inserted"] == 1
        assert status["source"]["name"] == "mock"


# ============================================================
# LOOP
# ============================================================

class TestLoop:
    """Tests for run_forever and overlap protection."""

    @pytest.mark.asyncio
    async def test_run_once_refuses_overlap(self, make_scheduler):
        source = GatedLogSource()
        source.set_height(106)
        scheduler = make_scheduler(source=source, start_block=100)

        first = asyncio.create_task(scheduler.run_once())
        await asyncio.sleep(0.01)
        assert scheduler.is_cycle_running

        assert await scheduler.run_once() is None
        assert scheduler.skipped_ticks == 1

        source.gate.set()
        result = await first
        assert result.success
        assert source.max_active == 1

    @pytest.mark.asyncio
    async def test_first_tick_fires_immediately(self, chain, make_scheduler):
        chain.set_height(106)
        scheduler = make_scheduler(start_block=100, poll_interval=60)

        task = asyncio.create_task(scheduler.run_forever())
        await asyncio.sleep(0.05)

        assert scheduler.cycles_completed == 1
        scheduler.stop()
        await asyncio.wait_for(task, timeout=1.0)

    @pytest.mark.asyncio
    async def test_ticks_skipped_while_cycle_in_flight(self, make_scheduler):
        source = GatedLogSource()
        source.set_height(106)
        scheduler = make_scheduler(source=source, start_block=100, poll_interval=0.01)

        task = asyncio.create_task(scheduler.run_forever())
        await asyncio.sleep(0.1)

        assert scheduler.is_cycle_running
        assert scheduler.skipped_ticks >= 3
        assert scheduler.cycles_completed == 0

        source.gate.set()
        await asyncio.sleep(0.05)
        scheduler.stop()
        await asyncio.wait_for(task, timeout=1.0)

        assert scheduler.cycles_completed >= 1
        assert source.max_active == 1
        assert CursorStore().get() == 106

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_loop(self, chain, make_scheduler):
        chain.set_height(106)
        chain.fail_height(times=2)
        scheduler = make_scheduler(start_block=100, poll_interval=0.01)

        task = asyncio.create_task(scheduler.run_forever())
        await asyncio.sleep(0.1)
        scheduler.stop()
        await asyncio.wait_for(task, timeout=1.0)

        assert scheduler.cycles_failed == 2
        assert scheduler.cycles_completed >= 1
        assert CursorStore().get() == 106

    @pytest.mark.asyncio
    async def test_stop_before_start_runs_nothing(self, chain, make_scheduler):
        chain.set_height(106)
        scheduler = make_scheduler(start_block=100)
        scheduler.stop()

        await asyncio.wait_for(scheduler.run_forever(), timeout=1.0)

        assert scheduler.cycles_completed == 0
        assert chain.height_calls == 0
