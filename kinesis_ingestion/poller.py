"""
Shard Poller

Per-shard polling state machine.

STATES:
=======
(NO_CURSOR | HAS_CURSOR) -> FETCHING -> (ADVANCING | EXPIRED) -> FETCHING | DONE

GUARANTEES:
===========
1. A next cursor is persisted before the budget check (persist-before-continue)
2. An expired cursor is never reused - a fresh one is issued first
3. Any other provider failure ends the run without touching the checkpoint
4. Pages within a shard are fetched strictly in sequence
5. A closed shard's checkpoint is cleared once its last page is consumed
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
from datetime import datetime
import logging

from .clock import LogicalClock
from .contracts import (
    IteratorType, PollerState, PollStatus, RecordsPage, ShardDescriptor, ShardPollResult
)
from .cursor_store import CursorStore, cursor_key
from .decoder import decode_record
from .errors import CaptureError, IteratorExpiredError, ProviderError
from .mapper import map_record
from .provider import StreamProvider
from .sink import CaptureSink

logger = logging.getLogger(__name__)

DEFAULT_POLL_BUDGET_SECONDS = 60
DEFAULT_RECORDS_LIMIT = 100
DEFAULT_MAX_REISSUES = 3


@dataclass
class _RunStats:
    """Mutable counters for one shard run."""
    pages_fetched: int = 0
    records_seen: int = 0
    events_captured: int = 0
    decode_failures: int = 0
    mapping_rejections: int = 0
    capture_failures: int = 0
    iterator_reissues: int = 0
    last_cursor: Optional[str] = None
    last_sequence_number: Optional[str] = None


class ShardPoller:
    """
    Polls one shard for at most the cycle's time budget.

    Holds no state between runs; everything that must survive lives in
    the cursor store.
    """

    def __init__(
        self,
        stream_name: str,
        provider: StreamProvider,
        store: CursorStore,
        sink: CaptureSink,
        event_key: str,
        property_mappings: str = "",
        clock: Optional[LogicalClock] = None,
        poll_budget_seconds: float = DEFAULT_POLL_BUDGET_SECONDS,
        records_limit: int = DEFAULT_RECORDS_LIMIT,
        max_reissues: int = DEFAULT_MAX_REISSUES
    ):
        self._stream_name = stream_name
        self._provider = provider
        self._store = store
        self._sink = sink
        self._event_key = event_key
        self._property_mappings = property_mappings
        self._clock = clock or LogicalClock.live()
        self._poll_budget_seconds = poll_budget_seconds
        self._records_limit = records_limit
        self._max_reissues = max_reissues

    def budget_exceeded(self, started_at: datetime) -> bool:
        return self._clock.elapsed_since(started_at) > self._poll_budget_seconds

    async def run(self, shard: ShardDescriptor, started_at: datetime) -> ShardPollResult:
        """Drive the state machine for one shard until DONE."""
        shard_id = shard.shard_id
        key = cursor_key(self._stream_name, shard_id)
        stats = _RunStats()

        cursor = await self._store.load(key)
        page = None
        status = PollStatus.BUDGET_EXHAUSTED
        error_message = None
        state = PollerState.HAS_CURSOR if cursor else PollerState.NO_CURSOR

        while state is not PollerState.DONE:
            if state is PollerState.NO_CURSOR:
                # Start from now, history is not replayed
                try:
                    cursor = await self._provider.get_shard_iterator(
                        self._stream_name, shard_id, IteratorType.LATEST
                    )
                except ProviderError as e:
                    logger.error(f"[{shard_id}] Could not issue iterator: {e}")
                    status, error_message = PollStatus.ITERATOR_ERROR, str(e)
                    state = PollerState.DONE
                    continue
                logger.info(f"[{shard_id}] Issued fresh LATEST iterator")
                state = PollerState.FETCHING

            elif state is PollerState.HAS_CURSOR:
                # Resume point for a reissue if the stored cursor has expired
                stats.last_sequence_number = await self._store.load_sequence(key)
                state = PollerState.FETCHING

            elif state is PollerState.FETCHING:
                try:
                    page = await self._provider.get_records(cursor, limit=self._records_limit)
                except IteratorExpiredError:
                    logger.warning(f"[{shard_id}] Iterator expired, reissuing")
                    state = PollerState.EXPIRED
                    continue
                except ProviderError as e:
                    logger.error(f"[{shard_id}] get_records failed: {e}")
                    status, error_message = PollStatus.FETCH_ERROR, str(e)
                    state = PollerState.DONE
                    continue

                stats.pages_fetched += 1
                await self._process_page(shard_id, page, stats)
                state = PollerState.ADVANCING

            elif state is PollerState.ADVANCING:
                if not page.next_cursor:
                    logger.info(f"[{shard_id}] Shard closed, no next iterator")
                    await self._store.clear(key)
                    status = PollStatus.SHARD_CLOSED
                    state = PollerState.DONE
                    continue

                cursor = page.next_cursor
                await self._store.save(key, cursor, sequence_number=stats.last_sequence_number)
                stats.last_cursor = cursor

                if self.budget_exceeded(started_at):
                    status = PollStatus.BUDGET_EXHAUSTED
                    state = PollerState.DONE
                else:
                    state = PollerState.FETCHING

            elif state is PollerState.EXPIRED:
                if stats.iterator_reissues >= self._max_reissues:
                    logger.error(f"[{shard_id}] Iterator kept expiring after {stats.iterator_reissues} reissues")
                    status = PollStatus.FETCH_ERROR
                    error_message = "iterator reissue limit reached"
                    state = PollerState.DONE
                    continue
                try:
                    cursor = await self._reissue(shard_id, stats.last_sequence_number)
                except ProviderError as e:
                    logger.error(f"[{shard_id}] Could not reissue iterator: {e}")
                    status, error_message = PollStatus.ITERATOR_ERROR, str(e)
                    state = PollerState.DONE
                    continue
                stats.iterator_reissues += 1
                state = PollerState.FETCHING

        return self._result(shard_id, status, started_at, stats, error_message)

    async def _reissue(self, shard_id: str, last_sequence_number: Optional[str]) -> str:
        """Fresh iterator after expiry: just past the last record read, else LATEST."""
        if last_sequence_number:
            return await self._provider.get_shard_iterator(
                self._stream_name,
                shard_id,
                IteratorType.AFTER_SEQUENCE_NUMBER,
                sequence_number=last_sequence_number
            )
        return await self._provider.get_shard_iterator(
            self._stream_name, shard_id, IteratorType.LATEST
        )

    async def _process_page(self, shard_id: str, page: RecordsPage, stats: _RunStats):
        """Decode, map and capture every record of a page."""
        if page.is_empty:
            logger.debug(f"[{shard_id}] No records")
            return

        logger.info(f"[{shard_id}] Got {len(page.records)} records")
        for record in page.records:
            stats.records_seen += 1
            stats.last_sequence_number = record.sequence_number

            payload = decode_record(record.data)
            if payload is None:
                stats.decode_failures += 1
                continue

            event = map_record(payload, self._event_key, self._property_mappings)
            if event is None:
                stats.mapping_rejections += 1
                continue

            try:
                await self._sink.capture(event.event, event.properties)
            except CaptureError as e:
                logger.error(f"[{shard_id}] {e}")
                stats.capture_failures += 1
                continue
            stats.events_captured += 1

    def _result(
        self,
        shard_id: str,
        status: PollStatus,
        started_at: datetime,
        stats: _RunStats,
        error_message: Optional[str] = None
    ) -> ShardPollResult:
        return ShardPollResult(
            shard_id=shard_id,
            status=status,
            started_at=started_at,
            completed_at=self._clock.now(),
            pages_fetched=stats.pages_fetched,
            records_seen=stats.records_seen,
            events_captured=stats.events_captured,
            decode_failures=stats.decode_failures,
            mapping_rejections=stats.mapping_rejections,
            capture_failures=stats.capture_failures,
            iterator_reissues=stats.iterator_reissues,
            last_cursor=stats.last_cursor,
            error_message=error_message
        )
