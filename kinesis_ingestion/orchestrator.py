"""
Stream Orchestrator

Entry point invoked by the scheduler host once per interval.

DESIGN:
=======
1. setup() builds the runtime context once
2. poll_once() re-describes the stream (shards change under resharding)
3. One independent asyncio task per shard, sharing the cycle's start time
4. poll_once() returns without waiting; drain() collects the results
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Deque, List, Optional, Set
from datetime import datetime
from pathlib import Path
from collections import deque
import asyncio
import logging
import uuid

from .clock import LogicalClock
from .config import BridgeConfig
from .contracts import PollCycle, PollStatus, ShardDescriptor, ShardPollResult
from .cursor_store import CacheBackend, CursorStore, InMemoryCache, SqliteCache
from .errors import ProviderError
from .poller import ShardPoller
from .provider import KinesisStreamProvider, StreamProvider
from .sink import CaptureSink, PostHogCaptureSink

logger = logging.getLogger(__name__)

MEMORY_CACHE_PATH = ":memory:"
DEFAULT_MAX_RETAINED_RESULTS = 1000


@dataclass
class RuntimeContext:
    """Collaborators built once at setup and shared by every cycle."""
    config: BridgeConfig
    provider: StreamProvider
    cache: CacheBackend
    store: CursorStore
    sink: CaptureSink
    clock: LogicalClock


def build_context(
    config: BridgeConfig,
    provider: Optional[StreamProvider] = None,
    cache: Optional[CacheBackend] = None,
    sink: Optional[CaptureSink] = None,
    clock: Optional[LogicalClock] = None
) -> RuntimeContext:
    """Create the runtime context; any collaborator can be supplied instead."""
    clock = clock or LogicalClock.live()
    provider = provider or KinesisStreamProvider(
        region=config.aws_region,
        access_key_id=config.aws_access_key_id,
        secret_access_key=config.aws_secret_access_key,
        endpoint_url=config.endpoint_url
    )
    if cache is None:
        if config.cache_path == MEMORY_CACHE_PATH:
            cache = InMemoryCache(clock)
        else:
            cache = SqliteCache(Path(config.cache_path), clock=clock)
    sink = sink or PostHogCaptureSink(
        host=config.posthog_host,
        api_key=config.posthog_api_key,
        distinct_id=config.distinct_id,
        clock=clock
    )
    return RuntimeContext(
        config=config,
        provider=provider,
        cache=cache,
        store=CursorStore(cache, ttl_seconds=config.cursor_ttl_seconds),
        sink=sink,
        clock=clock
    )


class StreamOrchestrator:
    """
    Lists shards and dispatches a ShardPoller per shard.

    A failure in one shard's task is logged and recorded; sibling shards
    are unaffected. Only the most recent `max_retained_results` results are
    kept for drain(); a host that never drains loses the oldest.
    """

    def __init__(self, max_retained_results: int = DEFAULT_MAX_RETAINED_RESULTS):
        self._context: Optional[RuntimeContext] = None
        self._poller: Optional[ShardPoller] = None
        self._tasks: Set[asyncio.Task] = set()
        self._results: Deque[ShardPollResult] = deque(maxlen=max_retained_results)

    def setup(self, config: BridgeConfig, **collaborators) -> RuntimeContext:
        """Build the runtime context. Called once by the host."""
        context = build_context(config, **collaborators)
        self._context = context
        self._poller = ShardPoller(
            stream_name=config.stream_name,
            provider=context.provider,
            store=context.store,
            sink=context.sink,
            event_key=config.event_key,
            property_mappings=config.additional_property_mappings,
            clock=context.clock,
            poll_budget_seconds=config.poll_budget_seconds,
            records_limit=config.records_limit
        )
        logger.info(f"Bridge set up for stream {config.stream_name}")
        return context

    async def poll_once(self) -> PollCycle:
        """Describe the stream and dispatch one poller task per shard."""
        context = self._require_context()
        stream_name = context.config.stream_name
        started_at = context.clock.now()
        cycle_id = f"cycle_{started_at.strftime('%Y%m%d%H%M%S')}_{uuid.uuid4().hex[:8]}"

        await self._reclaim_expired(context)

        try:
            stream = await context.provider.describe_stream(stream_name)
        except ProviderError as e:
            logger.error(f"Could not describe stream {stream_name}: {e}")
            return PollCycle(cycle_id=cycle_id, stream_name=stream_name, started_at=started_at, shard_ids=())

        for shard in stream.shards:
            task = asyncio.create_task(
                self._run_shard(shard, started_at),
                name=f"shard-{shard.shard_id}"
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        logger.info(f"{cycle_id}: dispatched {len(stream.shards)} shard pollers for {stream_name}")
        return PollCycle(
            cycle_id=cycle_id,
            stream_name=stream_name,
            started_at=started_at,
            shard_ids=stream.shard_ids
        )

    async def _reclaim_expired(self, context: RuntimeContext) -> None:
        """Delete checkpoints past their TTL, e.g. of shards no longer listed."""
        purge = getattr(context.cache, 'purge', None)
        if purge is None:
            return
        try:
            removed = await purge()
        except Exception as e:
            logger.error(f"Could not purge expired checkpoints: {e}", exc_info=True)
            return
        if removed:
            logger.info(f"Purged {removed} expired checkpoint entries")

    async def _run_shard(self, shard: ShardDescriptor, started_at: datetime) -> ShardPollResult:
        result = await self._poll_shard(shard, started_at)
        self._results.append(result)
        return result

    async def _poll_shard(self, shard: ShardDescriptor, started_at: datetime) -> ShardPollResult:
        try:
            result = await self._poller.run(shard, started_at)
        except Exception as e:
            logger.error(f"[{shard.shard_id}] Shard poller crashed: {e}", exc_info=True)
            return ShardPollResult(
                shard_id=shard.shard_id,
                status=PollStatus.FAILED,
                started_at=started_at,
                completed_at=self._context.clock.now(),
                error_message=str(e)
            )
        logger.info(
            f"[{shard.shard_id}] {result.status.value}: {result.pages_fetched} pages, "
            f"{result.events_captured}/{result.records_seen} records captured"
        )
        return result

    async def drain(self) -> List[ShardPollResult]:
        """Wait for outstanding shard tasks; return the results retained since the last drain."""
        pending = [t for t in self._tasks if not t.done()]
        if pending:
            await asyncio.gather(*pending)
        results = list(self._results)
        self._results.clear()
        return results

    @property
    def pending(self) -> int:
        """Shard tasks still running."""
        return sum(1 for t in self._tasks if not t.done())

    async def close(self) -> None:
        """Finish in-flight work and release the sink."""
        await self.drain()
        if self._context is not None and hasattr(self._context.sink, 'close'):
            await self._context.sink.close()

    def _require_context(self) -> RuntimeContext:
        if self._context is None:
            raise RuntimeError("setup() must be called before poll_once()")
        return self._context
