"""
Kinesis Ingestion Bridge

Polls a Kinesis stream shard by shard, checkpoints each shard's iterator,
and forwards mapped records to a PostHog capture endpoint.

LAYER STRUCTURE:
================

1. PROVIDER (provider.py)
   - describe-stream / get-iterator / get-records over boto3
   - Outputs: StreamDescriptor, RecordsPage

2. TRANSFORM (decoder.py, mapper.py)
   - Pure: bytes -> JSON -> OutputEvent
   - MUST NOT: perform I/O

3. CHECKPOINTING (cursor_store.py)
   - One cursor per (stream, shard), refreshed TTL on every save

4. POLLING (poller.py, orchestrator.py)
   - Per-shard state machine bounded by the cycle's time budget
   - One task per shard, fire-and-forget dispatch

5. DELIVERY (sink.py)
   - Best-effort capture, not transactional with checkpoints
"""

from .config import BridgeConfig
from .contracts import (
    IteratorType, OutputEvent, PollCycle, PollerState, PollStatus,
    RawRecord, RecordsPage, ShardDescriptor, ShardPollResult, StreamDescriptor
)
from .cursor_store import CursorStore, InMemoryCache, SqliteCache, cursor_key
from .decoder import decode_record
from .errors import (
    CaptureError, ConfigError, IngestionError, IteratorExpiredError, ProviderError
)
from .mapper import map_record
from .orchestrator import StreamOrchestrator
from .poller import ShardPoller

__all__ = [
    'BridgeConfig',
    'CaptureError',
    'ConfigError',
    'CursorStore',
    'InMemoryCache',
    'IngestionError',
    'IteratorExpiredError',
    'IteratorType',
    'OutputEvent',
    'PollCycle',
    'PollStatus',
    'PollerState',
    'ProviderError',
    'RawRecord',
    'RecordsPage',
    'ShardDescriptor',
    'ShardPollResult',
    'ShardPoller',
    'SqliteCache',
    'StreamDescriptor',
    'StreamOrchestrator',
    'cursor_key',
    'decode_record',
    'map_record',
]
