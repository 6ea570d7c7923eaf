"""
Kinesis Ingestion Contracts

Immutable data structures shared by the polling pipeline.

BOUNDARY: Ingestion Layer
Everything read from the stream provider enters through these contracts.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple
from datetime import datetime
from enum import Enum


# =============================================================================
# ENUMS
# =============================================================================

class IteratorType(Enum):
    """Where a freshly issued shard iterator is positioned."""
    LATEST = "LATEST"
    TRIM_HORIZON = "TRIM_HORIZON"
    AT_SEQUENCE_NUMBER = "AT_SEQUENCE_NUMBER"
    AFTER_SEQUENCE_NUMBER = "AFTER_SEQUENCE_NUMBER"


class PollerState(Enum):
    """States of the per-shard polling state machine."""
    NO_CURSOR = "no_cursor"
    HAS_CURSOR = "has_cursor"
    FETCHING = "fetching"
    ADVANCING = "advancing"
    EXPIRED = "expired"
    DONE = "done"


class PollStatus(Enum):
    """Why a shard run reached DONE."""
    BUDGET_EXHAUSTED = "budget_exhausted"
    SHARD_CLOSED = "shard_closed"
    ITERATOR_ERROR = "iterator_error"
    FETCH_ERROR = "fetch_error"
    FAILED = "failed"


# =============================================================================
# STREAM TOPOLOGY
# =============================================================================

@dataclass(frozen=True)
class ShardDescriptor:
    """A single shard of a stream. Opaque beyond its identity."""
    shard_id: str
    parent_shard_id: Optional[str] = None


@dataclass(frozen=True)
class StreamDescriptor:
    """
    Current shard set of a stream.

    Re-fetched every orchestration cycle - shards split and merge externally.
    """
    stream_name: str
    shards: Tuple[ShardDescriptor, ...]
    status: str = "ACTIVE"

    @property
    def shard_ids(self) -> Tuple[str, ...]:
        return tuple(s.shard_id for s in self.shards)


# =============================================================================
# RECORD CONTRACTS
# =============================================================================

@dataclass(frozen=True)
class RawRecord:
    """
    Record exactly as returned by get_records.

    sequence_number is only used to reposition an iterator after expiry.
    """
    data: bytes
    sequence_number: str
    partition_key: Optional[str] = None
    arrived_at: Optional[datetime] = None


@dataclass(frozen=True)
class RecordsPage:
    """One page of get_records output."""
    records: Tuple[RawRecord, ...]
    next_cursor: Optional[str]
    millis_behind_latest: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return not self.records


@dataclass(frozen=True)
class PropertyMapping:
    """One parsed `sourcePath:destinationKey` token."""
    source_path: str
    destination_key: str


@dataclass(frozen=True)
class OutputEvent:
    """
    Event ready for the capture sink.

    `event` keeps whatever the event key resolved to, string or not.
    """
    event: Any
    properties: Dict[str, str] = field(default_factory=dict)


# =============================================================================
# POLL RESULT CONTRACTS
# =============================================================================

@dataclass(frozen=True)
class ShardPollResult:
    """
    Outcome of one shard run within a cycle.

    Failed runs are FIRST-CLASS outputs, not exceptions.
    """
    shard_id: str
    status: PollStatus
    started_at: datetime
    completed_at: datetime
    pages_fetched: int = 0
    records_seen: int = 0
    events_captured: int = 0
    decode_failures: int = 0
    mapping_rejections: int = 0
    capture_failures: int = 0
    iterator_reissues: int = 0
    last_cursor: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status in (PollStatus.BUDGET_EXHAUSTED, PollStatus.SHARD_CLOSED)

    @property
    def duration_ms(self) -> float:
        return (self.completed_at - self.started_at).total_seconds() * 1000


@dataclass(frozen=True)
class PollCycle:
    """One orchestration cycle: the shards it dispatched."""
    cycle_id: str
    stream_name: str
    started_at: datetime
    shard_ids: Tuple[str, ...]

    @property
    def dispatched(self) -> int:
        return len(self.shard_ids)
