"""
Polling Test Fixtures

Scripted fakes for the stream provider and capture sink.
All fixtures are explicit - pages are keyed by the cursor that fetches them.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union
import json

from kinesis_ingestion.clock import LogicalClock
from kinesis_ingestion.config import BridgeConfig
from kinesis_ingestion.contracts import (
    IteratorType, RawRecord, RecordsPage, ShardDescriptor, StreamDescriptor
)
from kinesis_ingestion.errors import CaptureError, ProviderError


# =============================================================================
# FIXED VALUES (deterministic)
# =============================================================================

EPOCH = datetime(2026, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
STREAM = "test-stream"
SHARD_0 = "shardId-000000000000"
SHARD_1 = "shardId-000000000001"

TEST_EVENT = {"event": "kinesis test", "props": {"foo": "bar"}}


def make_config(**overrides) -> BridgeConfig:
    values = {
        "stream_name": STREAM,
        "event_key": "event",
        "additional_property_mappings": "props.foo:foo",
        "posthog_api_key": "phc_test",
        "cache_path": ":memory:",
    }
    values.update(overrides)
    return BridgeConfig.from_mapping(values)


def json_record(payload: Any, sequence_number: str) -> RawRecord:
    return RawRecord(data=json.dumps(payload).encode("utf-8"), sequence_number=sequence_number)


def page(*records: RawRecord, next_cursor: Optional[str] = None) -> RecordsPage:
    return RecordsPage(records=tuple(records), next_cursor=next_cursor)


# =============================================================================
# FAKE STREAM PROVIDER
# =============================================================================

class FakeStreamProvider:
    """
    StreamProvider with scripted responses.

    - pages[cursor] is a RecordsPage or an exception to raise
    - iterators[shard_id] is a list of cursors (or exceptions) handed out in order
    - every get_records call advances the clock by `seconds_per_call`
    """

    def __init__(
        self,
        shards: Tuple[str, ...] = (SHARD_0,),
        clock: Optional[LogicalClock] = None,
        seconds_per_call: float = 0.0
    ):
        self.shards = shards
        self.clock = clock
        self.seconds_per_call = seconds_per_call
        self.pages: Dict[str, Union[RecordsPage, Exception]] = {}
        self.iterators: Dict[str, List[Union[str, Exception]]] = {}
        self.describe_error: Optional[Exception] = None
        self.describe_calls = 0
        self.iterator_requests: List[Tuple[str, IteratorType, Optional[str]]] = []
        self.records_requests: List[str] = []

    async def describe_stream(self, stream_name: str) -> StreamDescriptor:
        self.describe_calls += 1
        if self.describe_error is not None:
            raise self.describe_error
        return StreamDescriptor(
            stream_name=stream_name,
            shards=tuple(ShardDescriptor(shard_id=s) for s in self.shards)
        )

    async def get_shard_iterator(
        self,
        stream_name: str,
        shard_id: str,
        iterator_type: IteratorType,
        sequence_number: Optional[str] = None
    ) -> str:
        self.iterator_requests.append((shard_id, iterator_type, sequence_number))
        queue = self.iterators.get(shard_id, [])
        if not queue:
            return f"{shard_id}-iter-{len(self.iterator_requests)}"
        issued = queue.pop(0)
        if isinstance(issued, Exception):
            raise issued
        return issued

    async def get_records(self, cursor: str, limit: int = 100) -> RecordsPage:
        self.records_requests.append(cursor)
        if self.clock is not None and self.seconds_per_call:
            self.clock.advance(self.seconds_per_call)
        response = self.pages.get(cursor)
        if response is None:
            raise ProviderError("get_records", f"unknown iterator {cursor}")
        if isinstance(response, Exception):
            raise response
        return response


# =============================================================================
# RECORDING SINK
# =============================================================================

class RecordingSink:
    """CaptureSink that keeps every event; events in `fail_on` are rejected."""

    def __init__(self, fail_on: Tuple[str, ...] = ()):
        self.captured: List[Tuple[Any, Dict[str, str]]] = []
        self.fail_on = fail_on
        self.closed = False

    async def capture(self, event: Any, properties: Dict[str, str]) -> None:
        if event in self.fail_on:
            raise CaptureError(str(event), "HTTP 503", http_status=503)
        self.captured.append((event, dict(properties)))

    async def close(self) -> None:
        self.closed = True
