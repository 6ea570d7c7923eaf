"""
Capture Sink Tests

Request shape and failure translation, using httpx.MockTransport.
"""

import asyncio
import json

import httpx
import pytest

from kinesis_ingestion.clock import LogicalClock
from kinesis_ingestion.errors import CaptureError
from kinesis_ingestion.sink import PostHogCaptureSink

from .fixtures import EPOCH


def make_sink(handler, clock=None) -> PostHogCaptureSink:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PostHogCaptureSink(
        host="https://posthog.example.com/",
        api_key="phc_test",
        distinct_id="bridge",
        client=client,
        clock=clock
    )


def test_posts_event_to_capture_endpoint():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"status": 1})

    sink = make_sink(handler)
    asyncio.run(sink.capture("kinesis test", {"foo": "bar"}))

    assert len(requests) == 1
    assert str(requests[0].url) == "https://posthog.example.com/capture/"
    body = json.loads(requests[0].content)
    assert body["api_key"] == "phc_test"
    assert body["event"] == "kinesis test"
    assert body["distinct_id"] == "bridge"
    assert body["properties"] == {"foo": "bar"}
    assert "timestamp" in body


def test_http_error_status_raises_capture_error():
    sink = make_sink(lambda request: httpx.Response(503))

    with pytest.raises(CaptureError) as excinfo:
        asyncio.run(sink.capture("kinesis test", {}))

    assert excinfo.value.http_status == 503


def test_network_error_raises_capture_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    sink = make_sink(handler)

    with pytest.raises(CaptureError):
        asyncio.run(sink.capture("kinesis test", {}))


def test_close_closes_client():
    sink = make_sink(lambda request: httpx.Response(200))
    asyncio.run(sink.close())
    assert sink._client.is_closed


def test_timestamp_comes_from_injected_clock():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200)

    sink = make_sink(handler, clock=LogicalClock.manual(EPOCH))
    asyncio.run(sink.capture("kinesis test", {}))

    assert bodies[0]["timestamp"] == EPOCH.isoformat()
