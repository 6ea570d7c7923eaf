"""
Stream Provider

Async adapter over the Kinesis API (describe-stream, get-iterator, get-records).

GUARANTEES:
===========
1. Every call is awaitable - boto3 runs in a worker thread
2. Provider failures surface as ProviderError, never as botocore types
3. An expired iterator surfaces as IteratorExpiredError
"""

from __future__ import annotations
from typing import Any, Dict, Optional, Protocol
import asyncio
import logging

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .contracts import (
    IteratorType, RawRecord, RecordsPage, ShardDescriptor, StreamDescriptor
)
from .errors import IteratorExpiredError, ProviderError

logger = logging.getLogger(__name__)

EXPIRED_ITERATOR_CODE = "ExpiredIteratorException"


class StreamProvider(Protocol):
    """Operations the poller needs from the stream service."""

    async def describe_stream(self, stream_name: str) -> StreamDescriptor:
        ...

    async def get_shard_iterator(
        self,
        stream_name: str,
        shard_id: str,
        iterator_type: IteratorType,
        sequence_number: Optional[str] = None
    ) -> str:
        ...

    async def get_records(self, cursor: str, limit: int = 100) -> RecordsPage:
        ...


class KinesisStreamProvider:
    """
    StreamProvider backed by a boto3 Kinesis client.

    Credentials fall back to the boto3 default chain when not given.
    """

    def __init__(
        self,
        region: str,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        client: Any = None
    ):
        self._client = client or boto3.client(
            'kinesis',
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            endpoint_url=endpoint_url,
            config=Config(retries={'max_attempts': 3, 'mode': 'standard'}),
        )

    async def _call(self, operation: str, **params) -> Dict[str, Any]:
        method = getattr(self._client, operation)
        try:
            return await asyncio.to_thread(method, **params)
        except ClientError as e:
            code = e.response.get('Error', {}).get('Code')
            message = e.response.get('Error', {}).get('Message', str(e))
            if code == EXPIRED_ITERATOR_CODE:
                raise IteratorExpiredError(message) from e
            raise ProviderError(operation, message, code=code) from e
        except BotoCoreError as e:
            raise ProviderError(operation, str(e)) from e

    async def describe_stream(self, stream_name: str) -> StreamDescriptor:
        """Describe the stream and list every shard (follows pagination)."""
        response = await self._call('describe_stream', StreamName=stream_name)
        description = response['StreamDescription']
        shards = list(description.get('Shards', []))

        while description.get('HasMoreShards') and shards:
            response = await self._call(
                'describe_stream',
                StreamName=stream_name,
                ExclusiveStartShardId=shards[-1]['ShardId']
            )
            description = response['StreamDescription']
            shards.extend(description.get('Shards', []))

        return StreamDescriptor(
            stream_name=stream_name,
            shards=tuple(
                ShardDescriptor(
                    shard_id=shard['ShardId'],
                    parent_shard_id=shard.get('ParentShardId')
                )
                for shard in shards
            ),
            status=description.get('StreamStatus', 'UNKNOWN')
        )

    async def get_shard_iterator(
        self,
        stream_name: str,
        shard_id: str,
        iterator_type: IteratorType,
        sequence_number: Optional[str] = None
    ) -> str:
        """Issue a new shard iterator."""
        params = {
            'StreamName': stream_name,
            'ShardId': shard_id,
            'ShardIteratorType': iterator_type.value,
        }
        if iterator_type in (IteratorType.AT_SEQUENCE_NUMBER, IteratorType.AFTER_SEQUENCE_NUMBER):
            if not sequence_number:
                raise ValueError(f"{iterator_type.value} requires a sequence number")
            params['StartingSequenceNumber'] = sequence_number

        response = await self._call('get_shard_iterator', **params)
        iterator = response.get('ShardIterator')
        if not iterator:
            raise ProviderError('get_shard_iterator', "response carried no ShardIterator")
        return iterator

    async def get_records(self, cursor: str, limit: int = 100) -> RecordsPage:
        """Fetch one page of records."""
        response = await self._call('get_records', ShardIterator=cursor, Limit=limit)
        return RecordsPage(
            records=tuple(
                RawRecord(
                    data=record['Data'],
                    sequence_number=record['SequenceNumber'],
                    partition_key=record.get('PartitionKey'),
                    arrived_at=record.get('ApproximateArrivalTimestamp')
                )
                for record in response.get('Records', [])
            ),
            next_cursor=response.get('NextShardIterator'),
            millis_behind_latest=response.get('MillisBehindLatest')
        )
