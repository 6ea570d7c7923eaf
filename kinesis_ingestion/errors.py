"""
Ingestion Errors

Typed failures raised across the bridge.

TAXONOMY:
=========
1. ConfigError           - fatal, raised once at setup
2. ProviderError         - transient stream provider failure, retried next cycle
3. IteratorExpiredError  - cursor invalidated provider-side, reissue and resume
4. CaptureError          - capture sink refused or could not be reached

Decode and mapping failures are NOT exceptions: they surface as None
results and log entries.
"""

from __future__ import annotations
from typing import Optional


class IngestionError(Exception):
    """Base class for all bridge errors."""
    pass


class ConfigError(IngestionError):
    """Raised when the bridge configuration is missing or invalid."""
    pass


class ProviderError(IngestionError):
    """Raised when a stream provider call fails."""

    def __init__(self, operation: str, message: str, code: Optional[str] = None):
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation
        self.code = code


class IteratorExpiredError(ProviderError):
    """Raised by get_records when the shard iterator has expired."""

    def __init__(self, message: str = "shard iterator expired"):
        super().__init__("get_records", message, code="ExpiredIteratorException")


class CaptureError(IngestionError):
    """Raised when the capture sink rejects an event."""

    def __init__(self, event: str, message: str, http_status: Optional[int] = None):
        super().__init__(f"capture of {event!r} failed: {message}")
        self.event = event
        self.http_status = http_status
