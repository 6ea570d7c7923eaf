"""Record decoder: raw record bytes to JSON data."""

from __future__ import annotations
from typing import Any, Optional
import json
import logging

logger = logging.getLogger(__name__)


def decode_record(raw: bytes) -> Optional[Any]:
    """
    Decode UTF-8 JSON bytes.

    Returns None (and logs the parser error) on invalid encoding or
    malformed JSON, including documents nested too deeply to parse.
    Never raises.
    """
    try:
        return json.loads(raw.decode('utf-8'))
    except (ValueError, RecursionError) as e:
        logger.warning(f"Failed to decode record ({len(raw)} bytes): {e}")
        return None
