"""
Field Mapper

Maps a decoded record onto an outbound event.

PRINCIPLES:
===========
1. Pure - no I/O beyond log lines
2. Missing fields are skips, never crashes
3. A record without an event name is not an event (None)
4. Only string values are copied into properties
"""

from __future__ import annotations
from typing import Any, Optional, Tuple
import logging

from .contracts import OutputEvent, PropertyMapping

logger = logging.getLogger(__name__)

PATH_SEPARATOR = "."
TOKEN_SEPARATOR = ","
PAIR_SEPARATOR = ":"

_MISSING = object()


def resolve_path(payload: Any, path: str) -> Tuple[bool, Any]:
    """
    Walk a dot-separated path through nested mappings.

    Returns (found, value). A missing key or a non-mapping intermediate
    yields (False, None).
    """
    current = payload
    for segment in path.split(PATH_SEPARATOR):
        if not isinstance(current, dict):
            return False, None
        current = current.get(segment, _MISSING)
        if current is _MISSING:
            return False, None
    return True, current


def parse_mapping_spec(mapping_spec: Optional[str]) -> Tuple[PropertyMapping, ...]:
    """
    Parse `sourcePath:destinationKey` tokens separated by commas.

    Tokens without exactly one colon or with an empty side are dropped
    with a warning.
    """
    if not mapping_spec:
        return ()

    mappings = []
    for token in mapping_spec.split(TOKEN_SEPARATOR):
        token = token.strip()
        if not token:
            continue
        parts = token.split(PAIR_SEPARATOR)
        if len(parts) != 2 or not parts[0].strip() or not parts[1].strip():
            logger.warning(f"Ignoring malformed property mapping {token!r}")
            continue
        mappings.append(PropertyMapping(
            source_path=parts[0].strip(),
            destination_key=parts[1].strip()
        ))
    return tuple(mappings)


def map_record(
    payload: Any,
    event_key_path: str,
    mapping_spec: Optional[str]
) -> Optional[OutputEvent]:
    """
    Build an OutputEvent from a decoded payload.

    Returns None when the event key is missing or falsy.
    """
    found, event_name = resolve_path(payload, event_key_path)
    if not found or not event_name:
        logger.warning(f"Event key {event_key_path!r} not found in record")
        return None

    properties = {}
    for mapping in parse_mapping_spec(mapping_spec):
        found, value = resolve_path(payload, mapping.source_path)
        if not found:
            logger.warning(f"Property {mapping.source_path!r} not found in record")
            continue
        if not isinstance(value, str):
            logger.warning(
                f"Property {mapping.source_path!r} is {type(value).__name__}, expected str"
            )
            continue
        properties[mapping.destination_key] = value

    return OutputEvent(event=event_name, properties=properties)
