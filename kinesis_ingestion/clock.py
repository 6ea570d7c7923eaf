"""
Injectable Clock
================

Single time source for poll budgets and cache expiry.

MODES:
- LIVE: reads system time
- MANUAL: returns a held time that only moves when advanced

GUARANTEES:
- No component reads system time except through a clock
- Manual mode makes budget and TTL logic deterministic under test
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional


@dataclass
class LogicalClock:
    """
    Injectable clock.

    MANUAL reads are recorded in `_ticks` so a test can inspect them afterwards.
    """
    _ticks: List[datetime] = field(default_factory=list)
    _is_live: bool = True
    _current: Optional[datetime] = None

    def now(self) -> datetime:
        """Get current time (system time in LIVE mode, held time in MANUAL mode)."""
        if self._is_live:
            return datetime.now(timezone.utc)
        self._ticks.append(self._current)
        return self._current

    def advance(self, seconds: float) -> datetime:
        """Move a MANUAL clock forward."""
        if self._is_live:
            raise RuntimeError("Cannot advance a live clock")
        self._current = self._current + timedelta(seconds=seconds)
        return self._current

    def elapsed_since(self, start: datetime) -> float:
        """Seconds between `start` and now."""
        return (self.now() - start).total_seconds()

    def tick_count(self) -> int:
        """Number of MANUAL time reads so far."""
        return len(self._ticks)

    def is_live(self) -> bool:
        return self._is_live

    @classmethod
    def live(cls) -> 'LogicalClock':
        """Create clock in LIVE mode (uses system time)."""
        return cls(_is_live=True)

    @classmethod
    def manual(cls, start: Optional[datetime] = None) -> 'LogicalClock':
        """Create clock in MANUAL mode starting at `start` (default: a fixed epoch)."""
        start = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        return cls(_is_live=False, _current=start)

    def __repr__(self) -> str:
        mode = "LIVE" if self._is_live else "MANUAL"
        return f"LogicalClock({mode}, ticks={len(self._ticks)})"
