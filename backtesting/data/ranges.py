"""
Interval Range Bookkeeping

Splits a requested window into candle-sized slots and tracks which slots have
received data. Data sources use this to batch requests, to report missing
candles after a fetch, and to answer whether data exists at a given time.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple
import logging

import pandas as pd

logger = logging.getLogger(__name__)


def to_naive_utc(timestamp) -> pd.Timestamp:
    """Timestamp in naive UTC; aware values are converted, naive ones are taken as UTC."""
    ts = pd.Timestamp(timestamp)
    if ts.tzinfo is not None:
        ts = ts.tz_convert('UTC').tz_localize(None)
    return ts


@dataclass
class IntervalData:
    """A single candle-sized slot."""
    start: datetime
    end: datetime
    has_data: bool = False

    def contains(self, timestamp: datetime) -> bool:
        return self.start <= timestamp < self.end


@dataclass
class IntervalRange:
    """A batch of consecutive slots, sized for one request to a source."""
    start: datetime
    end: datetime
    intervals: List[IntervalData] = field(default_factory=list)


@dataclass
class IntervalRangeHolder:
    """All slots for a requested window, grouped into request-sized ranges."""
    start: datetime
    end: datetime
    interval: timedelta
    ranges: List[IntervalRange] = field(default_factory=list)

    @classmethod
    def calculate(cls, start: datetime, end: datetime, interval: timedelta,
                  limit: int = 0, inclusive_end: bool = False) -> "IntervalRangeHolder":
        """
        Build the slot grid for [start, end) or [start, end].

        Args:
            start: First candle time, floored to the interval
            end: Window end, floored to the interval
            interval: Candle duration
            limit: Maximum slots per range (0 puts everything in one range)
            inclusive_end: Include the slot that starts at end

        Returns:
            IntervalRangeHolder with every slot marked as missing
        """
        if interval <= timedelta(0):
            raise ValueError("interval must be positive")

        freq = pd.Timedelta(interval)
        aligned_start = to_naive_utc(start).floor(freq)
        aligned_end = to_naive_utc(end).floor(freq)
        starts = pd.date_range(
            aligned_start, aligned_end, freq=freq,
            inclusive='both' if inclusive_end else 'left'
        )

        slots = [
            IntervalData(start=s.to_pydatetime(), end=(s + freq).to_pydatetime())
            for s in starts
        ]
        batch = limit if limit > 0 else max(len(slots), 1)
        ranges = []
        for i in range(0, len(slots), batch):
            chunk = slots[i:i + batch]
            ranges.append(IntervalRange(start=chunk[0].start, end=chunk[-1].end, intervals=chunk))

        return cls(
            start=aligned_start.to_pydatetime(),
            end=slots[-1].end if slots else aligned_end.to_pydatetime(),
            interval=interval,
            ranges=ranges,
        )

    def slots(self) -> Iterable[IntervalData]:
        for r in self.ranges:
            yield from r.intervals

    def set_has_data_from_timestamps(self, timestamps: Iterable[datetime]) -> None:
        """Mark each slot containing one of timestamps as having data."""
        seen = {to_naive_utc(t).floor(pd.Timedelta(self.interval)) for t in timestamps}
        for slot in self.slots():
            if pd.Timestamp(slot.start) in seen:
                slot.has_data = True

    def has_data_at_time(self, timestamp: datetime) -> bool:
        timestamp = to_naive_utc(timestamp).to_pydatetime()
        for slot in self.slots():
            if slot.contains(timestamp):
                return slot.has_data
        return False

    def missing_ranges(self) -> List[Tuple[datetime, datetime]]:
        """Return merged (start, end) spans of consecutive slots without data."""
        gaps: List[Tuple[datetime, datetime]] = []
        current: Optional[List[datetime]] = None
        for slot in self.slots():
            if slot.has_data:
                if current is not None:
                    gaps.append((current[0], current[1]))
                    current = None
                continue
            if current is None:
                current = [slot.start, slot.end]
            else:
                current[1] = slot.end
        if current is not None:
            gaps.append((current[0], current[1]))
        return gaps

    def log_missing(self, label: str) -> None:
        """Warn about missing spans after a fetch."""
        for gap_start, gap_end in self.missing_ranges():
            logger.warning(f"{label}: missing candles between {gap_start} and {gap_end}")
