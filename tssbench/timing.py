"""
Core timing primitives for the benchmark harness.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

NS_PER_US = 1_000
NS_PER_MS = 1_000_000
NS_PER_S = 1_000_000_000


@dataclass
class TimingRecord:
    """A single timing measurement."""

    name: str
    start_ns: int
    end_ns: int
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def duration_ns(self) -> int:
        """Duration in nanoseconds."""
        return self.end_ns - self.start_ns

    @property
    def duration_ms(self) -> float:
        """Duration in milliseconds."""
        return self.duration_ns / NS_PER_MS


class TimingContext:
    """Context manager for timing code blocks.

    Usage:
        records = []
        with TimingContext("iteration", records, iteration=1):
            # code to time
            pass

    The record is appended to ``records`` on exit, including when the block
    raises, so a failed iteration still leaves its timing behind.
    """

    def __init__(self, name: str, records: list[TimingRecord], **metadata: Any):
        self.name = name
        self.records = records
        self.metadata = metadata
        self._start_ns: int = 0

    def __enter__(self) -> TimingContext:
        self._start_ns = time.perf_counter_ns()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        end_ns = time.perf_counter_ns()
        self.records.append(
            TimingRecord(
                name=self.name,
                start_ns=self._start_ns,
                end_ns=end_ns,
                metadata=self.metadata,
            )
        )


def _trim(value: float) -> str:
    # Up to three decimals, no trailing zeros, always "." as separator.
    return f"{value:.3f}".rstrip("0").rstrip(".")


def format_duration(duration_ns: int) -> str:
    """Render a duration in the most readable unit.

    Seconds when the duration is at least one second, milliseconds when it is
    at least one millisecond, microseconds otherwise.

    Examples:
        >>> format_duration(1_500_000_000)
        '1.5s'
        >>> format_duration(999_000_000)
        '999ms'
        >>> format_duration(500)
        '0.5µs'
    """
    if duration_ns >= NS_PER_S:
        return _trim(duration_ns / NS_PER_S) + "s"
    if duration_ns >= NS_PER_MS:
        return _trim(duration_ns / NS_PER_MS) + "ms"
    return _trim(duration_ns / NS_PER_US) + "µs"
