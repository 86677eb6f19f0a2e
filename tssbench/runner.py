"""
The timed benchmark loop.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from tssbench.errors import ConfigurationError, TestExecutionError
from tssbench.timing import TimingContext, TimingRecord

if TYPE_CHECKING:
    from tssbench.device import DeviceSession
    from tssbench.registry import TestCase

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


@dataclass
class RunResult:
    """Outcome of a benchmark loop."""

    test_name: str
    requested_iterations: int
    completed_iterations: int = 0
    records: list[TimingRecord] = field(default_factory=list)
    wall_ns: int = 0
    error: TestExecutionError | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.completed_iterations == self.requested_iterations

    @property
    def total_ns(self) -> int:
        """Time spent inside completed iterations, in nanoseconds."""
        return sum(record.duration_ns for record in self.records[: self.completed_iterations])

    @property
    def average_ns(self) -> int:
        """Mean time per completed iteration, in nanoseconds."""
        if self.completed_iterations == 0:
            return 0
        return self.total_ns // self.completed_iterations


class BenchmarkRunner:
    """Runs a test case repeatedly against one device session.

    The loop stops at the first failed iteration. Only the test call itself is
    inside the timed section; progress reporting happens between iterations.
    """

    def __init__(self, progress_callback: ProgressCallback | None = None):
        """Initialize the runner.

        Args:
            progress_callback: Optional callback for progress updates.
                              Called with (current, total, message).
        """
        self._progress_callback = progress_callback

    def _report_progress(self, current: int, total: int, message: str) -> None:
        """Report progress if callback is set."""
        if self._progress_callback:
            self._progress_callback(current, total, message)

    def run(self, session: DeviceSession, test: TestCase, iterations: int) -> RunResult:
        """Execute ``test`` up to ``iterations`` times.

        Returns:
            RunResult; ``error`` is set if an iteration failed.

        Raises:
            ConfigurationError: if ``iterations`` is less than one.
        """
        if iterations < 1:
            raise ConfigurationError(f"iteration count must be at least 1, got {iterations}")

        result = RunResult(test_name=test.name, requested_iterations=iterations)
        logger.info(f"Running '{test.name}' for {iterations} iterations")

        loop_start = time.perf_counter_ns()
        for i in range(1, iterations + 1):
            try:
                with TimingContext(test.name, result.records, iteration=i):
                    ok = test(session)
            except Exception as e:
                result.error = TestExecutionError(test.name, i, f"{type(e).__name__}: {e}")
                result.error.__cause__ = e
            else:
                if not ok:
                    result.error = TestExecutionError(test.name, i, "test reported failure")

            if result.error is not None:
                logger.error(f"{result.error}; aborting")
                break

            result.completed_iterations = i
            record = result.records[-1]
            logger.debug(f"Iteration {record.metadata['iteration']}: {record.duration_ms:.3f}ms")
            self._report_progress(i, iterations, f"Running {test.name}")

        result.wall_ns = time.perf_counter_ns() - loop_start
        return result
