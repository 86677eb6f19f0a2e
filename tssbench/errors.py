"""
Error kinds raised by the benchmark harness.

Every one of them is fatal to the run: nothing in the harness retries.
"""

from __future__ import annotations


class BenchmarkError(Exception):
    """Base class for errors that abort a benchmark run."""


class ConfigurationError(BenchmarkError):
    """Unknown test name or invalid iteration count.

    Raised before any device interaction.
    """


class DeviceConnectionError(BenchmarkError):
    """The transport to the device could not be established."""


class DeviceStartupError(BenchmarkError):
    """Power-cycling the device or the startup command failed."""


class TestExecutionError(BenchmarkError):
    """A test function reported failure or a device call faulted mid-run."""

    def __init__(self, test_name: str, iteration: int, reason: str):
        super().__init__(f"test '{test_name}' failed on iteration {iteration}: {reason}")
        self.test_name = test_name
        self.iteration = iteration
        self.reason = reason
