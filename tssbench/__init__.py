"""
Micro-benchmarks for a TPM reachable over the network.

Connects to a TPM 2.0 simulator, power-cycles and starts it, then times one of
a fixed set of operation sequences (seal/unseal, PCR extend, RSA and ECC
create/sign/verify) over many iterations.

Usage:
    python -m tssbench
    python -m tssbench --test_name ecc --test_count 200
"""

from tssbench.timing import TimingRecord, TimingContext, format_duration
from tssbench.errors import (
    BenchmarkError,
    ConfigurationError,
    DeviceConnectionError,
    DeviceStartupError,
    TestExecutionError,
)
from tssbench.config import BenchmarkConfig
from tssbench.registry import TestCase, TestRegistry, default_registry
from tssbench.device import DeviceSession, open_session
from tssbench.runner import BenchmarkRunner, RunResult
from tssbench.session import BenchmarkSession

__all__ = [
    # Timing primitives
    "TimingRecord",
    "TimingContext",
    "format_duration",
    # Errors
    "BenchmarkError",
    "ConfigurationError",
    "DeviceConnectionError",
    "DeviceStartupError",
    "TestExecutionError",
    # Configuration
    "BenchmarkConfig",
    # Test registry
    "TestCase",
    "TestRegistry",
    "default_registry",
    # Device session
    "DeviceSession",
    "open_session",
    # Benchmark loop
    "BenchmarkRunner",
    "RunResult",
    "BenchmarkSession",
]
