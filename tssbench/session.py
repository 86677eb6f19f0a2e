"""
Benchmark session orchestrator.

Resolves the requested test, brings up the device, runs the loop and always
releases the device afterwards.
"""

from __future__ import annotations

import logging

from tssbench.config import BenchmarkConfig
from tssbench.device import TransportFactory, mssim_transport, open_session
from tssbench.registry import TestCase, TestRegistry, default_registry
from tssbench.runner import BenchmarkRunner, ProgressCallback, RunResult
from tssbench.timing import format_duration

logger = logging.getLogger(__name__)


class BenchmarkSession:
    """Manages a complete benchmark run.

    Orchestrates:
    - Test resolution (before any device traffic)
    - Device connect, power-cycle and startup
    - The timed loop
    - Device release on every exit path
    """

    def __init__(
        self,
        config: BenchmarkConfig,
        registry: TestRegistry | None = None,
        transport_factory: TransportFactory = mssim_transport,
        progress_callback: ProgressCallback | None = None,
    ):
        """Initialize benchmark session.

        Args:
            config: Benchmark configuration
            registry: Tests to choose from; the built-in TPM workloads if omitted
            transport_factory: Builds the device transport
            progress_callback: Optional callback for progress updates.
                              Called with (current, total, message).
        """
        self.config = config
        self.registry = registry if registry is not None else default_registry()
        self.transport_factory = transport_factory
        self.runner = BenchmarkRunner(progress_callback)

    def resolve_test(self) -> TestCase:
        """Look up the configured test.

        Raises:
            ConfigurationError: if the name is not registered.
        """
        return self.registry.resolve(self.config.test_name)

    def run(self) -> RunResult:
        """Execute the full benchmark.

        Returns:
            RunResult of the loop. A failed iteration is reported through
            ``RunResult.error``; setup failures raise.

        Raises:
            ConfigurationError: unknown test name.
            DeviceConnectionError: the device is unreachable.
            DeviceStartupError: power-cycle or startup failed.
        """
        test = self.resolve_test()
        logger.info(f"Selected test '{test.name}' x{self.config.test_count}")

        with open_session(
            host=self.config.host,
            port=self.config.port,
            timeout_ms=self.config.timeout_ms,
            strict=self.config.strict,
            transport_factory=self.transport_factory,
        ) as device:
            result = self.runner.run(device, test, self.config.test_count)

        logger.debug(
            f"Loop wall time {format_duration(result.wall_ns)} "
            f"({format_duration(result.total_ns)} inside iterations)"
        )
        return result
