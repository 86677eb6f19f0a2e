"""
Run configuration.

Connection defaults come from the environment so a CI job can point the
harness at a simulator without touching the command line:

    TSSBENCH_HOST        simulator host (default 127.0.0.1)
    TSSBENCH_PORT        simulator command port (default 2321)
    TSSBENCH_TIMEOUT_MS  socket timeout in milliseconds (default 2000)
    TSSBENCH_STRICT      "0" tolerates an already-started TPM (default "1")
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from tssbench.errors import ConfigurationError

DEFAULT_TEST_NAME = "seal_unseal"
DEFAULT_TEST_COUNT = 1000

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 2321
DEFAULT_TIMEOUT_MS = 2000


def env_int(name: str, default: int) -> int:
    """Read an integer from the environment.

    Raises:
        ConfigurationError: if the variable is set but not an integer.
    """
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from None


def env_host() -> str:
    return os.environ.get("TSSBENCH_HOST") or DEFAULT_HOST


def env_port() -> int:
    return env_int("TSSBENCH_PORT", DEFAULT_PORT)


def env_timeout_ms() -> int:
    return env_int("TSSBENCH_TIMEOUT_MS", DEFAULT_TIMEOUT_MS)


def env_strict() -> bool:
    return os.environ.get("TSSBENCH_STRICT", "1").lower() not in ("0", "false", "no")


@dataclass(frozen=True)
class BenchmarkConfig:
    """Configuration for a benchmark run."""

    test_name: str = DEFAULT_TEST_NAME
    test_count: int = DEFAULT_TEST_COUNT

    # Device connection
    host: str = field(default_factory=env_host)
    port: int = field(default_factory=env_port)
    timeout_ms: int = field(default_factory=env_timeout_ms)
    strict: bool = field(default_factory=env_strict)

    def __post_init__(self) -> None:
        """Reject values that would make the run meaningless."""
        if not self.test_name:
            raise ConfigurationError("test name must not be empty")
        if self.test_count < 1:
            raise ConfigurationError(
                f"test count must be a positive integer, got {self.test_count}"
            )
        if not 0 < self.port < 65535:
            # The platform channel lives on port + 1.
            raise ConfigurationError(f"invalid simulator port: {self.port}")
        if self.timeout_ms < 1:
            raise ConfigurationError(
                f"timeout must be a positive number of milliseconds, got {self.timeout_ms}"
            )

    @property
    def timeout_s(self) -> float:
        """Socket timeout in seconds."""
        return self.timeout_ms / 1000
