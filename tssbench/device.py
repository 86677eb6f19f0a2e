"""
Device session lifecycle.

``open_session`` brings a TPM to a known state (connect, power-cycle, startup)
and guarantees the transport is closed exactly once however the run ends.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Generator, Protocol

from tssbench.config import DEFAULT_HOST, DEFAULT_PORT, DEFAULT_TIMEOUT_MS

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """What the session needs from a device transport."""

    def connect(self) -> None: ...

    def power_cycle(self) -> None: ...

    def startup(self) -> Any: ...

    def close(self) -> None: ...


TransportFactory = Callable[[str, int, float, bool], Transport]


def mssim_transport(host: str, port: int, timeout_s: float, strict: bool) -> Transport:
    """Default transport: the TPM reference simulator through tpm2-pytss."""
    from tssbench.transport import MssimTransport

    return MssimTransport(host, port, timeout_s, strict=strict)


class DeviceSession:
    """A live, started TPM.

    Attributes:
        host: Simulator host.
        port: Simulator command port.
        timeout_ms: Socket timeout used for the transport.
        strict: Whether any unexpected startup response is fatal.
        tpm: The TPM command interface (an ``ESAPI`` context for mssim).
    """

    def __init__(
        self,
        transport: Transport,
        tpm: Any,
        host: str,
        port: int,
        timeout_ms: int,
        strict: bool,
    ):
        self.transport = transport
        self.tpm = tpm
        self.host = host
        self.port = port
        self.timeout_ms = timeout_ms
        self.strict = strict
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Close the transport. Later calls do nothing."""
        if self._closed:
            return
        self._closed = True
        self.transport.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<DeviceSession {self.host}:{self.port} {state}>"


@contextmanager
def open_session(
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    strict: bool = True,
    transport_factory: TransportFactory = mssim_transport,
) -> Generator[DeviceSession, None, None]:
    """Acquire a started device session for the duration of the block.

    Raises:
        DeviceConnectionError: the transport could not be opened.
        DeviceStartupError: power-cycle or TPM2_Startup failed.
    """
    transport = transport_factory(host, port, timeout_ms / 1000, strict)
    session: DeviceSession | None = None
    try:
        logger.info(f"Connecting to TPM at {host}:{port} (timeout {timeout_ms}ms)")
        transport.connect()

        logger.info("Power-cycling TPM")
        transport.power_cycle()

        logger.info("Starting up TPM (clear state)")
        tpm = transport.startup()

        session = DeviceSession(transport, tpm, host, port, timeout_ms, strict)
        yield session
    finally:
        if session is not None:
            session.close()
        else:
            transport.close()
        logger.info("TPM connection closed")
