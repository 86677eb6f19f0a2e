"""
Transport to the Microsoft TPM 2.0 reference simulator.

The simulator listens on two TCP ports: the command port carries TPM commands
and is driven through the TSS (``TCTILdr("mssim", ...)`` + ``ESAPI``); the
platform port (command port + 1) takes out-of-band signals such as power on/off.
"""

from __future__ import annotations

import logging
import socket
import struct

from tpm2_pytss import ESAPI, TCTILdr, TPM2_SU, TSS2_Exception
from tpm2_pytss.constants import TPM2_RC

from tssbench.errors import DeviceConnectionError, DeviceStartupError

logger = logging.getLogger(__name__)

# Platform channel signals
SIGNAL_POWER_ON = 1
SIGNAL_POWER_OFF = 2
SIGNAL_NV_ON = 11

POWER_CYCLE_SEQUENCE = (SIGNAL_POWER_OFF, SIGNAL_POWER_ON, SIGNAL_NV_ON)


def _recv_exact(sock: socket.socket, size: int) -> bytes:
    data = b""
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            raise ConnectionError("platform channel closed by the simulator")
        data += chunk
    return data


class MssimTransport:
    """Connection to an mssim-compatible simulator.

    Usage:
        transport = MssimTransport("127.0.0.1", 2321, timeout_s=2.0)
        transport.connect()
        transport.power_cycle()
        tpm = transport.startup()
        ...
        transport.close()
    """

    def __init__(self, host: str, port: int, timeout_s: float, strict: bool = True):
        self.host = host
        self.port = port
        self.timeout_s = timeout_s
        self.strict = strict
        self._platform: socket.socket | None = None
        self._tcti: TCTILdr | None = None
        self._esapi: ESAPI | None = None

    @property
    def platform_port(self) -> int:
        return self.port + 1

    def connect(self) -> None:
        """Open the platform channel with a bounded timeout."""
        logger.debug(f"Connecting to simulator platform port {self.host}:{self.platform_port}")
        try:
            self._platform = socket.create_connection(
                (self.host, self.platform_port), timeout=self.timeout_s
            )
        except OSError as e:
            raise DeviceConnectionError(
                f"could not connect to the simulator at {self.host}:{self.platform_port}: {e}"
            ) from e
        self._platform.settimeout(self.timeout_s)

    def _signal(self, signal: int) -> None:
        if self._platform is None:
            raise DeviceStartupError("platform channel is not open")
        self._platform.sendall(struct.pack(">I", signal))
        (status,) = struct.unpack(">I", _recv_exact(self._platform, 4))
        if status != 0:
            raise DeviceStartupError(f"simulator rejected platform signal {signal} (status {status})")

    def power_cycle(self) -> None:
        """Reset the simulator's volatile state."""
        if self._platform is None:
            raise DeviceStartupError("cannot power-cycle: transport is not connected")
        try:
            for signal in POWER_CYCLE_SEQUENCE:
                self._signal(signal)
        except OSError as e:
            raise DeviceStartupError(f"power-cycle failed: {e}") from e
        finally:
            # The simulator serves one platform client at a time and the TCTI
            # opens its own.
            self._close_platform()

    def startup(self) -> ESAPI:
        """Open the command channel and send TPM2_Startup(CLEAR).

        Returns:
            The ESAPI context used to issue commands for the rest of the run.
        """
        conf = f"host={self.host},port={self.port}"
        try:
            self._tcti = TCTILdr("mssim", conf)
            self._esapi = ESAPI(self._tcti)
        except TSS2_Exception as e:
            raise DeviceConnectionError(f"could not open TCTI mssim:{conf}: {e}") from e

        try:
            self._esapi.startup(TPM2_SU.CLEAR)
        except TSS2_Exception as e:
            if not self.strict and e.rc == TPM2_RC.INITIALIZE:
                logger.warning("TPM was already started; continuing")
            else:
                raise DeviceStartupError(f"TPM2_Startup failed: {e}") from e
        return self._esapi

    def _close_platform(self) -> None:
        if self._platform is not None:
            self._platform.close()
            self._platform = None

    def close(self) -> None:
        """Release the ESAPI context, the TCTI and any open socket."""
        esapi, tcti = self._esapi, self._tcti
        self._esapi = None
        self._tcti = None
        try:
            if esapi is not None:
                esapi.close()
        finally:
            try:
                if tcti is not None:
                    tcti.close()
            finally:
                self._close_platform()
