from __future__ import annotations

import socket
import struct
import threading
from contextlib import closing

import pytest

from tssbench.errors import DeviceConnectionError, DeviceStartupError
from tssbench.registry import TestCase, TestRegistry


class FakeTransport:
    """Records the lifecycle calls the session makes against it."""

    def __init__(self, host, port, timeout_s, strict, fail_on=None):
        self.host = host
        self.port = port
        self.timeout_s = timeout_s
        self.strict = strict
        self.fail_on = fail_on
        self.calls: list[str] = []
        self.tpm = object()

    def _step(self, name, error_type):
        self.calls.append(name)
        if self.fail_on == name:
            raise error_type(f"{name} failed")

    def connect(self):
        self._step("connect", DeviceConnectionError)

    def power_cycle(self):
        self._step("power_cycle", DeviceStartupError)

    def startup(self):
        self._step("startup", DeviceStartupError)
        return self.tpm

    def close(self):
        self.calls.append("close")


class FakeTransportFactory:
    """Builds FakeTransports and keeps every one it built."""

    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.created: list[FakeTransport] = []

    def __call__(self, host, port, timeout_s, strict):
        transport = FakeTransport(host, port, timeout_s, strict, fail_on=self.fail_on)
        self.created.append(transport)
        return transport

    @property
    def connect_attempts(self) -> int:
        return sum(t.calls.count("connect") for t in self.created)

    @property
    def close_calls(self) -> int:
        return sum(t.calls.count("close") for t in self.created)


class CountingTest:
    """Test function that succeeds until ``fail_at`` (1-based), then fails.

    With ``raises`` set the failure is an exception instead of ``False``.
    """

    def __init__(self, fail_at: int | None = None, raises: Exception | None = None):
        self.fail_at = fail_at
        self.raises = raises
        self.calls = 0
        self.sessions = []

    def __call__(self, session) -> bool:
        self.calls += 1
        self.sessions.append(session)
        if self.fail_at is not None and self.calls == self.fail_at:
            if self.raises is not None:
                raise self.raises
            return False
        return True


@pytest.fixture
def transport_factory():
    return FakeTransportFactory()


@pytest.fixture
def counting_test():
    return CountingTest()


@pytest.fixture
def registry(counting_test):
    """Registry with a single always-passing test named 'counting' (alias 'cnt')."""
    return TestRegistry([TestCase("counting", counting_test, ("cnt",))])


def _free_port() -> int:
    with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def closed_port():
    """A local port with nothing listening on it."""
    return _free_port()


class PlatformServer:
    """Minimal stand-in for the simulator's platform port.

    Acknowledges each 4-byte signal with ``status`` and records the signals.
    """

    def __init__(self, status: int = 0):
        self.status = status
        self.signals: list[int] = []
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(1)
        self.port = self._sock.getsockname()[1]
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def _serve(self) -> None:
        conn, _ = self._sock.accept()
        with conn:
            while True:
                data = conn.recv(4)
                if len(data) < 4:
                    return
                self.signals.append(struct.unpack(">I", data)[0])
                conn.sendall(struct.pack(">I", self.status))

    def join(self, timeout: float = 2.0) -> None:
        self._thread.join(timeout)

    def close(self) -> None:
        self._sock.close()


@pytest.fixture
def platform_server():
    servers = []

    def make(status: int = 0) -> PlatformServer:
        server = PlatformServer(status)
        servers.append(server)
        return server

    yield make
    for server in servers:
        server.close()
