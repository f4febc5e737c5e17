import contextlib
import io
import ok_logging_setup
import os
import pty
import pytest
import threading
import typing

import ok_serial_supervisor
from ok_serial_supervisor import _exceptions

ok_logging_setup.install(
    {
        "OK_LOGGING_LEVEL": "ok_serial_supervisor=DEBUG,WARNING",
        "OK_LOGGING_OUTPUT": "stdout",
    }
)

FAST_OPTIONS = ok_serial_supervisor.SupervisorOptions(
    poll_interval=0.01,
    error_backoff=0.05,
    reconnect_cooldown=0.05,
    watch_interval=0.02,
    join_timeout=2.0,
    port_exists=ok_serial_supervisor.any_port,
)


class PseudoTtySerial(typing.NamedTuple):
    path: str
    control: io.FileIO
    simulated: io.FileIO


@pytest.fixture
def pty_serial():
    with contextlib.ExitStack() as cleanup:
        ctrl_fd, sim_fd = pty.openpty()
        path = os.ttyname(sim_fd)
        ctrl = cleanup.enter_context(os.fdopen(ctrl_fd, "r+b", buffering=0))
        sim = cleanup.enter_context(os.fdopen(sim_fd, "r+b", buffering=0))
        yield PseudoTtySerial(path=path, control=ctrl, simulated=sim)


class FakeLink:
    """Scripted device behind FakePort handles (shared across reopens)"""

    def __init__(self):
        self.lock = threading.Lock()
        self.opened: list[str] = []
        self.handles: list["FakePort"] = []
        self.open_failures = 0
        self.open_error: Exception | None = None
        self.open_gate: threading.Event | None = None
        self.read_faults = 0
        self.write_faults = 0
        self.max_chunk = 0
        self.zero_reads = 0
        self.gate: threading.Event | None = None
        self.chunks: list[bytes] = []
        self.written = bytearray()

    def feed(self, data: bytes) -> None:
        """Makes 'data' arrive as one poll cycle's worth of bytes"""

        with self.lock:
            self.chunks.append(data)

    def pending(self) -> int:
        with self.lock:
            return sum(len(c) for c in self.chunks)

    def factory(self, config: ok_serial_supervisor.PortConfig) -> "FakePort":
        handle = FakePort(self, config)
        self.handles.append(handle)
        return handle


class FakePort:
    def __init__(self, link: FakeLink, config):
        self.link = link
        self.config = config
        self.errors = ok_serial_supervisor.EventChannel("fake errors")
        self.is_open = False
        self.cancels = 0

    def open(self) -> None:
        if self.link.open_gate:
            self.link.open_gate.wait()
        with self.link.lock:
            self.link.opened.append(self.config.port)
            if self.link.open_error:
                error, self.link.open_error = self.link.open_error, None
                raise error
            if self.link.open_failures > 0:
                self.link.open_failures -= 1
                message, port = "Fake open failure", self.config.port
                raise _exceptions.SerialOpenException(message, port)
        self.is_open = True

    def close(self) -> None:
        self.is_open = False

    def bytes_available(self) -> int:
        self._check_fault()
        with self.link.lock:
            return len(self.link.chunks[0]) if self.link.chunks else 0

    def read(self, buffer: bytearray, offset: int, size: int) -> int:
        self._check_fault()
        if self.link.gate:
            self.link.gate.wait()
        with self.link.lock:
            if not self.link.chunks:
                return 0
            if self.link.zero_reads > 0:
                self.link.zero_reads -= 1
                return 0
            limit = self.link.max_chunk or size
            data = self.link.chunks[0][: min(size, limit)]
            self.link.chunks[0] = self.link.chunks[0][len(data) :]
            if not self.link.chunks[0]:
                self.link.chunks.pop(0)
        buffer[offset : offset + len(data)] = data
        return len(data)

    def write(self, data: bytes) -> None:
        with self.link.lock:
            if self.link.write_faults > 0:
                self.link.write_faults -= 1
                message, port = "Fake write failure", self.config.port
                raise _exceptions.SerialIoException(message, port)
            self.link.written.extend(data)

    def cancel_read(self) -> None:
        self.cancels += 1

    def _check_fault(self) -> None:
        with self.link.lock:
            if self.link.read_faults > 0:
                self.link.read_faults -= 1
                message, port = "Fake read failure", self.config.port
                raise _exceptions.SerialIoException(message, port)


class Recorder:
    """Collects events fired on a channel, for waiting and asserting"""

    def __init__(self):
        self.events: list = []
        self.changed = threading.Condition()

    def __call__(self, event) -> None:
        with self.changed:
            self.events.append(event)
            self.changed.notify_all()

    def wait_count(self, count: int, timeout: float = 5.0) -> bool:
        with self.changed:
            return self.changed.wait_for(
                lambda: len(self.events) >= count, timeout=timeout
            )

    @property
    def connected(self) -> list[bool]:
        return [e.connected for e in self.events]

    @property
    def data(self) -> bytes:
        return b"".join(e.data for e in self.events)


@pytest.fixture
def fast_options():
    return FAST_OPTIONS


@pytest.fixture
def fake_link():
    return FakeLink()


@pytest.fixture
def supervise(fake_link):
    """Builds SerialSupervisors on the fake link, disconnecting at exit"""

    with contextlib.ExitStack() as cleanup:

        def make(port: str = "COM-A", opts=FAST_OPTIONS):
            supervisor = ok_serial_supervisor.SerialSupervisor(
                port, opts, port_factory=fake_link.factory
            )
            status, messages = Recorder(), Recorder()
            supervisor.status_changed.subscribe(status)
            supervisor.message_received.subscribe(messages)
            cleanup.enter_context(supervisor)
            return supervisor, status, messages

        yield make
