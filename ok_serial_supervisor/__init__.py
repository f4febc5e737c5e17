"""
Self-healing serial port connection (PySerial wrapper) that keeps one
port open, delivers incoming bytes as messages, and reconnects on errors.
"""

from beartype.claw import beartype_this_package as _beartype_me

# ruff: noqa: E402
_beartype_me()

from ok_serial_supervisor._config import (
    DataBits,
    Parity,
    PortConfig,
    StopBits,
    SupervisorOptions,
)

from ok_serial_supervisor._events import (
    ConnectionStatusChanged,
    EventChannel,
    MessageReceived,
)

from ok_serial_supervisor._exceptions import (
    SerialException,
    SerialIoClosed,
    SerialIoException,
    SerialOpenBusy,
    SerialOpenException,
    SerialPortMissing,
    SerialShutdownTimeout,
)

from ok_serial_supervisor._existence import (
    any_port,
    listed_port,
    port_path_exists,
)

from ok_serial_supervisor._port import (
    PortError,
    PortErrorKind,
    PortHandle,
    SerialPortHandle,
)

from ok_serial_supervisor._state import ConnectionState
from ok_serial_supervisor._supervisor import SerialSupervisor

__all__ = [n for n in dir() if not n.startswith("_")]
