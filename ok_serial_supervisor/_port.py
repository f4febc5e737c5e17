import enum
import errno
import logging
import typing

import msgspec
import serial

from ok_serial_supervisor import _config
from ok_serial_supervisor import _events
from ok_serial_supervisor import _exceptions

log = logging.getLogger("ok_serial_supervisor.port")

_DISCONNECT_ERRNOS = (errno.EIO, errno.ENXIO, errno.ENODEV)


class PortErrorKind(enum.Enum):
    IO = "io"
    TIMEOUT = "timeout"
    DISCONNECTED = "disconnected"
    CLOSED = "closed"


class PortError(msgspec.Struct, frozen=True):
    port: str
    kind: PortErrorKind
    detail: str


@typing.runtime_checkable
class PortHandle(typing.Protocol):
    """What the supervisor needs from a byte-stream driver"""

    errors: _events.EventChannel[PortError]

    @property
    def is_open(self) -> bool: ...

    def open(self) -> None: ...

    def close(self) -> None: ...

    def bytes_available(self) -> int: ...

    def read(self, buffer: bytearray, offset: int, size: int) -> int: ...

    def write(self, data: bytes) -> None: ...

    def cancel_read(self) -> None: ...


class SerialPortHandle:
    """PortHandle backed by pyserial (device paths, COM names, or URLs)"""

    def __init__(self, config: _config.PortConfig):
        self.config = config
        self.errors = _events.EventChannel[PortError](f"{config.port} errors")
        self._pyserial = serial.serial_for_url(
            config.port, do_not_open=True, **config.pyserial_kwargs()
        )

    def __repr__(self) -> str:
        return f"SerialPortHandle({self.config.port!r})"

    @property
    def is_open(self) -> bool:
        return bool(self._pyserial.is_open)

    def open(self) -> None:
        port = self.config.port
        log.debug("Opening %s (%s)", port, self.config)
        try:
            self._pyserial.open()
        except OSError as ex:
            if ex.errno == errno.EBUSY:
                message = "Serial port busy (EBUSY)"
                raise _exceptions.SerialOpenBusy(message, port) from ex
            else:
                message = "Serial port open error"
                raise _exceptions.SerialOpenException(message, port) from ex

    def close(self) -> None:
        if self._pyserial.is_open:
            log.debug("Closing %s", self.config.port)
        self._pyserial.close()

    def bytes_available(self) -> int:
        self._check_open()
        try:
            return self._pyserial.in_waiting
        except OSError as ex:
            raise self._io_failure("Serial status error", ex) from ex

    def read(self, buffer: bytearray, offset: int, size: int) -> int:
        self._check_open()
        try:
            incoming = self._pyserial.read(size)
        except OSError as ex:
            raise self._io_failure("Serial read error", ex) from ex
        buffer[offset : offset + len(incoming)] = incoming
        return len(incoming)

    def write(self, data: bytes) -> None:
        self._check_open()
        try:
            self._pyserial.write(data)
            self._pyserial.flush()
        except OSError as ex:
            raise self._io_failure("Serial write error", ex) from ex

    def cancel_read(self) -> None:
        if self._pyserial.is_open and hasattr(self._pyserial, "cancel_read"):
            try:
                self._pyserial.cancel_read()
            except OSError:
                port = self.config.port
                log.warning("Can't cancel %s read", port, exc_info=True)

    def _check_open(self) -> None:
        if not self._pyserial.is_open:
            port = self.config.port
            self.errors.fire(PortError(port, PortErrorKind.CLOSED, "not open"))
            raise _exceptions.SerialIoClosed("Serial port is not open", port)

    def _io_failure(
        self, message: str, ex: OSError
    ) -> _exceptions.SerialIoException:
        if isinstance(ex, serial.SerialTimeoutException):
            kind = PortErrorKind.TIMEOUT
        elif ex.errno in _DISCONNECT_ERRNOS or "disconnected" in str(ex):
            kind = PortErrorKind.DISCONNECTED
        else:
            kind = PortErrorKind.IO
        self.errors.fire(PortError(self.config.port, kind, str(ex)))
        return _exceptions.SerialIoException(message, self.config.port)
