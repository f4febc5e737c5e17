import enum
import logging
import threading
import typing

from ok_serial_supervisor import _timeout_math

log = logging.getLogger("ok_serial_supervisor.state")


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERRORING = "erroring"


class LinkState:
    """
    Flags shared by caller threads, the reader loop and the watcher loop.

    Writes go through transition() under the monitor; the loops read the
    flags without locking and tolerate seeing a change one iteration late.
    """

    def __init__(self) -> None:
        self._monitor = threading.Condition()
        self._attached = False
        self._io_error = True
        self._disconnecting = False
        self._watching = False

    def __repr__(self) -> str:
        return f"LinkState({self.state.name})"

    @property
    def connected(self) -> bool:
        attached, error = self._attached, self._io_error
        return attached and not error and not self._disconnecting

    @property
    def attached(self) -> bool:
        return self._attached

    @property
    def io_error(self) -> bool:
        return self._io_error

    @property
    def disconnecting(self) -> bool:
        return self._disconnecting

    @property
    def state(self) -> ConnectionState:
        if self.connected:
            return ConnectionState.CONNECTED
        elif self._disconnecting or not self._watching:
            return ConnectionState.DISCONNECTED
        elif self._attached:
            return ConnectionState.ERRORING
        else:
            return ConnectionState.CONNECTING

    def transition(
        self,
        *,
        attached: bool | None = None,
        io_error: bool | None = None,
        disconnecting: bool | None = None,
        watching: bool | None = None,
    ) -> ConnectionState:
        with self._monitor:
            before = self.state
            if attached is not None:
                self._attached = attached
            if io_error is not None:
                self._io_error = io_error
            if disconnecting is not None:
                self._disconnecting = disconnecting
            if watching is not None:
                self._watching = watching
            after = self.state
            if after != before:
                log.debug("%s -> %s", before.name, after.name)
            self._monitor.notify_all()
            return after

    def wait_for(
        self,
        want: typing.Callable[[], bool],
        timeout: float | int | None = None,
    ) -> bool:
        """Blocks until want() is true (-> True) or timeout (-> False)"""

        deadline = _timeout_math.to_deadline(timeout)
        with self._monitor:
            while not want():
                wait = _timeout_math.from_deadline(deadline)
                if wait <= 0:
                    return False
                self._monitor.wait(timeout=wait)
            return True
