import contextlib
import logging
import threading
import typing

import pydantic

from ok_serial_supervisor import _config
from ok_serial_supervisor import _events
from ok_serial_supervisor import _exceptions
from ok_serial_supervisor import _port
from ok_serial_supervisor import _state

log = logging.getLogger("ok_serial_supervisor.supervisor")
data_log = logging.getLogger(log.name + ".data")

PortFactory = typing.Callable[[_config.PortConfig], _port.PortHandle]


class _Worker(typing.NamedTuple):
    thread: threading.Thread
    stop: threading.Event


class SerialSupervisor(contextlib.AbstractContextManager):
    """
    Keeps one serial port open, reconnecting after failures.

    connect() opens the port once and starts a watcher thread that reopens
    it (after a cooldown) whenever an I/O error is flagged. While the port
    is open a reader thread polls it and fires message_received with
    whatever bytes arrived since the last poll. status_changed fires on
    every open and close of the port.
    """

    def __init__(
        self,
        config: _config.PortConfig | str,
        opts: _config.SupervisorOptions = _config.SupervisorOptions(),
        *,
        port_factory: PortFactory = _port.SerialPortHandle,
    ):
        if isinstance(config, str):
            config = _config.PortConfig(port=config)

        self._config = config
        self._opts = opts
        self._port_factory = port_factory

        self.status_changed = _events.EventChannel[
            _events.ConnectionStatusChanged
        ]("status_changed")
        self.message_received = _events.EventChannel[
            _events.MessageReceived
        ]("message_received")

        self._state = _state.LinkState()
        self._lifecycle = threading.RLock()
        self._access = threading.RLock()
        self._config_lock = threading.Lock()
        self._port: _port.PortHandle | None = None
        self._reader: _Worker | None = None
        self._watcher: _Worker | None = None

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.disconnect()

    def __repr__(self) -> str:
        return f"SerialSupervisor({self._config.port!r})"

    @property
    def config(self) -> _config.PortConfig:
        return self._config

    @property
    def is_connected(self) -> bool:
        return self._port is not None and self._state.connected

    @property
    def state(self) -> _state.ConnectionState:
        return self._state.state

    def connect(self) -> bool:
        if self._state.disconnecting:
            log.debug("%s: Disconnect in progress, not connecting", self)
            return False

        with self._lifecycle:
            self._teardown()
            self._state.transition(watching=True)
            self._open()
            stop = threading.Event()
            name = f"{self._config.port} watcher"
            thread = threading.Thread(
                target=self._watchloop, args=(stop,), name=name, daemon=True
            )
            self._watcher = _Worker(thread, stop)
            thread.start()

        return self.is_connected

    def disconnect(self) -> None:
        if self._state.disconnecting:
            return

        with self._lifecycle:
            log.debug("Disconnecting %s", self._config.port)
            self._teardown()

    def wait_connected(self, timeout: float | int | None = None) -> bool:
        return self._state.wait_for(lambda: self.is_connected, timeout)

    def wait_disconnected(self, timeout: float | int | None = None) -> bool:
        return self._state.wait_for(lambda: not self.is_connected, timeout)

    @pydantic.validate_call
    def set_port(self, config: _config.PortConfig | str) -> None:
        if isinstance(config, str):
            config = self._config.model_copy(update={"port": config})
        with self._config_lock:
            changed = config.port != self._config.port
            self._config = config
            if changed:
                log.info("Port changed to %s, reconnecting", config.port)
                self._state.transition(io_error=True)

    @pydantic.validate_call
    def send_message(self, data: bytes) -> bool:
        port = self._port
        if port is None or not self.is_connected:
            data_log.debug("Not connected, dropping %db", len(data))
            return False

        try:
            port.write(data)
        except OSError as exc:
            log.error("Write to %s failed (%s)", self._config.port, exc)
            self._state.transition(io_error=True)
            return False

        data_log.debug("Wrote %db: %s", len(data), data.hex(" "))
        return True

    def _teardown(self) -> None:
        """Must be run with self._lifecycle held."""

        self._state.transition(disconnecting=True)
        try:
            watcher, self._watcher = self._watcher, None
            if watcher:
                watcher.stop.set()
            self._close()
            if watcher:
                self._join(watcher)
        finally:
            self._state.transition(disconnecting=False, watching=False)

    def _open(self, stop: threading.Event | None = None) -> bool:
        with self._access:
            self._close()
            if stop and stop.is_set():
                return False

            config = self._config
            try:
                if not self._opts.port_exists(config.port):
                    message = "Serial port not found"
                    raise _exceptions.SerialPortMissing(message, config.port)
                port = self._port_factory(config)
                port.errors.subscribe(self._on_port_error)
                self._port = port
                port.open()
            except Exception as exc:
                trace = not isinstance(exc, (OSError, ValueError))
                log.warning(
                    "Can't open %s (%s)", config.port, exc, exc_info=trace
                )
                self._close()
                return False

            with self._config_lock:
                stale = self._config.port != config.port
                if not stale:
                    self._state.transition(attached=True, io_error=False)
            if stale:
                log.info("%s replaced while opening", config.port)
                self._close()
                return False

            reader_stop = threading.Event()
            thread = threading.Thread(
                target=self._readloop,
                args=(port, reader_stop),
                name=f"{config.port} reader",
                daemon=True,
            )
            self._reader = _Worker(thread, reader_stop)
            thread.start()

            log.info("Connected to %s", config.port)
            self.status_changed.fire(_events.ConnectionStatusChanged(True))
            return True

    def _close(self) -> None:
        with self._access:
            port, self._port = self._port, None
            reader, self._reader = self._reader, None
            if reader:
                reader.stop.set()
                if port:
                    port.cancel_read()
                self._join(reader)

            if port:
                port.errors.unsubscribe(self._on_port_error)
                was_open = self._state.attached
                try:
                    port.close()
                except OSError:
                    log.warning("Can't close %s", port, exc_info=True)
                if was_open:
                    self._state.transition(attached=False, io_error=True)
                    log.info("Disconnected from %s", self._config.port)
                    event = _events.ConnectionStatusChanged(False)
                    self.status_changed.fire(event)

            self._state.transition(attached=False, io_error=True)

    def _join(self, worker: _Worker) -> None:
        if worker.thread is threading.current_thread():
            return
        worker.thread.join(timeout=self._opts.join_timeout)
        if worker.thread.is_alive():
            exc = _exceptions.SerialShutdownTimeout(
                worker.thread.name, self._opts.join_timeout, self._config.port
            )
            log.error("%s", exc)

    def _on_port_error(self, error: _port.PortError) -> None:
        kind, detail = error.kind.name, error.detail
        log.warning("%s: %s error (%s)", error.port, kind, detail)

    def _readloop(self, port: _port.PortHandle, stop: threading.Event) -> None:
        log.debug("Starting thread")
        while not stop.is_set() and self._state.connected:
            try:
                waiting = port.bytes_available()
                if waiting <= 0:
                    stop.wait(self._opts.poll_interval)
                    continue

                message, filled = bytearray(waiting), 0
                while filled < waiting and not stop.is_set():
                    filled += port.read(message, filled, waiting - filled)
            except OSError as exc:
                log.warning("Read from %s failed (%s)", self._config.port, exc)
                self._state.transition(io_error=True)
                stop.wait(self._opts.error_backoff)
                continue

            if stop.is_set():
                data_log.debug("Dropped %d/%db read on close", filled, waiting)
                break

            data_log.debug("Read %db: %s", waiting, message.hex(" "))
            self.message_received.fire(_events.MessageReceived(bytes(message)))

        log.debug("Stopping thread")

    def _watchloop(self, stop: threading.Event) -> None:
        log.debug("Starting thread")
        while not stop.is_set():
            if self._state.io_error:
                try:
                    self._close()
                    if not stop.wait(self._opts.reconnect_cooldown):
                        log.debug("Reconnecting %s", self._config.port)
                        self._open(stop)
                except Exception:
                    log.exception("Reconnecting %s failed", self._config.port)
            stop.wait(self._opts.watch_interval)
        log.debug("Stopping thread")
