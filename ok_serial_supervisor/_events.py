import functools
import logging
import threading
import typing

import msgspec

log = logging.getLogger("ok_serial_supervisor.events")

T = typing.TypeVar("T")


class ConnectionStatusChanged(msgspec.Struct, frozen=True):
    connected: bool


class MessageReceived(msgspec.Struct, frozen=True):
    data: bytes


class EventChannel(typing.Generic[T]):
    """Observer list; callbacks run on whichever thread fires the event"""

    def __init__(self, name: str):
        self._name = name
        self._lock = threading.Lock()
        self._callbacks: list[typing.Callable[[T], None]] = []

    def __repr__(self) -> str:
        return f"EventChannel({self._name!r})"

    def __len__(self) -> int:
        with self._lock:
            return len(self._callbacks)

    def subscribe(
        self, callback: typing.Callable[[T], None]
    ) -> typing.Callable[[], None]:
        """Adds 'callback' (once) and returns a function that removes it"""

        with self._lock:
            if callback not in self._callbacks:
                self._callbacks.append(callback)
        return functools.partial(self.unsubscribe, callback)

    def unsubscribe(self, callback: typing.Callable[[T], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def fire(self, event: T) -> None:
        with self._lock:
            callbacks = tuple(self._callbacks)
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                name = self._name
                log.exception("%s: %r failed on %r", name, callback, event)
