"""Exception hierarchy for ok_serial_supervisor"""


class SerialException(OSError):
    def __init__(
        self,
        message: str,
        port: str | None = None,
    ):
        super().__init__(f"{port}: {message}" if port else message)
        self.port = port


class SerialIoException(SerialException):
    pass


class SerialIoClosed(SerialIoException):
    pass


class SerialOpenException(SerialException):
    pass


class SerialOpenBusy(SerialOpenException):
    pass


class SerialPortMissing(SerialOpenException):
    """The existence check rejected the port, so no open was attempted"""


class SerialShutdownTimeout(SerialException):
    """A background thread outlived its join window and was abandoned"""

    def __init__(self, thread_name: str, timeout: float, port: str | None):
        message = f"{thread_name} still running after {timeout:.1f}s"
        super().__init__(f"{message}, abandoning it", port)
        self.thread_name = thread_name
        self.timeout = timeout
