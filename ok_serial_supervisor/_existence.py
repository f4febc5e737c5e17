"""Policies for deciding whether a port identifier is worth opening"""

import logging
import pathlib
import re
import typeguard
from serial.tools import list_ports

log = logging.getLogger("ok_serial_supervisor.existence")

_URL_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.I)


@typeguard.typechecked
def port_path_exists(port: str) -> bool:
    """Absolute device paths must exist; URLs and names like COM3 pass"""

    if _URL_RE.match(port):
        return True
    path = pathlib.Path(port)
    if not path.is_absolute():
        return True
    if path.exists():
        return True
    log.debug("No device at %s", port)
    return False


@typeguard.typechecked
def any_port(port: str) -> bool:
    return True


@typeguard.typechecked
def listed_port(port: str) -> bool:
    """True if the system's serial port listing includes 'port'"""

    try:
        devices = {p.device for p in list_ports.comports()}
    except OSError:
        log.warning("Can't list serial ports", exc_info=True)
        return False
    return port in devices
