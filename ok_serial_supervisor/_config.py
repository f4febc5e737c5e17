import enum
import typing

import pydantic
import serial

from ok_serial_supervisor import _existence


class StopBits(enum.Enum):
    ONE = serial.STOPBITS_ONE
    ONE_POINT_FIVE = serial.STOPBITS_ONE_POINT_FIVE
    TWO = serial.STOPBITS_TWO


class Parity(enum.Enum):
    NONE = serial.PARITY_NONE
    ODD = serial.PARITY_ODD
    EVEN = serial.PARITY_EVEN
    MARK = serial.PARITY_MARK
    SPACE = serial.PARITY_SPACE


class DataBits(enum.Enum):
    FIVE = serial.FIVEBITS
    SIX = serial.SIXBITS
    SEVEN = serial.SEVENBITS
    EIGHT = serial.EIGHTBITS


class PortConfig(pydantic.BaseModel):
    """Where and how to open the serial line; applied at the next open"""

    model_config = pydantic.ConfigDict(frozen=True)

    port: str
    baud: pydantic.PositiveInt = 115200
    stop_bits: StopBits = StopBits.ONE
    parity: Parity = Parity.NONE
    data_bits: DataBits = DataBits.EIGHT
    read_timeout: pydantic.NonNegativeFloat = 0.1
    write_timeout: pydantic.NonNegativeFloat | None = 1.0

    def pyserial_kwargs(self) -> dict[str, typing.Any]:
        return dict(
            baudrate=self.baud,
            bytesize=self.data_bits.value,
            parity=self.parity.value,
            stopbits=self.stop_bits.value,
            timeout=self.read_timeout,
            write_timeout=self.write_timeout,
        )


class SupervisorOptions(pydantic.BaseModel):
    """Loop timing (seconds) and the port existence policy"""

    model_config = pydantic.ConfigDict(frozen=True)

    poll_interval: pydantic.NonNegativeFloat = 0.1
    error_backoff: pydantic.NonNegativeFloat = 1.0
    reconnect_cooldown: pydantic.NonNegativeFloat = 1.0
    watch_interval: pydantic.NonNegativeFloat = 1.0
    join_timeout: pydantic.NonNegativeFloat = 5.0
    port_exists: typing.Callable[[str], bool] = _existence.port_path_exists
