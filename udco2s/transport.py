"""
UD-CO2S Serial Transport

pyserial-backed transport provider: port enumeration, open/close, writes,
and a polled async byte stream.
"""

import logging
from dataclasses import dataclass, replace
from typing import List, Optional

import anyio
import serial
import serial.tools.list_ports

from .connection import PortDescriptor, describe_port
from .errors import TransportClosedError, TransportIOError, TransportOpenError

logger = logging.getLogger(__name__)

DEFAULT_BAUDRATE = 115200
POLL_INTERVAL = 0.01  # 10ms between in_waiting checks
WRITE_TIMEOUT = 1.0


@dataclass(frozen=True)
class PortConfig:
    """Serial parameters. The sensor only talks 115200 8N1."""
    path: str = ""
    baudrate: int = DEFAULT_BAUDRATE
    bytesize: int = serial.EIGHTBITS
    stopbits: float = serial.STOPBITS_ONE
    parity: str = serial.PARITY_NONE

    def with_path(self, path: str) -> "PortConfig":
        return replace(self, path=path)


class SerialTransport:
    """
    One serial port handle.

    ``receive()`` polls ``in_waiting`` and yields to the event loop between
    polls, so reading never blocks other tasks.
    """

    def __init__(self, config: PortConfig, poll_interval: float = POLL_INTERVAL):
        """
        Initialize an unopened transport.

        Args:
            config: Port path and serial parameters
            poll_interval: Sleep between read polls in seconds
        """
        self.config = config
        self.poll_interval = poll_interval
        self.serial: Optional[serial.Serial] = None

    @property
    def path(self) -> str:
        return self.config.path

    async def open(self):
        """
        Open the port.

        Raises:
            TransportOpenError: Port missing, busy, or not permitted
        """
        if self.serial is not None:
            raise TransportOpenError(f"{self.path} is open already")

        try:
            self.serial = serial.Serial(
                port=self.config.path,
                baudrate=self.config.baudrate,
                bytesize=self.config.bytesize,
                stopbits=self.config.stopbits,
                parity=self.config.parity,
                timeout=0,
                write_timeout=WRITE_TIMEOUT,
            )
        except (serial.SerialException, OSError, ValueError) as e:
            self.serial = None
            raise TransportOpenError(str(e), hint="Is the port used by another program?") from None

        logger.info(f"Opened {self.path} at {self.config.baudrate} baud")

    async def write(self, data: bytes) -> int:
        """Write and flush ``data``. Returns the number of bytes written."""
        if self.serial is None:
            raise TransportClosedError("write while transport not open")

        try:
            written = self.serial.write(data)
            self.serial.flush()
        except (serial.SerialException, OSError) as e:
            raise TransportIOError(f"write to {self.path} failed: {e}") from None

        logger.debug(f"Wrote {data!r} to {self.path}")
        return written

    async def receive(self) -> bytes:
        """
        Wait for the next chunk of bytes.

        Raises:
            TransportIOError: The device went away (unplugged, I/O error)
            TransportClosedError: The transport was closed
        """
        while True:
            ser = self.serial
            if ser is None:
                raise TransportClosedError(f"{self.path} is closed")

            try:
                waiting = ser.in_waiting
                if waiting > 0:
                    data = ser.read(waiting)
                    if data:
                        return data
            except (serial.SerialException, OSError) as e:
                raise TransportIOError(f"read from {self.path} failed: {e}") from None

            await anyio.sleep(self.poll_interval)

    async def close(self):
        """Close the port. The handle is released even if closing fails."""
        ser = self.serial
        if ser is None:
            return

        self.serial = None
        try:
            ser.close()
        except (serial.SerialException, OSError) as e:
            raise TransportIOError(f"close of {self.path} failed: {e}") from None

        logger.info(f"Closed {self.path}")


class SerialPortProvider:
    """Creates transports and enumerates the serial ports of this host."""

    async def list_ports(self) -> List[PortDescriptor]:
        """
        Enumerate serial ports.

        Enumeration failures are logged and reported as no ports, so a
        caller can simply retry later.
        """
        try:
            available_ports = serial.tools.list_ports.comports()
        except (serial.SerialException, OSError) as e:
            logger.error(f"Port enumeration failed: {e}")
            return []

        logger.debug(f"Found {len(available_ports)} total serial ports")
        return [describe_port(port) for port in available_ports]

    def create(self, config: PortConfig) -> SerialTransport:
        return SerialTransport(config)
