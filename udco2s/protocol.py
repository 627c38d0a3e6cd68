"""
UD-CO2S Protocol Implementation

Line-oriented ASCII protocol spoken by the I/O DATA USB-UD-CO2S sensor.

Host -> device:
- ``STA\\r\\n`` starts streaming measurements
- ``STP\\r\\n`` stops streaming

Device -> host:
- ``OK STA\\r\\n`` acknowledges the start command
- ``CO2=606,HUM=46.5,TMP=29.8\\r\\n`` one telemetry line per measurement

Values are kept as the text the device sent; no numeric conversion is done
here, so the caller sees the exact device formatting.
"""

import logging
import re
from dataclasses import dataclass
from typing import ClassVar, List, Union

from .errors import ErrorKind, LineDecodeError

logger = logging.getLogger(__name__)

LINE_DELIMITER = b"\r\n"
ACK_LINE = "OK STA"
MEASUREMENT_FIELDS = 3
MAX_LINE_LENGTH = 256  # telemetry lines are ~30 bytes

START_COMMAND = bytes([0x53, 0x54, 0x41, 0x0D, 0x0A])  # 'STA'
STOP_COMMAND = bytes([0x53, 0x54, 0x50, 0x0D, 0x0A])   # 'STP'

_LINE_BREAK = re.compile(r"\r?\n")


# ---------------------------------------------------------------------------
# Readings
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Acknowledged:
    """Device accepted the start command."""
    state: ClassVar[str] = "OK"


@dataclass(frozen=True)
class Measurement:
    """One telemetry line, values as received."""
    co2: str
    humidity: str
    temperature: str

    state: ClassVar[str] = "connected"


@dataclass(frozen=True)
class ConnectionClosed:
    """
    Port closed.

    ``expected`` is True when the close was requested with ``stop()`` and
    False when the transport went away on its own (e.g. USB unplug).
    """
    expected: bool = True

    @property
    def state(self) -> str:
        return "info" if self.expected else "warning"


@dataclass(frozen=True)
class Error:
    """Anything that went wrong, reported instead of raised."""
    message: str
    kind: ErrorKind = ErrorKind.LINE_DECODE_FAILURE

    state: ClassVar[str] = "error"


SensorReading = Union[Acknowledged, Measurement, ConnectionClosed, Error]


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------

def encode_start() -> bytes:
    """Command that makes the device begin streaming measurements."""
    return START_COMMAND


def encode_stop() -> bytes:
    """Command that makes the device stop streaming."""
    return STOP_COMMAND


def decode_line(data: Union[bytes, bytearray, str]) -> SensorReading:
    """
    Parse one line received from the device.

    Only the first line is considered if ``data`` holds several. Fields of a
    telemetry line are taken by position (CO2, HUM, TMP); the key names are
    not checked.
    Empty values pass through: ``CO2=,HUM=,TMP=`` gives a Measurement of
    three empty strings.

    Args:
        data: Raw line, with or without the trailing CRLF

    Returns:
        Acknowledged, Measurement, or Error if the line could not be parsed.
        Never raises.
    """
    try:
        if isinstance(data, (bytes, bytearray)):
            text = bytes(data).decode("ascii")
        elif isinstance(data, str):
            text = data
        else:
            raise LineDecodeError(f"unsupported line type: {type(data).__name__}")

        line = _LINE_BREAK.split(text, 1)[0]
        if not line:
            raise LineDecodeError("line is empty")

        if line == ACK_LINE:
            return Acknowledged()

        fields = line.split(",")
        if len(fields) != MEASUREMENT_FIELDS:
            raise LineDecodeError(
                f"expected {MEASUREMENT_FIELDS} fields, got {len(fields)}: {line!r}"
            )

        values = []
        for field in fields:
            parts = field.split("=")
            if len(parts) < 2:
                raise LineDecodeError(f"field without value: {field!r}")
            values.append(parts[1])

        return Measurement(co2=values[0], humidity=values[1], temperature=values[2])

    except UnicodeDecodeError as e:
        logger.debug(f"Line is not ASCII: {data!r}")
        return Error(f"line is not ASCII text: {e}", ErrorKind.LINE_DECODE_FAILURE)
    except LineDecodeError as e:
        logger.debug(f"Line decode failed: {e}")
        return Error(e.message, e.kind)


class LineFramer:
    """
    Incremental CRLF line splitter.

    Feed raw chunks as they arrive from the port; complete lines come out
    without the delimiter. A partial line stays buffered until its
    delimiter arrives.
    """

    def __init__(self, delimiter: bytes = LINE_DELIMITER, max_line_length: int = MAX_LINE_LENGTH):
        self.delimiter = delimiter
        self.max_line_length = max_line_length
        self._buffer = bytearray()

    def feed(self, data: bytes) -> List[bytes]:
        """
        Add a chunk and return the lines it completed.

        Args:
            data: Bytes read from the port

        Returns:
            Complete lines, oldest first
        """
        self._buffer.extend(data)

        lines = []
        while True:
            index = self._buffer.find(self.delimiter)
            if index == -1:
                break
            lines.append(bytes(self._buffer[:index]))
            del self._buffer[:index + len(self.delimiter)]

        if len(self._buffer) > self.max_line_length:
            logger.warning(f"Line buffer overflow! Dropping {len(self._buffer)} bytes without delimiter")
            self._buffer.clear()

        return lines
