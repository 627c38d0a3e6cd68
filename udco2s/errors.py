"""
UD-CO2S Error Types

Error kinds reported to the session callback, plus the exceptions raised
inside the transport and the codec. Exceptions never leave the package:
the session turns them into readings.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Stable machine-readable identifiers for reported errors."""
    SESSION_ALREADY_ACTIVE = "session_already_active"
    CALLBACK_MISSING = "callback_missing"
    SENSOR_NOT_FOUND = "sensor_not_found"
    TRANSPORT_OPEN_FAILURE = "transport_open_failure"
    LINE_DECODE_FAILURE = "line_decode_failure"
    CONNECTION_CLOSED_UNEXPECTEDLY = "connection_closed_unexpectedly"


class UdCo2sError(Exception):
    """Base class for expected operational errors."""

    kind: ErrorKind = ErrorKind.LINE_DECODE_FAILURE

    def __init__(self, message: str, *, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.hint = hint

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Transport errors
# ---------------------------------------------------------------------------

class TransportError(UdCo2sError):
    """Base class for serial transport failures."""
    kind = ErrorKind.CONNECTION_CLOSED_UNEXPECTEDLY


class TransportOpenError(TransportError):
    """
    Serial port could not be opened.

    Examples:
      - port busy (opened by another process)
      - permission denied
      - device removed between enumeration and open
    """
    kind = ErrorKind.TRANSPORT_OPEN_FAILURE


class TransportIOError(TransportError):
    """Read, write or flush failed on an open port (e.g. USB unplugged)."""


class TransportClosedError(TransportError):
    """Operation attempted on a transport that is not open."""


# ---------------------------------------------------------------------------
# Protocol errors
# ---------------------------------------------------------------------------

class LineDecodeError(UdCo2sError):
    """A received line does not match any known response shape."""
    kind = ErrorKind.LINE_DECODE_FAILURE
