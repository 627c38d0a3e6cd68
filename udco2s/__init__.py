"""
UD-CO2S Driver Library

Async driver for the I/O DATA USB-UD-CO2S CO2/humidity/temperature sensor.

This library provides:
- Sensor discovery by USB VID/PID
- The line protocol (STA/STP commands, OK STA and CO2=...,HUM=...,TMP=... lines)
- A session that streams typed readings to a callback and reports
  errors and disconnects the same way
"""

from .connection import SENSOR_USB_ID, PortDescriptor, find_sensor_ports, get_port_info
from .errors import ErrorKind
from .protocol import (
    Acknowledged,
    ConnectionClosed,
    Error,
    Measurement,
    SensorReading,
    decode_line,
    encode_start,
    encode_stop,
)
from .session import SensorSession, SessionState
from .transport import PortConfig, SerialPortProvider

__version__ = "1.0.0"
__all__ = [
    "SensorSession",
    "SessionState",
    "SensorReading",
    "Acknowledged",
    "Measurement",
    "ConnectionClosed",
    "Error",
    "ErrorKind",
    "encode_start",
    "encode_stop",
    "decode_line",
    "PortConfig",
    "PortDescriptor",
    "SerialPortProvider",
    "SENSOR_USB_ID",
    "find_sensor_ports",
    "get_port_info",
]
