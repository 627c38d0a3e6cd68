from __future__ import annotations

import pytest

from udco2s.errors import ErrorKind
from udco2s.protocol import (
    Acknowledged,
    ConnectionClosed,
    Error,
    LineFramer,
    Measurement,
    decode_line,
    encode_start,
    encode_stop,
)


def test_encode_start_bytes():
    assert encode_start() == bytes([0x53, 0x54, 0x41, 0x0D, 0x0A])
    assert encode_start() == b"STA\r\n"


def test_encode_stop_bytes():
    assert encode_stop() == bytes([0x53, 0x54, 0x50, 0x0D, 0x0A])
    assert encode_stop() == b"STP\r\n"


def test_decode_ack():
    assert decode_line(b"OK STA\r\n") == Acknowledged()
    assert decode_line(b"OK STA").state == "OK"


def test_decode_measurement():
    reading = decode_line(b"CO2=606,HUM=46.5,TMP=29.8\r\n")
    assert reading == Measurement(co2="606", humidity="46.5", temperature="29.8")
    assert reading.state == "connected"


def test_decode_measurement_from_str():
    assert decode_line("CO2=1200,HUM=50.0,TMP=21.0") == Measurement("1200", "50.0", "21.0")


def test_decode_keeps_device_text():
    # trailing zeros and leading signs survive: no float round trip
    reading = decode_line(b"CO2=0400,HUM=40.10,TMP=-1.50\r\n")
    assert (reading.co2, reading.humidity, reading.temperature) == ("0400", "40.10", "-1.50")


def test_decode_only_first_line():
    reading = decode_line(b"CO2=606,HUM=46.5,TMP=29.8\r\nCO2=1,HUM=2,TMP=3\r\n")
    assert reading == Measurement("606", "46.5", "29.8")


def test_decode_fields_are_positional():
    reading = decode_line(b"TMP=29.8,CO2=606,HUM=46.5\r\n")
    assert reading == Measurement(co2="29.8", humidity="606", temperature="46.5")


@pytest.mark.parametrize("line", [
    b"garbage\r\n",
    b"CO2=606,HUM=46.5\r\n",
    b"CO2=606,HUM=46.5,TMP=29.8,X=1\r\n",
    b"CO2=606,HUM,TMP=29.8\r\n",
    b"\r\n",
    b"",
    b"CO2=\xff,HUM=1,TMP=2\r\n",
])
def test_decode_malformed_returns_error(line):
    reading = decode_line(line)
    assert isinstance(reading, Error)
    assert reading.kind is ErrorKind.LINE_DECODE_FAILURE
    assert reading.state == "error"
    assert reading.message


def test_decode_wrong_type_returns_error():
    reading = decode_line(12345)
    assert isinstance(reading, Error)
    assert "int" in reading.message


def test_connection_closed_state():
    assert ConnectionClosed(expected=True).state == "info"
    assert ConnectionClosed(expected=False).state == "warning"


def test_framer_splits_lines():
    framer = LineFramer()
    assert framer.feed(b"OK STA\r\nCO2=606,HUM=46.5,TMP=29.8\r\n") == [
        b"OK STA",
        b"CO2=606,HUM=46.5,TMP=29.8",
    ]
    assert framer.feed(b"") == []


def test_framer_buffers_partial_line():
    framer = LineFramer()
    assert framer.feed(b"CO2=606,HU") == []
    assert framer.feed(b"M=46.5,TMP=29.8\r") == []
    assert framer.feed(b"\nOK") == [b"CO2=606,HUM=46.5,TMP=29.8"]
    assert framer.feed(b" STA\r\n") == [b"OK STA"]


def test_framer_keeps_empty_lines():
    framer = LineFramer()
    assert framer.feed(b"\r\nOK STA\r\n") == [b"", b"OK STA"]


def test_framer_drops_overlong_garbage():
    framer = LineFramer(max_line_length=8)
    assert framer.feed(b"x" * 20) == []
    assert framer.feed(b"OK STA\r\n") == [b"OK STA"]


def test_decode_empty_values_pass_through():
    assert decode_line(b"CO2=,HUM=,TMP=\r\n") == Measurement(co2="", humidity="", temperature="")
