"""
UD-CO2S Session

Connection lifecycle for one sensor: discovery, open, start command,
streaming, stop and unplug handling. Every outcome is delivered to a single
registered callback as a reading; nothing is raised to the caller.

Usage:
    import anyio
    from udco2s import SensorSession

    def on_reading(reading, message):
        print(reading.state, reading, message)

    async def main():
        async with SensorSession() as session:
            await session.start(on_reading)
            await anyio.sleep(10)
            await session.stop()

    anyio.run(main)
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple, Union

import anyio
from anyio.abc import ObjectReceiveStream, ObjectSendStream, TaskGroup, TaskStatus

from .connection import SENSOR_USB_ID, PortDescriptor, find_sensor_ports
from .errors import ErrorKind, TransportError, TransportOpenError
from .protocol import (
    Acknowledged,
    ConnectionClosed,
    Error,
    LineFramer,
    Measurement,
    SensorReading,
    decode_line,
    encode_start,
    encode_stop,
)
from .transport import PortConfig, SerialPortProvider

logger = logging.getLogger(__name__)

MAX_PENDING_EVENTS = 64
CLOSED_MESSAGE = "port is closed."

Callback = Callable[[SensorReading, Optional[str]], None]


class SessionState(Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    OPENING = "opening"
    ACTIVE = "active"
    CLOSING = "closing"


@dataclass(frozen=True)
class LineReceived:
    """A complete line arrived from the device."""
    line: bytes


@dataclass(frozen=True)
class PortClosed:
    """The transport stopped delivering data."""
    reason: str


TransportEvent = Union[LineReceived, PortClosed]


@dataclass
class SessionStats:
    """Session statistics."""
    lines_received: int = 0
    acknowledgements: int = 0
    measurements: int = 0
    decode_errors: int = 0
    disconnects: int = 0


class SensorSession:
    """
    Single UD-CO2S session.

    The object is an async context manager owning the task group that runs
    the reader while a session is active. ``start()`` and ``stop()`` may be
    called any number of times inside it; at most one port is held at once.

    Per active session two tasks run:
    - producer: reads chunks from the transport, frames lines, pushes
      ``LineReceived``/``PortClosed`` onto a memory object stream
    - consumer: decodes lines and drives the state machine
    """

    def __init__(
        self,
        provider: Optional[SerialPortProvider] = None,
        port_config: Optional[PortConfig] = None,
        usb_id: Tuple[str, str] = SENSOR_USB_ID,
    ):
        """
        Initialize an idle session.

        Args:
            provider: Transport provider; anything with ``list_ports()`` and
                ``create(config)``. Defaults to pyserial.
            port_config: Serial parameters (path is filled in by discovery)
            usb_id: (vendor id, product id) of the sensor
        """
        self.provider = provider or SerialPortProvider()
        self.default_config = port_config or PortConfig()
        self.port_config = self.default_config
        self.usb_id = usb_id

        self.state = SessionState.IDLE
        self.stats = SessionStats()

        self._callback: Optional[Callback] = None
        self._transport = None
        self._tg: Optional[TaskGroup] = None
        self._session_scope: Optional[anyio.CancelScope] = None
        self._start_attempt = 0
        self._stop_done: Optional[anyio.Event] = None

    async def __aenter__(self) -> "SensorSession":
        self._tg = anyio.create_task_group()
        await self._tg.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        with anyio.CancelScope(shield=True):
            await self.stop()
        tg, self._tg = self._tg, None
        return await tg.__aexit__(exc_type, exc, tb)

    @property
    def callback(self) -> Optional[Callback]:
        return self._callback

    @property
    def is_active(self) -> bool:
        """True while a port handle is held."""
        return self._transport is not None

    # ----- Public API ----------------------------------------------------

    async def start(self, callback: Optional[Callback]):
        """
        Find the sensor, open it and start streaming.

        Returns once the start command has been sent (or the attempt failed).
        Readings arrive later through ``callback(reading, message)``.

        Args:
            callback: Sink for every reading of this session
        """
        if self._tg is None:
            raise RuntimeError("SensorSession is not entered. Use 'async with SensorSession() as session'.")

        if self.state is not SessionState.IDLE:
            message = "start(): port is used already."
            if self._callback is None and callback is not None:
                # nothing registered to report to: log it and tell the caller
                logger.error(f"UD-CO2S error: {message}")
                self._notify(callback, Error(message, ErrorKind.SESSION_ALREADY_ACTIVE), message)
            else:
                self._report(ErrorKind.SESSION_ALREADY_ACTIVE, message)
            return

        if callback is None:
            logger.error(f"{ErrorKind.CALLBACK_MISSING.value}: start(): callback is null.")
            return

        self._start_attempt += 1
        attempt = self._start_attempt
        self._callback = callback
        self.port_config = self.default_config
        self.state = SessionState.DISCOVERING

        ports = await self.provider.list_ports()
        if self._stopped_during_start(attempt):
            return

        matches = find_sensor_ports(ports, self.usb_id)
        if not matches:
            self.state = SessionState.IDLE
            self._report(ErrorKind.SENSOR_NOT_FOUND, "start(): Sensor (UD-CO2S) is not found.")
            return

        self.port_config = self.default_config.with_path(matches[0].path)
        self.state = SessionState.OPENING

        transport = self.provider.create(self.port_config)
        try:
            await transport.open()
        except TransportOpenError as e:
            if not self._stopped_during_start(attempt):
                self.state = SessionState.IDLE
                self._report(e.kind, str(e))
            return

        if self._stopped_during_start(attempt):
            await self._close_transport(transport)
            return

        self._transport = transport
        self.state = SessionState.ACTIVE
        await self._tg.start(self._run_session, transport)

        try:
            await transport.write(encode_start())
            logger.info("Sent start command")
        except TransportError as e:
            # The reader sees the dead port and reports the close.
            self._report(e.kind, f"start(): {e}")

    async def stop(self):
        """
        Stop streaming and close the port.

        Safe to call at any time; without an open port it only notifies and
        unregisters the callback. A stop issued while another stop is
        draining the port waits for that one instead of touching the port.
        A stop issued while ``start()`` is still discovering or opening
        abandons that start and leaves the session idle.
        """
        if self.state is SessionState.CLOSING:
            await self._stop_done.wait()
            return

        if self.state in (SessionState.DISCOVERING, SessionState.OPENING):
            self._start_attempt += 1
            self.state = SessionState.IDLE

        transport = self._transport
        if transport is not None:
            self.state = SessionState.CLOSING
            self._stop_done = anyio.Event()
            try:
                await transport.write(encode_stop())
                logger.info("Sent stop command")
            except TransportError as e:
                logger.warning(f"Failed to send stop command: {e}")
            finally:
                await self._close_transport(transport)
                if self._session_scope is not None:
                    self._session_scope.cancel()
                    self._session_scope = None
                self.state = SessionState.IDLE
                self._stop_done.set()

        if self._callback is not None:
            self._emit(ConnectionClosed(expected=True), CLOSED_MESSAGE)
            self._callback = None

    async def get_port_list(self) -> List[PortDescriptor]:
        """All serial ports of the host, sensor or not."""
        return await self.provider.list_ports()

    def get_stats(self) -> Dict[str, int]:
        """Get session statistics."""
        return {
            'lines_received': self.stats.lines_received,
            'acknowledgements': self.stats.acknowledgements,
            'measurements': self.stats.measurements,
            'decode_errors': self.stats.decode_errors,
            'disconnects': self.stats.disconnects,
        }

    def clear_stats(self):
        """Clear session statistics."""
        self.stats = SessionStats()

    # ----- Session tasks -------------------------------------------------

    async def _run_session(self, transport, *, task_status: TaskStatus = anyio.TASK_STATUS_IGNORED):
        send_stream, receive_stream = anyio.create_memory_object_stream(max_buffer_size=MAX_PENDING_EVENTS)

        with anyio.CancelScope() as scope:
            self._session_scope = scope
            async with anyio.create_task_group() as tg:
                tg.start_soon(self._pump, transport, send_stream)
                task_status.started()
                await self._dispatch(transport, receive_stream)

        if self._session_scope is scope:
            self._session_scope = None
        logger.debug(f"Session tasks for {transport.path} finished")

    async def _pump(self, transport, send_stream: ObjectSendStream):
        """Producer: transport bytes -> line events."""
        framer = LineFramer()
        async with send_stream:
            while True:
                try:
                    chunk = await transport.receive()
                except TransportError as e:
                    await send_stream.send(PortClosed(str(e)))
                    return

                for line in framer.feed(chunk):
                    await send_stream.send(LineReceived(line))

    async def _dispatch(self, transport, receive_stream: ObjectReceiveStream):
        """Consumer: line events -> readings, close events -> teardown."""
        async with receive_stream:
            async for event in receive_stream:
                if isinstance(event, LineReceived):
                    self._handle_line(transport, event.line)
                elif isinstance(event, PortClosed):
                    await self._handle_port_closed(transport, event.reason)

    def _handle_line(self, transport, line: bytes):
        if self._transport is not transport:
            logger.debug(f"Dropping line from stale transport: {line!r}")
            return

        self.stats.lines_received += 1
        reading = decode_line(line)

        if isinstance(reading, Measurement):
            self.stats.measurements += 1
            self._emit(reading, None)
        elif isinstance(reading, Acknowledged):
            self.stats.acknowledgements += 1
            self._emit(reading, None)
        else:
            self.stats.decode_errors += 1
            logger.debug(f"Undecodable line {line!r}: {reading.message}")
            self._emit(reading, reading.message)

    async def _handle_port_closed(self, transport, reason: str):
        if self._transport is not transport or self.state is SessionState.CLOSING:
            logger.debug(f"Ignoring close of {transport.path}: {reason}")
            return

        logger.warning(f"{transport.path} closed unexpectedly: {reason}")
        self._transport = None
        self.stats.disconnects += 1

        self._emit(ConnectionClosed(expected=False), CLOSED_MESSAGE)
        self._callback = None

        await self._close_transport(transport)
        self.state = SessionState.IDLE

    # ----- Internal helpers ---------------------------------------------

    def _stopped_during_start(self, attempt: int) -> bool:
        if self._start_attempt == attempt:
            return False
        logger.info("stop() was called while starting, giving up")
        return True

    async def _close_transport(self, transport):
        try:
            await transport.close()
        except TransportError as e:
            logger.warning(f"Failed to close {transport.path}: {e}")
        finally:
            if self._transport is transport:
                self._transport = None

    def _report(self, kind: ErrorKind, message: str):
        if self._callback is None:
            logger.error(f"UD-CO2S error: {message}")
            return
        self._emit(Error(message, kind), message)

    def _emit(self, reading: SensorReading, message: Optional[str]):
        if self._callback is None:
            logger.debug(f"No callback registered, dropping {reading}")
            return
        self._notify(self._callback, reading, message)

    def _notify(self, callback: Callback, reading: SensorReading, message: Optional[str]):
        try:
            callback(reading, message)
        except Exception as e:
            logger.warning(f"Callback error: {e}")
