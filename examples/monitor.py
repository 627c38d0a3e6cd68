#!/usr/bin/env python3
"""
UD-CO2S Monitoring Example

Connects to the sensor, prints every reading for a fixed duration, then
stops. Doubles as a hardware smoke test: the exit code is non-zero if the
sensor reports an error.

Expected behavior:
- Finds the sensor by USB VID/PID
- Prints "OK STA" acknowledgement, then one line per measurement
- Stops cleanly after --duration seconds
"""

import sys
import os
import logging
import anyio

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from udco2s import Acknowledged, Error, Measurement, SensorSession, get_port_info

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


async def monitor(duration: float) -> int:
    failed = anyio.Event()

    def on_reading(reading, message):
        if isinstance(reading, Measurement):
            print(f"[DATA] CO2: {reading.co2}, HUM: {reading.humidity}, TMP: {reading.temperature}")
        elif isinstance(reading, Acknowledged):
            print("[INFO] Connection established (OK STA)")
        elif isinstance(reading, Error):
            print(f"[ERROR] State: error, Msg: {message}")
            failed.set()
        else:
            print(f"[INFO] State: {reading.state}, Msg: {message}")

    async with SensorSession() as session:
        print("Starting sensor connection...")
        await session.start(on_reading)

        with anyio.move_on_after(duration):
            await failed.wait()

        print("Stopping sensor connection...")
        await session.stop()
        print(f"Session stats: {session.get_stats()}")

    if failed.is_set():
        print("[FAIL] Sensor reported an error")
        return 1
    print("[PASS] Monitoring completed.")
    return 0


async def list_ports():
    async with SensorSession() as session:
        ports = await session.get_port_list()

    print("Serial ports found:")
    for port in ports:
        info = get_port_info(port.path)
        print(f"  {port.path}")
        if info.get('description'):
            print(f"     Description: {info['description']}")
        if port.vendor_id and port.product_id:
            print(f"     USB ID: {port.vendor_id}:{port.product_id}")


def main():
    """Main function."""
    import argparse

    parser = argparse.ArgumentParser(description="UD-CO2S Monitoring")
    parser.add_argument("--duration", type=float, default=10.0, help="Monitoring duration (seconds)")
    parser.add_argument("--list-ports", action="store_true", help="List available serial ports")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.list_ports:
        anyio.run(list_ports)
        return 0

    try:
        return anyio.run(monitor, args.duration)
    except KeyboardInterrupt:
        print("\nMonitoring interrupted by user")
        return 1


if __name__ == "__main__":
    sys.exit(main())
