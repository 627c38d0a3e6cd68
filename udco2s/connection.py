"""
UD-CO2S Connection Utilities

Utilities for finding the UD-CO2S among the serial ports of the host.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

import serial.tools.list_ports

logger = logging.getLogger(__name__)

# USB VID/PID of the UD-CO2S (Microchip CDC firmware)
SENSOR_USB_ID: Tuple[str, str] = ("04d8", "e95a")


@dataclass(frozen=True)
class PortDescriptor:
    """
    One enumerated serial port.

    Vendor and product ids are hex text; their letter case depends on the
    host OS, so compare them with ``matches()``.
    """
    path: str
    vendor_id: Optional[str] = None
    product_id: Optional[str] = None
    description: str = ""

    def matches(self, vendor_id: str, product_id: str) -> bool:
        if not self.vendor_id or not self.product_id:
            return False
        return (self.vendor_id.lower() == vendor_id.lower()
                and self.product_id.lower() == product_id.lower())


def describe_port(port) -> PortDescriptor:
    """Convert a pyserial ``ListPortInfo`` into a PortDescriptor."""
    return PortDescriptor(
        path=port.device,
        vendor_id=f"{port.vid:04X}" if port.vid is not None else None,
        product_id=f"{port.pid:04X}" if port.pid is not None else None,
        description=port.description or "",
    )


def find_sensor_ports(ports: Iterable[PortDescriptor],
                      usb_id: Tuple[str, str] = SENSOR_USB_ID) -> List[PortDescriptor]:
    """
    Filter ports down to UD-CO2S devices.

    Args:
        ports: Enumerated ports, in provider order
        usb_id: (vendor id, product id) as hex text

    Returns:
        Matching ports in the order they were given
    """
    vendor_id, product_id = usb_id
    matches = [port for port in ports if port.matches(vendor_id, product_id)]

    for port in matches:
        logger.info(f"USB VID/PID match: {port.path} - {port.description} "
                    f"(VID:{port.vendor_id}, PID:{port.product_id})")

    if len(matches) > 1:
        logger.info(f"Found {len(matches)} sensors, using first one: {matches[0].path}")

    return matches


def get_port_info(path: str) -> dict:
    """
    Get detailed information about a serial port.

    Args:
        path: Serial port name

    Returns:
        Dictionary with port information
    """
    for p in serial.tools.list_ports.comports():
        if p.device == path:
            return {
                'device': p.device,
                'description': p.description,
                'manufacturer': p.manufacturer,
                'vid': f"0x{p.vid:04x}" if p.vid is not None else None,
                'pid': f"0x{p.pid:04x}" if p.pid is not None else None,
                'serial_number': p.serial_number,
                'location': p.location,
            }

    return {'device': path, 'description': 'Port not found'}
