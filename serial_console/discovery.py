from __future__ import annotations

import logging
import platform
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from serial.tools import list_ports as _list_ports  # type: ignore

from .errors import EnumerationError

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PortDescriptor:
    """
    Snapshot of one serial port as reported by the platform.
    Fields:
        name: device path or COM name, e.g. /dev/ttyUSB0, COM3
        vid / pid: USB vendor and product id, None for non-USB ports
    """
    name: str
    vid: Optional[int] = None
    pid: Optional[int] = None
    description: str = ""
    serial_number: Optional[str] = None

    @property
    def is_usb(self) -> bool:
        return self.vid is not None

    @classmethod
    def from_port_info(cls, info) -> "PortDescriptor":
        description = info.description if info.description and info.description != "n/a" else ""
        return cls(
            name=info.device,
            vid=info.vid,
            pid=info.pid,
            description=description,
            serial_number=info.serial_number,
        )


def _likely_rank(name: str, system: str) -> Tuple[int, object]:
    """Sort key putting USB/UART adapters first, based on platform naming patterns."""
    if system == "linux":
        if "/dev/ttyUSB" in name or "/dev/ttyACM" in name:
            return 0, name
        return 1, name
    if system == "darwin":
        if "usbserial" in name or "usbmodem" in name:
            return 0, name
        if "SLAB_USBtoUART" in name or "wchusbserial" in name:
            return 0, name
        return 1, name
    if system == "windows" and name.upper().startswith("COM"):
        # Sort by COM number
        suffix = name[3:]
        return 0, int(suffix) if suffix.isdigit() else 999
    return 1, name


def _order(ports: Iterable[PortDescriptor], system: str) -> List[PortDescriptor]:
    def key(p: PortDescriptor):
        rank, sub = _likely_rank(p.name, system)
        # keep int and str sub-keys apart so mixed names still compare
        return (rank, 0, sub, "") if isinstance(sub, int) else (rank, 1, 0, sub)
    return sorted(ports, key=key)


def list_ports(*, usb_only: bool = False) -> List[PortDescriptor]:
    """
    Enumerate the serial ports present right now.

    Every call probes the platform again; nothing is cached.
    Args:
        usb_only (bool): Drop ports without a USB vendor id
    Returns:
        List[PortDescriptor]: Likely USB/UART adapters first, then the rest
    Raises:
        EnumerationError: If the platform probe fails
    """
    try:
        infos = list(_list_ports.comports())
        ports = [PortDescriptor.from_port_info(info) for info in infos]
    except Exception as exc:
        # pyserial surfaces platform probe failures as assorted exception types
        raise EnumerationError(f"listing serial ports failed: {exc}") from exc

    if usb_only:
        ports = [p for p in ports if p.is_usb]
    ordered = _order(ports, platform.system().lower())
    _logger.debug("found %d serial port(s): %s", len(ordered), [p.name for p in ordered])
    return ordered


def scan_ports(*, usb_only: bool = False) -> Tuple[List[PortDescriptor], Optional[EnumerationError]]:
    """
    Non-raising form of list_ports().
    Returns:
        (ports, None) on success, ([], error) when enumeration fails
    """
    try:
        return list_ports(usb_only=usb_only), None
    except EnumerationError as exc:
        _logger.warning("%s", exc)
        return [], exc
