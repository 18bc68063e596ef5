from __future__ import annotations

from types import SimpleNamespace

import pytest

from serial_console import discovery
from serial_console.discovery import PortDescriptor, list_ports, scan_ports
from serial_console.errors import EnumerationError


def info(device, vid=None, pid=None, description="n/a", serial_number=None):
    return SimpleNamespace(device=device, vid=vid, pid=pid, description=description, serial_number=serial_number)


@pytest.fixture
def fake_comports(monkeypatch):
    found = []
    calls = []

    def comports():
        calls.append(1)
        return list(found)

    monkeypatch.setattr(discovery._list_ports, "comports", comports)
    return SimpleNamespace(found=found, calls=calls)


def test_descriptor_from_port_info(fake_comports):
    fake_comports.found.append(info("/dev/ttyUSB0", 0x0403, 0x6001, "FT232R USB UART", "A50285BI"))
    [p] = list_ports()
    assert p == PortDescriptor("/dev/ttyUSB0", 0x0403, 0x6001, "FT232R USB UART", "A50285BI")
    assert p.is_usb


def test_na_description_dropped(fake_comports):
    fake_comports.found.append(info("/dev/ttyS0"))
    [p] = list_ports()
    assert p.description == ""
    assert not p.is_usb


def test_fresh_snapshot_every_call(fake_comports):
    fake_comports.found.append(info("/dev/ttyUSB0", 1, 2))
    assert [p.name for p in list_ports()] == ["/dev/ttyUSB0"]
    fake_comports.found.clear()
    assert list_ports() == []
    assert len(fake_comports.calls) == 2


def test_linux_usb_first(fake_comports, monkeypatch):
    monkeypatch.setattr(discovery.platform, "system", lambda: "Linux")
    fake_comports.found.extend([info("/dev/ttyS1"), info("/dev/ttyACM0", 1, 2), info("/dev/ttyS0"),
                                info("/dev/ttyUSB0", 1, 2)])
    assert [p.name for p in list_ports()] == ["/dev/ttyACM0", "/dev/ttyUSB0", "/dev/ttyS0", "/dev/ttyS1"]


def test_windows_numeric_com_order(fake_comports, monkeypatch):
    monkeypatch.setattr(discovery.platform, "system", lambda: "Windows")
    fake_comports.found.extend([info("COM10"), info("COM2"), info("COM1")])
    assert [p.name for p in list_ports()] == ["COM1", "COM2", "COM10"]


def test_usb_only(fake_comports):
    fake_comports.found.extend([info("/dev/ttyS0"), info("/dev/ttyUSB0", 0x10C4, 0xEA60)])
    assert [p.name for p in list_ports(usb_only=True)] == ["/dev/ttyUSB0"]


def test_probe_failure_raises(monkeypatch):
    def broken():
        raise OSError("udev unavailable")

    monkeypatch.setattr(discovery._list_ports, "comports", broken)
    with pytest.raises(EnumerationError):
        list_ports()


def test_scan_ports_reports_failure_with_empty_list(monkeypatch):
    def broken():
        yield info("/dev/ttyUSB0", 1, 2)
        raise OSError("device vanished mid-probe")

    monkeypatch.setattr(discovery._list_ports, "comports", broken)
    ports, error = scan_ports()
    assert ports == []
    assert isinstance(error, EnumerationError)


def test_scan_ports_success(fake_comports):
    fake_comports.found.append(info("COM3", 1, 2))
    ports, error = scan_ports()
    assert error is None
    assert [p.name for p in ports] == ["COM3"]
