"""Tests for serial and BLE transports."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
import serial

from niimbot import connection
from niimbot.connection import (
    BLETransport,
    PortInfo,
    PrinterInfo,
    SerialTransport,
    find_printer_port,
    is_printer_port,
)
from niimbot.errors import DeviceNotFoundError, TransportClosedError, TransportError


def fake_port(device, vid=None, pid=None, manufacturer=None, description="n/a"):
    return SimpleNamespace(
        device=device, vid=vid, pid=pid, manufacturer=manufacturer, description=description
    )


PRINTER = fake_port("/dev/ttyACM0", 0x3513, 0x0002, "NIIMBOT", "B1")
# Windows drivers leave the manufacturer empty
PRINTER_WINDOWS = fake_port("COM5", 0x3513, 0x0002, None, "USB Serial Device")
OTHER = fake_port("/dev/ttyUSB0", 0x0403, 0x6001, "FTDI", "FT232R")


@pytest.fixture
def ports(monkeypatch):
    """Replace the operating system's port list."""
    listed = []
    monkeypatch.setattr(connection, "comports", lambda: listed)
    monkeypatch.setattr(connection, "_is_windows", lambda: False)
    return listed


class TestFindPrinterPort:
    """Test USB serial port discovery."""

    def test_matches_manufacturer_and_product(self, ports):
        ports.extend([OTHER, PRINTER])

        assert find_printer_port().device == "/dev/ttyACM0"

    def test_no_match(self, ports):
        ports.append(OTHER)

        assert find_printer_port() is None

    def test_windows_matches_vendor_and_product(self, ports, monkeypatch):
        ports.extend([OTHER, PRINTER_WINDOWS])
        monkeypatch.setattr(connection, "_is_windows", lambda: True)

        assert find_printer_port().device == "COM5"

    def test_windows_port_not_matched_elsewhere(self, ports):
        ports.append(PRINTER_WINDOWS)

        assert find_printer_port() is None

    def test_explicit_path(self, ports):
        ports.extend([OTHER, PRINTER])

        assert find_printer_port("/dev/ttyUSB0").device == "/dev/ttyUSB0"
        assert find_printer_port("/dev/ttyS9") is None


class TestIsPrinterPort:

    @pytest.mark.parametrize("windows", [False, True])
    def test_printer(self, windows):
        info = PortInfo("/dev/ttyACM0", 0x3513, 0x0002, "NIIMBOT")
        assert is_printer_port(info, windows)

    def test_other_device(self):
        info = PortInfo("/dev/ttyUSB0", 0x0403, 0x6001, "FTDI")
        assert not is_printer_port(info, windows=False)
        assert not is_printer_port(info, windows=True)

    def test_missing_manufacturer_only_matches_on_windows(self):
        info = PortInfo("COM5", 0x3513, 0x0002, None)
        assert is_printer_port(info, windows=True)
        assert not is_printer_port(info, windows=False)

    def test_defaults_to_current_platform(self, monkeypatch):
        monkeypatch.setattr(connection, "_is_windows", lambda: True)
        assert is_printer_port(PortInfo("COM5", 0x3513, 0x0002, None))


class TestPortInfo:

    def test_str(self):
        info = PortInfo("/dev/ttyACM0", 0x3513, 0x0002, "NIIMBOT", "B1")
        assert str(info) == "/dev/ttyACM0 [3513:0002] NIIMBOT"

    def test_str_without_ids(self):
        assert str(PortInfo("/dev/ttyS0", description="ttyS0")) == "/dev/ttyS0 ttyS0"


class TestSerialTransport:

    @pytest.fixture
    def serial_port(self, ports, monkeypatch):
        """Printer listed by the OS, with pyserial's Serial replaced."""
        ports.append(PRINTER)
        port = MagicMock()
        port.is_open = True
        port.in_waiting = 0
        factory = MagicMock(return_value=port)
        monkeypatch.setattr(connection.serial, "Serial", factory)
        return port, factory

    @pytest.mark.asyncio
    async def test_open_autodetects(self, serial_port):
        port, factory = serial_port
        transport = SerialTransport()

        await transport.open()

        assert transport.is_open
        assert transport.port == "/dev/ttyACM0"
        assert transport.port_info.vid == 0x3513
        factory.assert_called_once_with(port="/dev/ttyACM0", baudrate=115200, timeout=0)

    @pytest.mark.asyncio
    async def test_open_not_found(self, ports):
        with pytest.raises(DeviceNotFoundError, match="Could not find NIIMBOT printer"):
            await SerialTransport().open()

    @pytest.mark.asyncio
    async def test_open_failure(self, serial_port):
        _, factory = serial_port
        factory.side_effect = serial.SerialException("Device busy")

        transport = SerialTransport("/dev/ttyACM0")
        with pytest.raises(TransportError, match="Device busy"):
            await transport.open()
        assert not transport.is_open

    @pytest.mark.asyncio
    async def test_write_flushes(self, serial_port):
        port, _ = serial_port
        transport = SerialTransport()
        await transport.open()

        await transport.write(b"\x55\x55")

        port.write.assert_called_once_with(b"\x55\x55")
        port.flush.assert_called_once()

    @pytest.mark.asyncio
    async def test_read_returns_waiting_bytes(self, serial_port):
        port, _ = serial_port
        port.in_waiting = 5
        port.read.return_value = b"\xAA" * 5
        transport = SerialTransport()
        await transport.open()

        assert await transport.read() == b"\xAA" * 5
        port.read.assert_called_once_with(5)

        port.read.reset_mock()
        await transport.read(max_bytes=2)
        port.read.assert_called_once_with(2)

    @pytest.mark.asyncio
    async def test_read_nothing_waiting(self, serial_port):
        port, _ = serial_port
        transport = SerialTransport()
        await transport.open()

        assert await transport.read() == b""
        port.read.assert_not_called()

    @pytest.mark.asyncio
    async def test_closed(self, serial_port):
        port, _ = serial_port
        transport = SerialTransport()
        await transport.open()
        await transport.close()
        await transport.close()

        port.close.assert_called_once()
        with pytest.raises(TransportClosedError):
            await transport.read()
        with pytest.raises(TransportClosedError):
            await transport.write(b"\x00")

    @pytest.mark.asyncio
    async def test_context_manager(self, serial_port):
        port, _ = serial_port

        async with SerialTransport() as transport:
            assert transport.is_open

        port.close.assert_called_once()


class TestBLETransport:
    """Test notification buffering on the BLE transport."""

    @pytest.fixture
    def transport(self):
        transport = BLETransport("AA:BB:CC:DD:EE:FF", chunk_size=100)
        transport.client = MagicMock()
        transport.client.is_connected = True
        transport.client.write_gatt_char = AsyncMock()
        return transport

    @pytest.mark.asyncio
    async def test_read_drains_notifications(self, transport):
        transport._handle_notification(MagicMock(), bytearray(b"\x55\x55"))
        transport._handle_notification(MagicMock(), bytearray(b"\x02\x01"))

        assert await transport.read() == b"\x55\x55\x02\x01"
        assert await transport.read() == b""

    @pytest.mark.asyncio
    async def test_read_max_bytes(self, transport):
        transport._handle_notification(MagicMock(), bytearray(b"abcdef"))

        assert await transport.read(4) == b"abcd"
        assert await transport.read() == b"ef"

    @pytest.mark.asyncio
    async def test_buffer_is_capped(self, transport):
        transport._handle_notification(MagicMock(), bytearray(BLETransport.MAX_BUFFER_SIZE))
        transport._handle_notification(MagicMock(), bytearray(b"x"))

        assert len(await transport.read()) == BLETransport.MAX_BUFFER_SIZE

    @pytest.mark.asyncio
    async def test_write_is_chunked(self, transport):
        await transport.write(bytes(250))

        sizes = [len(call.args[1]) for call in transport.client.write_gatt_char.call_args_list]
        assert sizes == [100, 100, 50]

    @pytest.mark.asyncio
    async def test_write_failure(self, transport):
        transport.client.write_gatt_char.side_effect = OSError("disconnected")

        with pytest.raises(TransportError, match="disconnected"):
            await transport.write(b"\x00")

    @pytest.mark.asyncio
    async def test_not_connected(self):
        transport = BLETransport("AA:BB:CC:DD:EE:FF")

        assert not transport.is_open
        with pytest.raises(TransportClosedError):
            await transport.read()
        with pytest.raises(TransportClosedError):
            await transport.write(b"\x00")

    @pytest.mark.asyncio
    async def test_close_clears_buffer(self, transport):
        client = transport.client
        client.disconnect = AsyncMock()
        transport._handle_notification(MagicMock(), bytearray(b"abc"))

        await transport.close()

        client.disconnect.assert_awaited_once()
        assert transport.client is None
        assert transport._buffer == bytearray()

    @pytest.mark.asyncio
    async def test_scan_filters_and_sorts(self, monkeypatch):
        def advertised(name, address, rssi):
            return (
                SimpleNamespace(name=name, address=address),
                SimpleNamespace(local_name=None, rssi=rssi),
            )

        found = {
            "1": advertised("B21-C2061502", "11:11:11:11:11:11", -70),
            "2": advertised("Headphones", "22:22:22:22:22:22", -30),
            "3": advertised("D110-G122", "33:33:33:33:33:33", -40),
        }
        monkeypatch.setattr(connection.BleakScanner, "discover", AsyncMock(return_value=found))

        printers = await BLETransport.scan(timeout=0.1)

        assert [p.name for p in printers] == ["D110-G122", "B21-C2061502"]


class TestPrinterInfo:

    def test_str(self):
        info = PrinterInfo(name="B1-1234", address="AA:BB:CC:DD:EE:FF", rssi=-45)
        assert str(info) == "B1-1234 [AA:BB:CC:DD:EE:FF] RSSI: -45 dB"
