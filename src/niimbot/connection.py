"""
Byte-stream transports for NIIMBOT printers.

The command session only needs something that can be opened, closed,
written to (with the bytes fully drained before returning) and polled for
whatever bytes have arrived. SerialTransport covers the USB-serial link
using pyserial; BLETransport offers the same interface over Bluetooth Low
Energy using the Bleak library.
"""

import abc
import asyncio
import logging
import platform
from dataclasses import dataclass
from typing import Optional

import serial
from bleak import BleakClient, BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from serial.tools.list_ports import comports

from .errors import DeviceNotFoundError, TransportClosedError, TransportError

logger = logging.getLogger(__name__)

# USB identity of NIIMBOT printers
SERIAL_VENDOR_ID = 0x3513
SERIAL_PRODUCT_ID = 0x0002
SERIAL_MANUFACTURER = "NIIMBOT"


class Transport(abc.ABC):
    """Byte-stream transport used by the command session."""

    @abc.abstractmethod
    async def open(self):
        """Acquire the underlying device. Raises TransportError on failure."""

    @abc.abstractmethod
    async def close(self):
        """Release the device. Safe to call when already closed."""

    @abc.abstractmethod
    async def write(self, data: bytes):
        """Write data and return once it has been transmitted."""

    @abc.abstractmethod
    async def read(self, max_bytes: Optional[int] = None) -> bytes:
        """Return the bytes received so far (possibly none) without blocking."""

    @property
    @abc.abstractmethod
    def is_open(self) -> bool:
        """Check if the transport is open."""

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


# --- USB Serial ---


@dataclass
class PortInfo:
    """A serial port reported by the operating system."""
    device: str
    vid: Optional[int] = None
    pid: Optional[int] = None
    manufacturer: Optional[str] = None
    description: str = ""

    def __str__(self) -> str:
        ids = ""
        if self.vid is not None and self.pid is not None:
            ids = f" [{self.vid:04X}:{self.pid:04X}]"
        return f"{self.device}{ids} {self.manufacturer or self.description}".rstrip()


def list_serial_ports() -> list[PortInfo]:
    """List serial ports known to the operating system."""
    return [
        PortInfo(
            device=port.device,
            vid=port.vid,
            pid=port.pid,
            manufacturer=port.manufacturer,
            description=port.description or "",
        )
        for port in comports()
    ]


def _is_windows() -> bool:
    return platform.system() == "Windows"


def is_printer_port(port: PortInfo, windows: Optional[bool] = None) -> bool:
    """Check a port against the NIIMBOT USB identity."""
    if windows is None:
        windows = _is_windows()
    # Windows drivers do not report the manufacturer string
    if windows:
        return port.vid == SERIAL_VENDOR_ID and port.pid == SERIAL_PRODUCT_ID
    return port.manufacturer == SERIAL_MANUFACTURER and port.pid == SERIAL_PRODUCT_ID


def find_printer_port(path: Optional[str] = None) -> Optional[PortInfo]:
    """
    Locate a printer's serial port.

    Args:
        path: Explicit device path; must be one of the listed ports

    Returns:
        Matching PortInfo, or None if nothing matches
    """
    ports = list_serial_ports()

    if path:
        return next((port for port in ports if port.device == path), None)

    windows = _is_windows()
    return next((port for port in ports if is_printer_port(port, windows)), None)


class SerialTransport(Transport):
    """USB-serial transport backed by pyserial."""

    BAUD_RATE = 115_200

    def __init__(self, port: Optional[str] = None, baudrate: int = BAUD_RATE):
        """
        Args:
            port: Serial device path, or None to auto-detect the printer
            baudrate: Line speed
        """
        self.port = port
        self.baudrate = baudrate
        self.port_info: Optional[PortInfo] = None
        self._serial: Optional[serial.Serial] = None

    async def open(self):
        if self.is_open:
            logger.debug("Port is already open")
            return

        printer = find_printer_port(self.port)
        if printer is None:
            raise DeviceNotFoundError(
                f"Could not find NIIMBOT printer: {self.port or '(auto detected)'}"
            )

        logger.debug("Connecting to %s...", printer.device)
        try:
            # timeout=0 makes reads return immediately with what is buffered
            self._serial = serial.Serial(
                port=printer.device, baudrate=self.baudrate, timeout=0
            )
        except serial.SerialException as e:
            raise TransportError(f"Connection to {printer.device} failed; {e}") from e

        self.port = printer.device
        self.port_info = printer
        logger.debug("Connection success!")

    async def close(self):
        if self._serial is None:
            logger.debug("Port is already closed")
            return
        port, self._serial = self._serial, None
        port.close()

    def _require_open(self) -> serial.Serial:
        port = self._serial
        if port is None or not port.is_open:
            raise TransportClosedError("Transport not open")
        return port

    async def write(self, data: bytes):
        port = self._require_open()

        def _write_and_drain():
            port.write(data)
            port.flush()

        try:
            await asyncio.to_thread(_write_and_drain)
        except serial.SerialException as e:
            raise TransportError(f"Write failed: {e}") from e

    async def read(self, max_bytes: Optional[int] = None) -> bytes:
        port = self._require_open()
        try:
            waiting = port.in_waiting
            if not waiting:
                return b""
            return port.read(min(waiting, max_bytes) if max_bytes else waiting)
        except serial.SerialException as e:
            raise TransportError(f"Read failed: {e}") from e

    @property
    def is_open(self) -> bool:
        return self._serial is not None and self._serial.is_open


# --- Bluetooth Low Energy ---


@dataclass
class PrinterInfo:
    """Information about a discovered BLE printer."""
    name: str
    address: str
    rssi: int

    def __str__(self) -> str:
        return f"{self.name} [{self.address}] RSSI: {self.rssi} dB"


class BLETransport(Transport):
    """Byte-stream transport over the NIIMBOT BLE serial characteristic."""

    # Known device name patterns
    DEVICE_PATTERNS = ["NIIM", "B1", "B18", "B21", "D11", "D110"]

    SERVICE_UUID = "e7810a71-73ae-499d-8c15-faa9aef0c3f2"
    CHARACTERISTIC_UUID = "bef8d6c9-9c21-4c9e-b632-bd58c1009f9f"

    # Buffered notification bytes are capped to prevent memory exhaustion
    MAX_BUFFER_SIZE = 64 * 1024

    DEFAULT_CHUNK_SIZE = 100

    def __init__(self, address: str, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.address = address
        self.chunk_size = chunk_size
        self.client: Optional[BleakClient] = None
        self._buffer = bytearray()

    @classmethod
    async def scan(cls, timeout: float = 10.0) -> list[PrinterInfo]:
        """Scan for NIIMBOT printers."""
        printers = []
        devices = await BleakScanner.discover(timeout=timeout, return_adv=True)

        for device, adv_data in devices.values():
            name = device.name or adv_data.local_name or ""
            if any(pattern.upper() in name.upper() for pattern in cls.DEVICE_PATTERNS):
                printers.append(PrinterInfo(
                    name=name,
                    address=device.address,
                    rssi=adv_data.rssi if adv_data.rssi is not None else -100,
                ))

        return sorted(printers, key=lambda p: p.rssi, reverse=True)

    async def open(self):
        if self.is_open:
            return

        self.client = BleakClient(self.address)
        try:
            await self.client.connect()
            await self.client.start_notify(self.CHARACTERISTIC_UUID, self._handle_notification)
        except Exception as e:
            client, self.client = self.client, None
            if client.is_connected:
                await client.disconnect()
            raise TransportError(f"Connection to {self.address} failed; {e}") from e

        logger.debug("Connected to %s", self.address)

    async def close(self):
        client, self.client = self.client, None
        self._buffer.clear()
        if client is not None and client.is_connected:
            await client.disconnect()

    def _handle_notification(self, sender: BleakGATTCharacteristic, data: bytearray):
        """Buffer bytes notified by the printer."""
        if len(self._buffer) + len(data) > self.MAX_BUFFER_SIZE:
            logger.warning("Receive buffer full, dropping %d byte(s)", len(data))
            return
        self._buffer.extend(data)

    async def write(self, data: bytes):
        if not self.is_open:
            raise TransportClosedError("Transport not open")

        for i in range(0, len(data), self.chunk_size):
            try:
                await self.client.write_gatt_char(
                    self.CHARACTERISTIC_UUID,
                    data[i:i + self.chunk_size],
                    response=False,
                )
            except Exception as e:
                raise TransportError(f"Write failed at byte {i}: {e}") from e

    async def read(self, max_bytes: Optional[int] = None) -> bytes:
        if not self.is_open:
            raise TransportClosedError("Transport not open")

        size = min(max_bytes, len(self._buffer)) if max_bytes else len(self._buffer)
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    @property
    def is_open(self) -> bool:
        return self.client is not None and self.client.is_connected
