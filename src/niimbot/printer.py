"""
High-Level NIIMBOT Printer Interface.

Provides the printer command vocabulary and the print job sequence on
top of a CommandSession.
"""

import asyncio
import logging
import struct
from pathlib import Path
from typing import Optional, Union

from PIL import Image

from . import cache
from .commands import (
    DENSITY_RANGE,
    LABEL_TYPE_RANGE,
    Commands,
    InfoCode,
    LabelType,
)
from .connection import SerialTransport, Transport, find_printer_port, is_printer_port
from .errors import ConcurrentRequestError, InvalidArgumentError, TransportClosedError
from .image import Bitmap, as_bitmap, create_test_pattern, rasterize
from .models import PrinterModel
from .protocol import Packet
from .responses import Heartbeat, PrintStatus, RFIDTag, UnknownHeartbeat, decode_info
from .session import CommandSession

logger = logging.getLogger(__name__)


class NiimbotPrinter:
    """
    High-level interface to a NIIMBOT label printer.

    Usage:
        async with NiimbotPrinter() as printer:
            await printer.print_image(bitmap, density=3)
    """

    # Print status polling after the page is sent
    STATUS_POLL_ATTEMPTS = 5
    STATUS_POLL_INTERVAL = 0.5  # seconds

    def __init__(
        self,
        transport: Optional[Transport] = None,
        model: PrinterModel = PrinterModel.B1,
        read_attempts: int = CommandSession.READ_ATTEMPTS,
        read_interval: float = CommandSession.READ_INTERVAL,
    ):
        """
        Initialize printer interface.

        Args:
            transport: Byte-stream transport; defaults to an auto-detected
                USB serial port
            model: Printer model, used for width and density limits
            read_attempts: Response read attempts per command
            read_interval: Delay between response reads in seconds
        """
        self.transport = transport
        self.model = model
        self.read_attempts = read_attempts
        self.read_interval = read_interval
        self.session: Optional[CommandSession] = None

    def set_debug(self, enabled: bool):
        """Enable/disable debug logging for the whole package."""
        logging.getLogger("niimbot").setLevel(logging.DEBUG if enabled else logging.NOTSET)

    # --- Connection ---

    async def open(self, port: Optional[str] = None):
        """
        Open the transport and start a command session.

        Without an explicit transport, a serial port is chosen from (in
        order) the port argument, the last-used port cache, and USB
        auto-detection. A port cannot be combined with an injected
        transport.

        Raises:
            InvalidArgumentError: If port is given alongside a transport
            DeviceNotFoundError: If no matching serial port exists
            TransportError: If the port cannot be opened
        """
        if self.session is not None:
            logger.debug("Printer is already open")
            return

        if self.transport is None:
            self.transport = SerialTransport(port or self._cached_port())
        elif port is not None:
            raise InvalidArgumentError(
                f"Cannot open port {port}: printer was created with a transport"
            )

        await self.transport.open()
        self.session = CommandSession(
            self.transport, attempts=self.read_attempts, delay=self.read_interval
        )

        if isinstance(self.transport, SerialTransport) and self.transport.port_info:
            cache.save_port(self.transport.port_info)

    @staticmethod
    def _cached_port() -> Optional[str]:
        cached = cache.load_cached_port()
        if cached is None:
            return None

        port = find_printer_port(cached.device)
        if port is None or not cached.matches(port) or not is_printer_port(port):
            logger.debug("Cached port %s no longer holds a printer", cached.device)
            return None

        logger.debug("Using cached port %s", cached.device)
        return cached.device

    async def close(self):
        """Close the transport. Safe to call at any time."""
        self.session = None
        if self.transport is not None:
            await self.transport.close()

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    @property
    def is_open(self) -> bool:
        return self.session is not None and self.transport.is_open

    def _require_session(self) -> CommandSession:
        if self.session is None:
            raise TransportClosedError("Printer is not open")
        return self.session

    async def _send(self, spec, payload: bytes = CommandSession.DEFAULT_PAYLOAD) -> Packet:
        return await self._require_session().send(spec, payload)

    async def _send_flag(self, spec, payload: bytes = CommandSession.DEFAULT_PAYLOAD) -> bool:
        packet = await self._send(spec, payload)
        return bool(packet.data and packet.data[0])

    # --- Configuration ---

    async def set_label_density(self, density: int) -> bool:
        """Set print darkness (1-5)."""
        if density not in DENSITY_RANGE:
            raise InvalidArgumentError(
                f"Invalid density range; expected 1 - 5 but got {density}"
            )
        return await self._send_flag(Commands.SET_LABEL_DENSITY, bytes([density]))

    async def get_label_density(self) -> int:
        return await self.get_info(InfoCode.DENSITY)

    async def set_label_type(self, label_type: int) -> bool:
        """Set the label media type (1-3)."""
        if label_type not in LABEL_TYPE_RANGE:
            raise InvalidArgumentError(
                f"Invalid label type; expected 1 - 3 but got {label_type}"
            )
        return await self._send_flag(Commands.SET_LABEL_TYPE, bytes([label_type]))

    async def set_dimensions(self, width: int, height: int) -> bool:
        """Set the page size in pixels."""
        if not (0 <= width <= 0xFFFF and 0 <= height <= 0xFFFF):
            raise InvalidArgumentError(f"Invalid dimensions {width}x{height}")
        return await self._send_flag(Commands.SET_DIMENSION, struct.pack(">HH", height, width))

    async def allow_print_clear(self) -> bool:
        return await self._send_flag(Commands.ALLOW_PRINT_CLEAR)

    async def set_power_sound(self, enabled: bool) -> bool:
        return await self._send_flag(Commands.SET_AUDIO_SETTING, bytes([1, 2, int(enabled)]))

    async def set_bluetooth_sound(self, enabled: bool) -> bool:
        return await self._send_flag(Commands.SET_AUDIO_SETTING, bytes([1, 1, int(enabled)]))

    async def calibrate_label(self, label_type: LabelType = LabelType.GAP) -> bool:
        """Let the printer measure the loaded label stock."""
        return await self._send_flag(Commands.CALIBRATE_LABEL, bytes([label_type]))

    # --- Print Job Control ---

    async def start_print(self) -> bool:
        return await self._send_flag(Commands.START_PRINT)

    async def end_print(self) -> bool:
        return await self._send_flag(Commands.END_PRINT)

    async def start_page_print(self) -> bool:
        return await self._send_flag(Commands.START_PAGE_PRINT)

    async def end_page_print(self) -> bool:
        return await self._send_flag(Commands.END_PAGE_PRINT)

    # --- Queries ---

    async def get_print_status(self) -> PrintStatus:
        packet = await self._send(Commands.GET_PRINT_STATUS)
        return PrintStatus.parse(packet.data)

    async def get_info(self, key: InfoCode) -> Union[str, int]:
        """
        Query a device property.

        Returns:
            str for DEVICE_SERIAL and the version keys, int otherwise
        """
        spec = Commands.get_info(key)
        packet = await self._send(spec, bytes([key]))
        return decode_info(InfoCode(key), packet.data)

    async def get_heartbeat(self, variant: int = 1) -> Union[Heartbeat, UnknownHeartbeat]:
        """Query door, power, paper and RFID state."""
        spec = Commands.heartbeat(variant)
        packet = await self._send(spec, bytes([variant]))
        heartbeat = Heartbeat.parse(packet.data)
        if isinstance(heartbeat, UnknownHeartbeat):
            logger.warning("Unrecognized heartbeat layout: %s", heartbeat)
        return heartbeat

    async def get_rfid(self) -> Optional[RFIDTag]:
        """Read the label roll's RFID tag, or None if no tag is present."""
        packet = await self._send(Commands.GET_RFID)
        return RFIDTag.parse(packet.data)

    # --- Printing ---

    async def print_image(
        self,
        image: Union[Bitmap, str, Path, bytes, Image.Image],
        density: int = 3,
        label_type: int = LabelType.GAP,
        query_device_type: bool = True,
        threshold: Optional[int] = None,
        status_attempts: int = STATUS_POLL_ATTEMPTS,
        status_interval: float = STATUS_POLL_INTERVAL,
    ):
        """
        Print an image as one label.

        Args:
            image: Print-polarity Bitmap (non-zero pixels print), or an
                image file path, encoded bytes or PIL image to convert
            density: Print darkness (1-5, capped at the model maximum)
            label_type: Label media type (1-3)
            query_device_type: Ask for the device type before printing
            threshold: Black/white cutoff used when converting an image
            status_attempts: Print status polls before finishing anyway
            status_interval: Delay between status polls in seconds

        Raises:
            ImageError: If the image cannot be loaded or is too large
            InvalidArgumentError: If the bitmap is wider than the model allows
            PrinterError: The first error from any step; the remaining
                steps are skipped and the printer is left open
        """
        session = self._require_session()
        limits = self.model.limits
        bitmap = as_bitmap(image, threshold=threshold)

        if bitmap.width > limits.max_width:
            raise InvalidArgumentError(
                f"Image width {bitmap.width} incompatible with {self.model.name} "
                f"model (max {limits.max_width})"
            )
        if density not in DENSITY_RANGE:
            raise InvalidArgumentError(
                f"Invalid density range; expected 1 - 5 but got {density}"
            )
        if density > limits.max_density:
            logger.warning(
                "Overriding density to %d due to model %s limits",
                limits.max_density, self.model.name,
            )
            density = limits.max_density

        async def send_rows():
            count = 0
            for row in rasterize(bitmap, compute_margins=limits.margins):
                await session.send_without_response(Commands.IMAGE_DATA, row.to_payload())
                count += 1
            logger.debug("Sent %d image rows", count)

        async def wait_for_completion():
            for attempt in range(status_attempts):
                if attempt:
                    await asyncio.sleep(status_interval)
                status = await self.get_print_status()
                logger.debug("Print progress: %s", status)
                if status.is_complete:
                    return
            logger.debug("Print status not complete after %d poll(s), continuing", status_attempts)

        steps = [
            ("set label density", lambda: self.set_label_density(density)),
            ("set label type", lambda: self.set_label_type(label_type)),
            ("query device type", lambda: self.get_info(InfoCode.DEVICE_TYPE)),
            ("start print", self.start_print),
            ("start page print", self.start_page_print),
            ("set dimensions", lambda: self.set_dimensions(bitmap.width, bitmap.height)),
            ("send image data", send_rows),
            ("end page print", self.end_page_print),
            ("wait for print status", wait_for_completion),
            ("end print", self.end_print),
        ]

        logger.debug("Printing %dx%d image", bitmap.width, bitmap.height)
        for number, (name, step) in enumerate(steps, start=1):
            if name == "query device type" and not query_device_type:
                continue
            logger.debug("Step %d: %s", number, name)
            try:
                await step()
            except Exception:
                logger.error("Print aborted at step %d (%s)", number, name)
                raise

        logger.debug("Print job complete")

    async def print_test_pattern(self, density: int = 3):
        """Print a border-and-diagonals test pattern."""
        width = min(96, self.model.limits.max_width)
        await self.print_image(create_test_pattern(width, width), density=density)

    async def send_raw(self, data: bytes) -> bytes:
        """
        Write raw bytes and return whatever arrives within the read budget.

        Useful for protocol testing.
        """
        session = self._require_session()
        if session.busy:
            raise ConcurrentRequestError("Cannot send raw data while a request is in flight")
        logger.debug("TX raw: %s", data.hex())
        await self.transport.write(data)

        received = bytearray()
        for attempt in range(self.read_attempts):
            if attempt:
                await asyncio.sleep(self.read_interval)
            received.extend(await self.transport.read())
        logger.debug("RX raw: %s", received.hex())
        return bytes(received)
