"""NIIMBOT Label Printer Driver over USB serial."""

__version__ = "0.1.0"

from .commands import Commands, CommandSpec, InfoCode, LabelType, RequestCode
from .connection import (
    BLETransport,
    PortInfo,
    PrinterInfo,
    SerialTransport,
    Transport,
    find_printer_port,
    is_printer_port,
)
from .errors import (
    ChecksumError,
    ConcurrentRequestError,
    DeviceNotFoundError,
    DeviceRejectedError,
    FramingError,
    ImageError,
    ImageSizeError,
    InvalidArgumentError,
    MalformedResponseError,
    PacketError,
    PrinterError,
    ResponseTimeoutError,
    TransportClosedError,
    TransportError,
    UnsupportedCommandError,
)
from .image import GrayBitmap, RasterRow, as_bitmap, create_test_pattern, load_image, rasterize
from .models import PrinterModel
from .printer import NiimbotPrinter
from .protocol import FrameReassembler, Packet, decode, encode
from .responses import Heartbeat, PrintStatus, RFIDTag, UnknownHeartbeat
from .session import CommandSession

__all__ = [
    "NiimbotPrinter",
    "CommandSession",
    "Packet",
    "FrameReassembler",
    "encode",
    "decode",
    "Commands",
    "CommandSpec",
    "RequestCode",
    "InfoCode",
    "LabelType",
    "PrinterModel",
    "Transport",
    "SerialTransport",
    "BLETransport",
    "PortInfo",
    "PrinterInfo",
    "find_printer_port",
    "is_printer_port",
    "GrayBitmap",
    "RasterRow",
    "load_image",
    "as_bitmap",
    "create_test_pattern",
    "rasterize",
    "PrintStatus",
    "Heartbeat",
    "UnknownHeartbeat",
    "RFIDTag",
    "PrinterError",
    "PacketError",
    "FramingError",
    "ChecksumError",
    "DeviceRejectedError",
    "UnsupportedCommandError",
    "ResponseTimeoutError",
    "MalformedResponseError",
    "ConcurrentRequestError",
    "InvalidArgumentError",
    "TransportError",
    "TransportClosedError",
    "DeviceNotFoundError",
    "ImageError",
    "ImageSizeError",
]
