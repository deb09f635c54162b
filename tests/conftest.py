"""
Pytest configuration for NIIMBOT printer tests.

Provides a scripted in-memory transport for unit tests, plus fixtures and
command-line options for hardware tests.
"""

from typing import Optional

import pytest
import pytest_asyncio

from niimbot import NiimbotPrinter
from niimbot.commands import HEARTBEAT_RESPONSE_OFFSETS, Commands, CommandSpec, RequestCode
from niimbot.connection import Transport
from niimbot.errors import TransportClosedError
from niimbot.protocol import Packet

# Request code -> response offset for every fixed-offset command
REPLY_OFFSETS = {
    spec.code: spec.response_offset
    for spec in vars(Commands).values()
    if isinstance(spec, CommandSpec)
}

# Response type -> response data; anything else answers b"\x01"
DEFAULT_RESPONSES = {
    RequestCode.GET_INFO + 8: b"\x02\x00",  # DEVICE_TYPE
    RequestCode.GET_PRINT_STATUS + 16: bytes([0x00, 0x01, 100, 100]),
}


def response_code_for(packet: Packet) -> Optional[int]:
    """Response type a real printer would use for a request, or None."""
    if packet.type == RequestCode.GET_INFO:
        return packet.type + packet.data[0]
    if packet.type == RequestCode.GET_HEART_BEAT:
        return packet.type + HEARTBEAT_RESPONSE_OFFSETS[packet.data[0]]
    offset = REPLY_OFFSETS.get(packet.type)
    if offset is None:
        return None
    return packet.type + offset


class FakeTransport(Transport):
    """
    In-memory transport that answers every request like a printer would.

    Attributes:
        written: Every frame passed to write(), in order
        reads: Number of read() calls
        responses: Response type -> response data overrides
        chunk_size: Deliver at most this many bytes per read
        auto_reply: Queue a response for each request written
    """

    def __init__(self, responses=None, chunk_size=None, auto_reply=True, opened=True):
        self.written: list[bytes] = []
        self.reads = 0
        self.responses = {**DEFAULT_RESPONSES, **(responses or {})}
        self.chunk_size = chunk_size
        self.auto_reply = auto_reply
        self.opened = opened
        self._incoming = bytearray()

    async def open(self):
        self.opened = True

    async def close(self):
        self.opened = False

    @property
    def is_open(self) -> bool:
        return self.opened

    def queue(self, data: bytes):
        """Make bytes available to the next read()."""
        self._incoming.extend(data)

    def queue_packet(self, packet_type: int, data: bytes = b"\x01"):
        self.queue(Packet(packet_type, data).encode())

    async def write(self, data: bytes):
        if not self.opened:
            raise TransportClosedError("Transport not open")
        self.written.append(bytes(data))
        if self.auto_reply:
            request = Packet.decode(data)
            code = response_code_for(request)
            if code is not None:
                self.queue_packet(code, self.responses.get(code, b"\x01"))

    async def read(self, max_bytes=None) -> bytes:
        if not self.opened:
            raise TransportClosedError("Transport not open")
        self.reads += 1
        size = len(self._incoming)
        if self.chunk_size:
            size = min(size, self.chunk_size)
        data = bytes(self._incoming[:size])
        del self._incoming[:size]
        return data

    @property
    def sent_packets(self) -> list[Packet]:
        return [Packet.decode(frame) for frame in self.written]

    @property
    def sent_types(self) -> list[int]:
        return [packet.type for packet in self.sent_packets]


@pytest.fixture
def transport():
    """An open fake transport that echoes correct responses."""
    return FakeTransport()


@pytest_asyncio.fixture
async def printer(transport):
    """A printer opened over the fake transport, with no polling delays."""
    printer = NiimbotPrinter(transport=transport, read_attempts=3, read_interval=0)
    await printer.open()

    yield printer

    await printer.close()


def pytest_addoption(parser):
    """Add command-line options for hardware tests."""
    parser.addoption(
        "--port",
        action="store",
        default=None,
        help="Serial port of the printer for hardware tests",
    )


@pytest.fixture
def printer_port(request):
    """Get the printer serial port from command line."""
    port = request.config.getoption("--port")
    if port is None:
        pytest.skip("No printer port provided (use --port=/dev/ttyACM0)")
    return port


@pytest_asyncio.fixture
async def connected_printer(printer_port):
    """Provide a printer opened on real hardware."""
    printer = NiimbotPrinter()
    printer.set_debug(True)

    try:
        await printer.open(printer_port)
    except Exception as e:
        pytest.skip(f"Could not open printer at {printer_port}: {e}")

    yield printer

    await printer.close()
