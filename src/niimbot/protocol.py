"""
NIIMBOT Printer Protocol Implementation.

This module implements packet encoding/decoding for NIIMBOT label printers
and the reassembly of packets from a raw byte stream.

Packet Structure:
    Head:      0x55 0x55 (constant)
    Type:      0x00-0xFF (command or response code)
    DataLen:   Number of data bytes (0-255)
    Data:      Payload bytes
    Checksum:  XOR of bytes from Type through Data
    Tail:      0xAA 0xAA (constant)
"""

import logging
from dataclasses import dataclass

from .errors import ChecksumError, FramingError, InvalidArgumentError, PacketError

logger = logging.getLogger(__name__)

HEAD = bytes([0x55, 0x55])
TAIL = bytes([0xAA, 0xAA])

# HEAD(2) + TYPE(1) + LEN(1) + CHECKSUM(1) + TAIL(2)
FRAME_OVERHEAD = 7
MAX_DATA_LENGTH = 0xFF


def checksum(packet_type: int, data: bytes) -> int:
    """XOR of the type byte, the length byte and every data byte."""
    result = packet_type ^ len(data)
    for b in data:
        result ^= b
    return result


@dataclass(frozen=True)
class Packet:
    """A logical (type, data) pair carried by one frame."""

    type: int
    data: bytes = b""

    def __post_init__(self):
        if not 0 <= self.type <= 0xFF:
            raise InvalidArgumentError(f"Packet type out of range: {self.type}")
        if len(self.data) > MAX_DATA_LENGTH:
            raise InvalidArgumentError(
                f"Packet data too long: {len(self.data)} bytes (max {MAX_DATA_LENGTH})"
            )
        # Accept bytearray/memoryview but always store immutable bytes
        object.__setattr__(self, "data", bytes(self.data))

    def encode(self) -> bytes:
        """Encode packet to a frame for transmission."""
        return (
            HEAD
            + bytes([self.type, len(self.data)])
            + self.data
            + bytes([checksum(self.type, self.data)])
            + TAIL
        )

    @classmethod
    def decode(cls, frame: bytes) -> "Packet":
        """
        Decode exactly one frame into a Packet.

        Raises:
            FramingError: Bad markers or a length that disagrees with the header
            ChecksumError: Embedded checksum does not match the contents
        """
        if len(frame) < FRAME_OVERHEAD:
            raise FramingError(f"Frame too short: {len(frame)} bytes")

        if frame[:2] != HEAD:
            raise FramingError(f"Invalid start bytes: {bytes(frame[:2]).hex()}")
        if frame[-2:] != TAIL:
            raise FramingError(f"Invalid end bytes: {bytes(frame[-2:]).hex()}")

        packet_type = frame[2]
        data_len = frame[3]

        if len(frame) != FRAME_OVERHEAD + data_len:
            raise FramingError(
                f"Frame length {len(frame)} does not match declared data length {data_len}"
            )

        payload = bytes(frame[4:4 + data_len])
        expected = checksum(packet_type, payload)
        actual = frame[4 + data_len]

        if expected != actual:
            raise ChecksumError(
                f"Invalid checksum for type {packet_type}: "
                f"expected 0x{expected:02X}, got 0x{actual:02X}"
            )

        return cls(type=packet_type, data=payload)

    def __repr__(self) -> str:
        return f"Packet(type=0x{self.type:02X}, data={self.data.hex()})"


def encode(packet_type: int, data: bytes = b"") -> bytes:
    """Encode a (type, data) pair to a wire frame."""
    return Packet(packet_type, data).encode()


def decode(frame: bytes) -> Packet:
    """Decode a single complete wire frame."""
    return Packet.decode(frame)


class FrameReassembler:
    """
    Turns an arbitrarily fragmented byte stream into complete packets.

    Bytes that do not yet form a full frame are kept until the next call
    to feed(). Corrupt frames are dropped and logged; they never propagate.
    """

    def __init__(self):
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet resolved into a frame."""
        return len(self._buffer)

    def reset(self):
        """Discard any buffered partial frame."""
        self._buffer.clear()

    def feed(self, data: bytes) -> list[Packet]:
        """
        Append newly received bytes and return every packet they complete.

        Args:
            data: Bytes as delivered by the transport (may be empty)

        Returns:
            Packets in arrival order (possibly empty)
        """
        packets = []
        if data:
            self._buffer.extend(data)

        while len(self._buffer) > 4:
            if self._buffer[:2] != HEAD:
                self._resync()
                continue

            frame_length = self._buffer[3] + FRAME_OVERHEAD
            if len(self._buffer) < frame_length:
                # Incomplete frame, wait for more bytes
                break

            frame = bytes(self._buffer[:frame_length])
            try:
                packet = Packet.decode(frame)
            except ChecksumError as e:
                logger.warning("Dropping frame: %s", e)
                del self._buffer[:frame_length]
                continue
            except PacketError as e:
                # Header looked valid but the frame is not; rescan from the next byte
                logger.warning("Dropping byte after framing error: %s", e)
                del self._buffer[:1]
                continue

            logger.debug("RX %r", packet)
            packets.append(packet)
            del self._buffer[:frame_length]

        return packets

    def _resync(self):
        """Discard bytes up to the next frame start marker."""
        index = self._buffer.find(HEAD, 1)
        if index < 0:
            # A lone trailing 0x55 may be the first half of the next marker
            keep = 1 if self._buffer[-1] == HEAD[0] else 0
            index = len(self._buffer) - keep
        logger.warning("Discarding %d byte(s) outside of a frame", index)
        del self._buffer[:index]
