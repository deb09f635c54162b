"""
Response Parsers for NIIMBOT Printer Commands.

Each parser takes the data bytes of a response packet (frame markers,
type, length and checksum already stripped by the codec).
"""

import struct
from dataclasses import dataclass
from typing import NamedTuple, Optional, Union

from .commands import InfoCode
from .errors import MalformedResponseError


@dataclass
class PrintStatus:
    """
    Parsed GET_PRINT_STATUS response.

    Response structure (big-endian):
        Offset  Length  Field
        0-1     2       Page counter
        2       1       Progress 1 (percent)
        3       1       Progress 2 (percent)
    """

    page: int
    progress1: int
    progress2: int

    @classmethod
    def parse(cls, data: bytes) -> "PrintStatus":
        if len(data) < 4:
            raise MalformedResponseError(
                f"Print status response too short: {len(data)} bytes"
            )
        page, progress1, progress2 = struct.unpack(">HBB", data[:4])
        return cls(page=page, progress1=progress1, progress2=progress2)

    @property
    def is_complete(self) -> bool:
        """Both progress counters report 100%."""
        return self.progress1 == 100 and self.progress2 == 100


class HeartbeatLayout(NamedTuple):
    """Byte offsets of each heartbeat field; None when the layout lacks it."""
    closing_state: Optional[int] = None
    power_level: Optional[int] = None
    paper_state: Optional[int] = None
    rfid_read_state: Optional[int] = None


# Heartbeat responses carry no version field; firmware variants are told
# apart by payload length alone.
HEARTBEAT_LAYOUTS = {
    20: HeartbeatLayout(paper_state=18, rfid_read_state=19),
    19: HeartbeatLayout(closing_state=15, power_level=16, paper_state=17, rfid_read_state=18),
    13: HeartbeatLayout(closing_state=9, power_level=10, paper_state=11, rfid_read_state=12),
    10: HeartbeatLayout(closing_state=8, power_level=9, rfid_read_state=8),
    9: HeartbeatLayout(closing_state=8),
}


@dataclass
class Heartbeat:
    """Parsed GET_HEART_BEAT response for a known payload layout."""

    layout_length: int
    closing_state: Optional[int] = None
    power_level: Optional[int] = None
    paper_state: Optional[int] = None
    rfid_read_state: Optional[int] = None
    raw_data: bytes = b""

    @property
    def door_open(self) -> Optional[bool]:
        if self.closing_state is None:
            return None
        return bool(self.closing_state)

    @property
    def has_paper(self) -> Optional[bool]:
        if self.paper_state is None:
            return None
        return bool(self.paper_state)

    @classmethod
    def parse(cls, data: bytes) -> Union["Heartbeat", "UnknownHeartbeat"]:
        """
        Parse a heartbeat payload using the layout selected by its length.

        Returns:
            Heartbeat for known lengths, UnknownHeartbeat otherwise
        """
        layout = HEARTBEAT_LAYOUTS.get(len(data))
        if layout is None:
            return UnknownHeartbeat(raw_data=bytes(data))

        fields = {
            name: (data[offset] if offset is not None else None)
            for name, offset in layout._asdict().items()
        }
        return cls(layout_length=len(data), raw_data=bytes(data), **fields)


@dataclass
class UnknownHeartbeat:
    """Heartbeat payload whose length matches no known layout."""

    raw_data: bytes

    def __str__(self) -> str:
        return f"UnknownHeartbeat({len(self.raw_data)} bytes: {self.raw_data.hex()})"


@dataclass
class RFIDTag:
    """
    Parsed GET_RFID response.

    Response structure:
        Offset  Length  Field
        0-7     8       Tag UUID
        8       1       Barcode length (N)
        9       N       Barcode (UTF-8)
        9+N     1       Serial length (M)
        10+N    M       Serial (UTF-8)
        10+N+M  2       Total label length (big-endian)
        12+N+M  2       Used label length (big-endian)
        14+N+M  1       Tag type
    """

    uuid: str
    barcode: str
    serial: str
    total_length: int
    used_length: int
    tag_type: int

    @classmethod
    def parse(cls, data: bytes) -> Optional["RFIDTag"]:
        """
        Parse GET_RFID response bytes.

        Returns:
            RFIDTag, or None when no tag is present (first byte is zero)

        Raises:
            MalformedResponseError: If the payload is truncated
        """
        if not data or data[0] == 0:
            return None

        try:
            uuid = data[0:8].hex()
            idx = 8

            barcode_len = data[idx]
            idx += 1
            barcode = data[idx:idx + barcode_len].decode("utf-8")
            idx += barcode_len

            serial_len = data[idx]
            idx += 1
            serial = data[idx:idx + serial_len].decode("utf-8")
            idx += serial_len

            total_length, used_length, tag_type = struct.unpack(">HHB", data[idx:idx + 5])
        except (IndexError, struct.error, UnicodeDecodeError) as e:
            raise MalformedResponseError(f"Invalid RFID response: {e}") from e

        return cls(
            uuid=uuid,
            barcode=barcode,
            serial=serial,
            total_length=total_length,
            used_length=used_length,
            tag_type=tag_type,
        )


def decode_info(key: InfoCode, data: bytes) -> Union[str, int]:
    """
    Decode a GET_INFO response according to its key.

    DEVICE_SERIAL is a UTF-8 string, SOFTWARE_VERSION and HARDWARE_VERSION
    are "major.minor" strings, DEVICE_TYPE is a big-endian 16-bit integer
    and every other key is a single byte.
    """
    try:
        if key == InfoCode.DEVICE_SERIAL:
            return data.decode("utf-8")
        if key in (InfoCode.SOFTWARE_VERSION, InfoCode.HARDWARE_VERSION):
            return f"{data[0]}.{data[1]}"
        if key == InfoCode.DEVICE_TYPE:
            return struct.unpack(">H", data[:2])[0]
        return data[0]
    except (IndexError, struct.error, UnicodeDecodeError) as e:
        raise MalformedResponseError(
            f"Invalid {InfoCode(key).name} response ({data.hex()}): {e}"
        ) from e
