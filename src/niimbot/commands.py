"""
NIIMBOT Printer Command Definitions.

Every request code and the offset of its expected response code live in
this module. Session and printer code only ever refer to the descriptors
defined here.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from .errors import InvalidArgumentError

# Reserved inbound-only packet types
PACKET_TYPE_VALUE_ERROR = 219
PACKET_TYPE_UNIMPLEMENTED = 0


class RequestCode(IntEnum):
    """Request packet types understood by the printer."""
    START_PRINT = 1
    START_PAGE_PRINT = 3
    SET_DIMENSION = 19
    GET_RFID = 26
    ALLOW_PRINT_CLEAR = 32
    SET_LABEL_DENSITY = 33
    SET_LABEL_TYPE = 35
    GET_INFO = 64
    SET_AUDIO_SETTING = 88
    IMAGE_DATA = 133
    CALIBRATE_LABEL = 142
    GET_PRINT_STATUS = 163
    GET_HEART_BEAT = 220
    END_PAGE_PRINT = 227
    END_PRINT = 243


class InfoCode(IntEnum):
    """Keys accepted by GET_INFO. The response type is GET_INFO + key."""
    DENSITY = 1
    PRINT_SPEED = 2
    LABEL_TYPE = 3
    LANGUAGE_TYPE = 6
    AUTO_SHUTDOWN_TIME = 7
    DEVICE_TYPE = 8
    SOFTWARE_VERSION = 9
    BATTERY = 10
    DEVICE_SERIAL = 11
    HARDWARE_VERSION = 12


class LabelType(IntEnum):
    """Label media types."""
    GAP = 1          # Labels with gaps between them
    BLACK = 2        # Labels with black marks
    CONTINUOUS = 3   # Continuous tape
    TRANSPARENT = 5  # Transparent labels (calibration only)


# Valid ranges for SET_LABEL_DENSITY / SET_LABEL_TYPE
DENSITY_RANGE = range(1, 6)
LABEL_TYPE_RANGE = range(1, 4)

# Heartbeat request variant -> response offset. Variant 4 answers below
# its request code.
HEARTBEAT_RESPONSE_OFFSETS = {
    1: 1,
    2: 3,
    3: 2,
    4: -3,
}


@dataclass(frozen=True)
class CommandSpec:
    """
    Static description of one printer command.

    Attributes:
        name: Human readable command name (used in logs)
        code: Request packet type
        response_offset: Delta to the expected response type, or None for
            commands the printer does not answer
    """
    name: str
    code: int
    response_offset: Optional[int] = 1

    @property
    def expects_response(self) -> bool:
        return self.response_offset is not None

    @property
    def response_code(self) -> Optional[int]:
        """Expected response packet type, or None if no response is sent."""
        if self.response_offset is None:
            return None
        return self.code + self.response_offset

    def __str__(self) -> str:
        return f"{self.name}({self.code})"


class Commands:
    """Descriptor table for the printer command vocabulary."""

    START_PRINT = CommandSpec("START_PRINT", RequestCode.START_PRINT, 1)
    START_PAGE_PRINT = CommandSpec("START_PAGE_PRINT", RequestCode.START_PAGE_PRINT, 1)
    SET_DIMENSION = CommandSpec("SET_DIMENSION", RequestCode.SET_DIMENSION, 1)
    GET_RFID = CommandSpec("GET_RFID", RequestCode.GET_RFID, 1)
    ALLOW_PRINT_CLEAR = CommandSpec("ALLOW_PRINT_CLEAR", RequestCode.ALLOW_PRINT_CLEAR, 16)
    SET_LABEL_DENSITY = CommandSpec("SET_LABEL_DENSITY", RequestCode.SET_LABEL_DENSITY, 16)
    SET_LABEL_TYPE = CommandSpec("SET_LABEL_TYPE", RequestCode.SET_LABEL_TYPE, 16)
    SET_AUDIO_SETTING = CommandSpec("SET_AUDIO_SETTING", RequestCode.SET_AUDIO_SETTING, 1)
    IMAGE_DATA = CommandSpec("IMAGE_DATA", RequestCode.IMAGE_DATA, None)
    CALIBRATE_LABEL = CommandSpec("CALIBRATE_LABEL", RequestCode.CALIBRATE_LABEL, 1)
    GET_PRINT_STATUS = CommandSpec("GET_PRINT_STATUS", RequestCode.GET_PRINT_STATUS, 16)
    END_PAGE_PRINT = CommandSpec("END_PAGE_PRINT", RequestCode.END_PAGE_PRINT, 1)
    END_PRINT = CommandSpec("END_PRINT", RequestCode.END_PRINT, 1)

    @staticmethod
    def get_info(key: InfoCode) -> CommandSpec:
        """GET_INFO descriptor; the response offset equals the info key."""
        try:
            key = InfoCode(key)
        except ValueError:
            raise InvalidArgumentError(f"Unknown info key: {key}") from None
        return CommandSpec(f"GET_INFO[{key.name}]", RequestCode.GET_INFO, int(key))

    @staticmethod
    def heartbeat(variant: int = 1) -> CommandSpec:
        """GET_HEART_BEAT descriptor for a request variant (1-4)."""
        if variant not in HEARTBEAT_RESPONSE_OFFSETS:
            raise InvalidArgumentError(
                f"Invalid heartbeat variant; expected 1 - 4 but got {variant}"
            )
        return CommandSpec(
            f"GET_HEART_BEAT[{variant}]",
            RequestCode.GET_HEART_BEAT,
            HEARTBEAT_RESPONSE_OFFSETS[variant],
        )
