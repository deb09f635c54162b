"""
Command session: one request/response exchange at a time.

Responses are matched to requests purely by packet type, so the session
refuses to start a second request while one is still waiting for its
response.
"""

import asyncio
import logging
from typing import Optional

from .commands import PACKET_TYPE_UNIMPLEMENTED, PACKET_TYPE_VALUE_ERROR, CommandSpec
from .connection import Transport
from .errors import (
    ConcurrentRequestError,
    DeviceRejectedError,
    InvalidArgumentError,
    ResponseTimeoutError,
    TransportClosedError,
    UnsupportedCommandError,
)
from .protocol import FrameReassembler, Packet

logger = logging.getLogger(__name__)


class CommandSession:
    """Sends commands over an open transport and awaits their responses."""

    # Bounded polling for responses
    READ_ATTEMPTS = 10
    READ_INTERVAL = 0.1  # seconds

    DEFAULT_PAYLOAD = b"\x01"

    def __init__(
        self,
        transport: Transport,
        attempts: int = READ_ATTEMPTS,
        delay: float = READ_INTERVAL,
    ):
        """
        Args:
            transport: An already opened transport, owned by this session
            attempts: Number of reads before giving up on a response
            delay: Pause between reads in seconds
        """
        if attempts < 1:
            raise InvalidArgumentError(f"attempts must be at least 1, got {attempts}")
        self.transport = transport
        self.attempts = attempts
        self.delay = delay
        self._reassembler = FrameReassembler()
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        """True while a request is in flight."""
        return self._lock.locked()

    def _check_ready(self, spec: CommandSpec):
        if self._lock.locked():
            raise ConcurrentRequestError(
                f"Cannot send {spec} while another request is awaiting its response"
            )
        if not self.transport.is_open:
            raise TransportClosedError(f"Cannot send {spec}: transport not open")

    async def send(self, spec: CommandSpec, payload: bytes = DEFAULT_PAYLOAD) -> Packet:
        """
        Send a command and wait for its response packet.

        Args:
            spec: Command descriptor
            payload: Request data bytes

        Returns:
            The response packet

        Raises:
            DeviceRejectedError: Printer reported a value error
            UnsupportedCommandError: Printer does not implement the command
            ResponseTimeoutError: No matching response within the read budget
            ConcurrentRequestError: Another request is still in flight
            TransportClosedError: Transport is not open
        """
        if not spec.expects_response:
            raise InvalidArgumentError(f"{spec} has no response; use send_without_response()")

        self._check_ready(spec)
        async with self._lock:
            packet = Packet(spec.code, payload)
            logger.debug("TX %s %r", spec, packet)
            await self.transport.write(packet.encode())
            return await self._receive(spec)

    async def send_without_response(self, spec: CommandSpec, payload: bytes):
        """Write a command the printer does not answer, such as IMAGE_DATA."""
        self._check_ready(spec)
        async with self._lock:
            packet = Packet(spec.code, payload)
            logger.debug("TX %s %r", spec, packet)
            await self.transport.write(packet.encode())

    async def _receive(self, spec: CommandSpec) -> Packet:
        response_code = spec.response_code

        for attempt in range(self.attempts):
            if attempt:
                await asyncio.sleep(self.delay)

            data = await self.transport.read()
            for packet in self._reassembler.feed(data):
                match = self._check_packet(packet, response_code, spec)
                if match is not None:
                    return match

        raise ResponseTimeoutError(response_code, self.attempts)

    @staticmethod
    def _check_packet(packet: Packet, response_code: int, spec: CommandSpec) -> Optional[Packet]:
        if packet.type == PACKET_TYPE_VALUE_ERROR:
            raise DeviceRejectedError(f"Printer rejected {spec}: value error")
        if packet.type == PACKET_TYPE_UNIMPLEMENTED:
            raise UnsupportedCommandError(f"Printer does not implement {spec}")
        if packet.type == response_code:
            return packet

        logger.warning(
            "Expected response code %d but received %d!", response_code, packet.type
        )
        return None
