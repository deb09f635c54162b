"""
Exception hierarchy for the NIIMBOT driver.

Every error raised by this package derives from PrinterError so callers
can catch the whole family with a single except clause.
"""


class PrinterError(Exception):
    """Base exception for all printer errors."""

    pass


# --- Packet Errors ---


class PacketError(PrinterError):
    """A frame could not be decoded."""

    pass


class FramingError(PacketError):
    """Frame is missing its start/end markers or has an inconsistent length."""

    pass


class ChecksumError(PacketError):
    """Frame checksum does not match its contents."""

    pass


# --- Session Errors ---


class DeviceRejectedError(PrinterError):
    """Printer answered with a value error (malformed or out-of-range command)."""

    pass


class UnsupportedCommandError(PrinterError):
    """Printer answered that the command is not implemented."""

    pass


class ResponseTimeoutError(PrinterError):
    """No matching response arrived within the read attempt budget."""

    def __init__(self, response_code: int, attempts: int):
        super().__init__(
            f"No response with type {response_code} after {attempts} read attempt(s)"
        )
        self.response_code = response_code
        self.attempts = attempts


class MalformedResponseError(PrinterError):
    """Response payload is too short or otherwise unparseable."""

    pass


class ConcurrentRequestError(PrinterError, RuntimeError):
    """A request was issued while another one is still awaiting its response."""

    pass


class InvalidArgumentError(PrinterError, ValueError):
    """Caller supplied an out-of-range value."""

    pass


# --- Transport Errors ---


class TransportError(PrinterError):
    """Error opening or talking to the byte-stream transport."""

    pass


class TransportClosedError(TransportError):
    """Operation attempted on a transport that is not open."""

    pass


class DeviceNotFoundError(TransportError):
    """No printer matched the requested or auto-detected address."""

    pass


# --- Image Errors ---


class ImageError(PrinterError):
    """Error processing image for printing."""

    pass


class ImageSizeError(ImageError, ValueError):
    """Image dimensions exceed safety limits."""

    pass
