"""
Image Rasterization for NIIMBOT Printers.

Converts a decoded grayscale bitmap into IMAGE_DATA row payloads. Pixel
polarity is inverted before rasterizing, so any non-zero pixel is burned
(printed) and zero is left blank.

Row payload layout (big-endian):
    Offset  Length  Field
    0-1     2       Row index
    2       1       Left margin
    3       1       Right margin
    4-5     2       Repeat count
    6-      N       Packed pixels, MSB first, N = ceil(width / 8)
"""

import logging
import struct
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Iterator, Optional, Protocol, Sequence, Union

from PIL import Image, ImageOps

from .errors import ImageError, ImageSizeError, InvalidArgumentError

logger = logging.getLogger(__name__)

# Image size limits to prevent memory exhaustion from malicious/malformed images
MAX_IMAGE_DIMENSION = 10000  # Maximum width or height in pixels
MAX_IMAGE_PIXELS = 10_000_000  # Maximum total pixels (10 megapixels)

ROW_HEADER = struct.Struct(">HBBH")
MAX_ROW_INDEX = 0xFFFF
MAX_MARGIN = 0xFF


class Bitmap(Protocol):
    """Decoded grayscale bitmap, printable pixels non-zero."""

    width: int
    height: int

    def pixel_at(self, x: int, y: int) -> int:
        ...


@dataclass(frozen=True)
class GrayBitmap:
    """
    Row-major 8-bit bitmap.

    Attributes:
        width: Width in pixels
        height: Height in pixels
        pixels: width * height intensity bytes, row by row
    """
    width: int
    height: int
    pixels: bytes

    def __post_init__(self):
        if self.width < 0 or self.height < 0:
            raise InvalidArgumentError(f"Invalid bitmap size {self.width}x{self.height}")
        if len(self.pixels) != self.width * self.height:
            raise InvalidArgumentError(
                f"Expected {self.width * self.height} pixels, got {len(self.pixels)}"
            )

    def pixel_at(self, x: int, y: int) -> int:
        return self.pixels[y * self.width + x]

    def row(self, y: int) -> bytes:
        start = y * self.width
        return self.pixels[start:start + self.width]

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence[int]]) -> "GrayBitmap":
        """Build a bitmap from equal-length rows of intensities."""
        width = len(rows[0]) if rows else 0
        if any(len(row) != width for row in rows):
            raise InvalidArgumentError("All rows must have the same width")
        return cls(width, len(rows), bytes(v for row in rows for v in row))

    @classmethod
    def from_image(cls, image: Image.Image, threshold: Optional[int] = None) -> "GrayBitmap":
        """
        Convert a PIL image to a print-polarity bitmap.

        The image is converted to grayscale and inverted so dark pixels
        become non-zero.

        Args:
            image: Source image, any mode
            threshold: If given, source pixels darker than this become
                fully printed and the rest blank; otherwise every pixel
                that is not pure white prints
        """
        gray = ImageOps.invert(image.convert("L"))
        if threshold is not None:
            cutoff = 255 - threshold
            gray = gray.point(lambda v: 255 if v > cutoff else 0)
        return cls(gray.width, gray.height, gray.tobytes())


ImageSource = Union[str, Path, bytes, Image.Image]


def _check_size(width: int, height: int):
    if width > MAX_IMAGE_DIMENSION or height > MAX_IMAGE_DIMENSION:
        raise ImageSizeError(
            f"Image dimensions ({width}x{height}) exceed maximum "
            f"({MAX_IMAGE_DIMENSION}x{MAX_IMAGE_DIMENSION})"
        )
    if width * height > MAX_IMAGE_PIXELS:
        raise ImageSizeError(
            f"Image pixel count ({width * height:,}) exceeds maximum ({MAX_IMAGE_PIXELS:,})"
        )


def _open(source: Union[str, Path, bytes]) -> Image.Image:
    if isinstance(source, bytes):
        stream = BytesIO(source)
    else:
        stream = Path(source)
        if not stream.is_file():
            raise ImageError(f"Image file not found: {stream}")
    try:
        return Image.open(stream)
    except (OSError, ValueError) as e:
        raise ImageError(f"Failed to load image: {e}") from e


def load_image(source: ImageSource) -> Image.Image:
    """
    Open an image and check it against the size limits.

    Image.open only parses the header, so an oversized file is rejected
    before its pixels are decoded.

    Raises:
        ImageError: Missing file, unreadable data or unsupported source type
        ImageSizeError: Width, height or pixel count over the limits
    """
    if isinstance(source, Image.Image):
        image = source
    elif isinstance(source, (str, Path, bytes)):
        image = _open(source)
    else:
        raise ImageError(f"Unsupported image type: {type(source)}")

    _check_size(image.width, image.height)
    return image


def as_bitmap(source: Union[Bitmap, ImageSource], threshold: Optional[int] = None) -> Bitmap:
    """Return a Bitmap unchanged; load and convert anything else."""
    if hasattr(source, "pixel_at"):
        return source
    return GrayBitmap.from_image(load_image(source), threshold=threshold)


@dataclass(frozen=True)
class RasterRow:
    """One scanline ready to be sent as an IMAGE_DATA payload."""
    row_index: int
    left_margin: int
    right_margin: int
    repeat_count: int
    bits: bytes

    def to_payload(self) -> bytes:
        header = ROW_HEADER.pack(
            self.row_index, self.left_margin, self.right_margin, self.repeat_count
        )
        return header + self.bits


def pack_row(pixels: Sequence[int]) -> bytes:
    """
    Pack one row of pixels into bytes, MSB is the leftmost pixel.

    Non-zero pixels become 1 bits. A trailing partial byte is padded
    with 0 (blank) bits.
    """
    packed = bytearray((len(pixels) + 7) // 8)
    for x, value in enumerate(pixels):
        if value:
            packed[x >> 3] |= 0x80 >> (x & 7)
    return bytes(packed)


def row_margins(pixels: Sequence[int]) -> tuple[int, int]:
    """
    Count blank pixels at the outer edge of each half of a row.

    Each half is width // 2 pixels wide (the center column of an odd width
    belongs to neither). A fully blank half reports the whole half width.
    Only the blank run at the outer edge counts, so interior pixels give a
    different result than midpoint minus set bits: 0001000000100000 is
    (3, 5) here and (7, 7) under that formula.

    Returns:
        (left_margin, right_margin), each saturated at 255
    """
    midpoint = len(pixels) // 2
    left_half = pixels[:midpoint]
    right_half = pixels[len(pixels) - midpoint:]

    left = next((i for i, v in enumerate(left_half) if v), midpoint)
    right = next((i for i, v in enumerate(reversed(right_half)) if v), midpoint)

    return min(left, MAX_MARGIN), min(right, MAX_MARGIN)


def _row_pixels(bitmap: Bitmap, y: int) -> Sequence[int]:
    row = getattr(bitmap, "row", None)
    if row is not None:
        return row(y)
    return [bitmap.pixel_at(x, y) for x in range(bitmap.width)]


def rasterize(bitmap: Bitmap, compute_margins: bool = True) -> Iterator[RasterRow]:
    """
    Yield one RasterRow per bitmap row, top to bottom.

    Args:
        bitmap: Print-polarity bitmap
        compute_margins: Fill in left/right margins; zeros otherwise

    Raises:
        InvalidArgumentError: If the bitmap has more rows than a row index can address
    """
    if bitmap.height > MAX_ROW_INDEX + 1:
        raise InvalidArgumentError(
            f"Bitmap height {bitmap.height} exceeds {MAX_ROW_INDEX + 1} rows"
        )

    if bitmap.width % 8 != 0:
        logger.warning(
            "Image width %d not a multiple of 8; padding rows with %d blank bit(s)",
            bitmap.width, -bitmap.width % 8,
        )

    for y in range(bitmap.height):
        pixels = _row_pixels(bitmap, y)
        left, right = row_margins(pixels) if compute_margins else (0, 0)
        yield RasterRow(
            row_index=y,
            left_margin=left,
            right_margin=right,
            repeat_count=1,
            bits=pack_row(pixels),
        )


def create_test_pattern(width: int = 96, height: int = 96) -> GrayBitmap:
    """Border plus both diagonals, printed pixels set to 0xFF."""
    pixels = bytearray(width * height)
    for y in range(height):
        for x in range(width):
            border = x in (0, width - 1) or y in (0, height - 1)
            diagonal = y < width and x in (y, width - 1 - y)
            if border or diagonal:
                pixels[y * width + x] = 0xFF
    return GrayBitmap(width, height, bytes(pixels))
