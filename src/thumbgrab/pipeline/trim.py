"""
Border trimming.

Removes uniform dark bands (letterbox/pillarbox) from the edges of an image
and re-encodes the result. The crop search works on a raw interleaved pixel
buffer; Pillow is only used to decode and encode.
"""

from __future__ import annotations

import io
from dataclasses import dataclass

from PIL import Image

from thumbgrab.config import DEFAULT_JPEG_QUALITY, DEFAULT_TRIM_THRESHOLD
from thumbgrab.errors import EmptyAfterTrim, ImageDecodeError

from .generator import CandidateDescriptor

OUTPUT_FORMAT = "JPEG"
OUTPUT_EXTENSION = "jpg"


@dataclass(frozen=True)
class CropBox:
    """Half-open rectangle ``[left, right) x [top, bottom)``."""

    left: int
    top: int
    right: int
    bottom: int

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    def is_full(self, width: int, height: int) -> bool:
        return (self.left, self.top, self.right, self.bottom) == (0, 0, width, height)


@dataclass(frozen=True)
class ProcessedImage:
    """
    A trimmed, re-encoded image.

    Attributes:
        candidate: Descriptor the image was fetched for
        data: Encoded image bytes
        width: Final width
        height: Final height
        quality: Encoder quality used
        crop: Rectangle kept from the decoded image
        original_width: Decoded width before trimming
        original_height: Decoded height before trimming
        extension: File extension matching ``data``
    """

    candidate: CandidateDescriptor
    data: bytes
    width: int
    height: int
    quality: int
    crop: CropBox
    original_width: int
    original_height: int
    extension: str = OUTPUT_EXTENSION


def _is_blank(run: bytes, stride: int, threshold: int) -> bool:
    # ``run`` holds whole pixels; channels 0-2 are colour, the rest is ignored.
    return (
        max(run[0::stride]) <= threshold
        and max(run[1::stride]) <= threshold
        and max(run[2::stride]) <= threshold
    )


def find_crop_box(
    pixels: bytes,
    width: int,
    height: int,
    threshold: int = DEFAULT_TRIM_THRESHOLD,
    channels: int = 4,
) -> CropBox:
    """
    Locate the rectangle left after removing blank border rows and columns.

    A row or column is blank when every pixel in it has its first three
    channels at or below ``threshold``. Rows are scanned over the full width;
    columns only over the rows that survived the row scan. Each scan stops at
    the first non-blank row or column.

    Parameters:
        pixels: Interleaved buffer, row-major, ``channels`` bytes per pixel
        width: Image width in pixels
        height: Image height in pixels
        threshold: Blank threshold on a 0-255 scale
        channels: Bytes per pixel (at least 3)

    Returns:
        CropBox of the content; the full image when nothing is blank

    Raises:
        EmptyAfterTrim: If every row is blank
        ValueError: If the buffer is too short or has fewer than 3 channels
    """
    if channels < 3:
        raise ValueError(f"need at least 3 channels, got {channels}")
    if width == 0 or height == 0:
        return CropBox(0, 0, width, height)

    buf = bytes(pixels)
    row_len = width * channels
    if len(buf) < row_len * height:
        raise ValueError(
            f"buffer holds {len(buf)} bytes, expected {row_len * height} for {width}x{height}x{channels}"
        )

    def row_blank(y: int) -> bool:
        start = y * row_len
        return _is_blank(buf[start : start + row_len], channels, threshold)

    top = 0
    while top < height and row_blank(top):
        top += 1
    if top == height:
        raise EmptyAfterTrim(f"all {height} rows of a {width}x{height} image are blank")

    bottom = height
    while bottom > top and row_blank(bottom - 1):
        bottom -= 1

    band_start = top * row_len
    band_end = bottom * row_len

    def column_blank(x: int) -> bool:
        start = band_start + x * channels
        return (
            max(buf[start:band_end:row_len]) <= threshold
            and max(buf[start + 1 : band_end : row_len]) <= threshold
            and max(buf[start + 2 : band_end : row_len]) <= threshold
        )

    left = 0
    while left < width and column_blank(left):
        left += 1

    right = width
    while right > left and column_blank(right - 1):
        right -= 1

    return CropBox(left, top, right, bottom)


def crop_pixels(pixels: bytes, width: int, box: CropBox, channels: int = 4) -> bytes:
    """Copy the pixels inside ``box`` into a new tightly packed buffer."""
    row_len = width * channels
    return b"".join(
        pixels[y * row_len + box.left * channels : y * row_len + box.right * channels]
        for y in range(box.top, box.bottom)
    )


def decode_image(data: bytes) -> Image.Image:
    """
    Decode image bytes.

    Raises:
        ImageDecodeError: If the bytes are not a decodable, non-empty image
    """
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f"cannot decode image: {e}") from e
    if image.width <= 0 or image.height <= 0:
        raise ImageDecodeError(f"image has no pixels ({image.width}x{image.height})")
    return image


def trim_image(
    image: Image.Image,
    threshold: int = DEFAULT_TRIM_THRESHOLD,
) -> tuple[Image.Image, CropBox]:
    """
    Remove blank borders from a decoded image.

    Returns:
        The trimmed RGBA image and the crop box that was kept

    Raises:
        EmptyAfterTrim: If the whole image is blank
    """
    rgba = image.convert("RGBA")
    width, height = rgba.size
    pixels = rgba.tobytes()
    box = find_crop_box(pixels, width, height, threshold, channels=4)
    if box.is_full(width, height):
        return rgba, box
    cropped = Image.frombytes(
        "RGBA", (box.width, box.height), crop_pixels(pixels, width, box, channels=4)
    )
    return cropped, box


def encode_image(image: Image.Image, quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    """Encode as JPEG at the given quality."""
    out = io.BytesIO()
    image.convert("RGB").save(out, OUTPUT_FORMAT, quality=quality)
    return out.getvalue()


def process_image(
    candidate: CandidateDescriptor,
    data: bytes,
    *,
    threshold: int = DEFAULT_TRIM_THRESHOLD,
    quality: int = DEFAULT_JPEG_QUALITY,
) -> ProcessedImage:
    """
    Decode, trim and re-encode one fetched image.

    Pure CPU work; callers run it in a worker thread.

    Raises:
        ImageDecodeError: If ``data`` cannot be decoded
        EmptyAfterTrim: If the decoded image is entirely blank
    """
    image = decode_image(data)
    trimmed, box = trim_image(image, threshold)
    return ProcessedImage(
        candidate=candidate,
        data=encode_image(trimmed, quality),
        width=trimmed.width,
        height=trimmed.height,
        quality=quality,
        crop=box,
        original_width=image.width,
        original_height=image.height,
    )
