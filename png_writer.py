"""
PNG Encoding Module

Writes a ReadableImage as an 8-bit palette PNG. Chunks are always written in
the same order: IHDR, a 256-entry PLTE, one IDAT per scanline (scanlines that
produce no compressed output yet get no chunk), then IEND.

Every scanline is stored with filter type 0 (None); the whole image is one
continuous zlib stream split across the IDAT chunks.
"""

import logging
from typing import BinaryIO

from png_chunk import IDAT, IEND, IHDR, PLTE, ChunkWriter
from png_filters import FilterType
from png_header import (
    IHDR_LENGTH,
    PALETTE_SIZE,
    PNG_SIGNATURE,
    InvalidPNGError,
    PNGHeader,
    PNGIOError,
)
from png_image import ReadableImage
from png_io import write_bytes
from png_zlib import DEFAULT_COMPRESSION_LEVEL, Compressor

logger = logging.getLogger(__name__)


class PNGWriter:
    """Encodes one ReadableImage to a PNG stream."""

    def __init__(
        self,
        image: ReadableImage,
        compression_level: int = DEFAULT_COMPRESSION_LEVEL,
    ):
        self.image = image
        self.compression_level = compression_level
        self.header: PNGHeader | None = None

    def write(self, stream: BinaryIO) -> None:
        """
        Write the whole image to the stream

        The image's end_read() is called exactly once, with success=False if
        anything goes wrong.

        Raises:
            PNGError: If the image cannot be encoded or the stream fails
        """
        success = False
        try:
            self.image.begin_read()
            self._write(stream)
            success = True
        finally:
            self.image.end_read(success)

    def _write(self, stream: BinaryIO) -> None:
        info = self.image.get_image_info()
        is_valid, errors = info.validate()
        if not is_valid:
            raise InvalidPNGError(
                "Cannot write image:\n" + "\n".join(f"  - {e}" for e in errors)
            )
        self.header = PNGHeader.from_image_info(info)

        write_bytes(stream, PNG_SIGNATURE)
        self._write_header(stream)
        self._write_palette(stream)
        self._write_image_data(stream)
        self._write_end(stream)

    def _write_header(self, stream: BinaryIO) -> None:
        writer = ChunkWriter(stream, IHDR_LENGTH, IHDR)
        writer.write(self.header.pack())
        writer.end()

    def _write_palette(self, stream: BinaryIO) -> None:
        writer = ChunkWriter(stream, 3 * PALETTE_SIZE, PLTE)
        for index in range(PALETTE_SIZE):
            entry = self.image.get_palette_entry(index)
            if not all(0 <= channel <= 0xFF for channel in entry):
                raise InvalidPNGError(
                    f"Palette entry {index} has a channel outside 0-255: "
                    f"{tuple(entry)}"
                )
            writer.write(bytes(entry))
        writer.end()

    def _write_image_data(self, stream: BinaryIO) -> None:
        width = self.header.width
        height = self.header.height
        compressor = Compressor(self.compression_level)

        for y in range(height):
            scanline = bytes(self.image.get_scanline(y))
            if len(scanline) != width:
                raise InvalidPNGError(
                    f"Scanline {y} has {len(scanline)} bytes (expected {width})"
                )

            compressor.feed(bytes((FilterType.NONE,)))
            compressor.feed(scanline)

            if y == height - 1:
                # Final scanline: terminate the zlib stream
                compressor.finish()

            if len(compressor):
                writer = ChunkWriter(stream, len(compressor), IDAT)
                writer.write(compressor.output)
                writer.end()
                logger.debug(
                    "Wrote IDAT chunk at scanline %d (%d bytes)", y, len(compressor)
                )
                compressor.clear()

    def _write_end(self, stream: BinaryIO) -> None:
        ChunkWriter(stream, 0, IEND).end()


def save_png(stream: BinaryIO, image: ReadableImage) -> None:
    """
    Save an image to a binary stream in PNG format

    Args:
        stream: Stream opened in binary mode
        image: The image to be saved

    Raises:
        PNGError: If the image cannot be encoded. The stream is left in an
            indeterminate state.
    """
    PNGWriter(image).write(stream)


def save_png_file(file_path: str, image: ReadableImage) -> None:
    """
    Save an image to a PNG file

    Raises:
        PNGIOError: If the file cannot be opened or written
        PNGError: If the image cannot be encoded
    """
    try:
        with open(file_path, "wb") as f:
            save_png(f, image)
    except OSError as e:
        raise PNGIOError(f"Failed to write file: {e}") from e
