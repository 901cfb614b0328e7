"""
PNG Decoding Module

Reads an 8-bit palette PNG from a binary stream into a WritableImage.

The reader is a small state machine: after the signature it reads chunks one
at a time, checking each chunk's CRC before acting on it, and tracks which
required chunks (IHDR, PLTE, IDAT, IEND) have been seen so that duplicates
and out-of-order chunks are rejected. IDAT payloads are inflated as they
arrive and the decompressed bytes are unfiltered into scanlines, which are
handed to the image as soon as each one is complete.

Reference: W3C Portable Network Graphics (PNG), Sections 5 and 11
"""

import logging
from enum import Enum, IntFlag, auto
from typing import BinaryIO

from png_chunk import IDAT, IEND, IHDR, PLTE, ChunkReader
from png_filters import ScanlineUnfilter, filter_type_from_code
from png_header import (
    PALETTE_SIZE,
    PNG_SIGNATURE,
    InvalidPNGError,
    PaletteEntry,
    PNGHeader,
    PNGIOError,
)
from png_image import WritableImage
from png_io import at_eof, peekable, read_exact
from png_zlib import INITIAL_BUFFER_SIZE, Decompressor

logger = logging.getLogger(__name__)


class ReaderState(Enum):
    EXPECT_SIGNATURE = auto()
    EXPECT_HEADER = auto()
    READING_CHUNKS = auto()
    DONE = auto()


class RequiredChunk(IntFlag):
    # Bit order is the order the chunks must appear in
    IHDR = 1
    PLTE = 2
    IDAT = 4
    IEND = 8

    ALL = IHDR | PLTE | IDAT | IEND


_REQUIRED_CHUNKS = {
    IHDR: RequiredChunk.IHDR,
    PLTE: RequiredChunk.PLTE,
    IDAT: RequiredChunk.IDAT,
    IEND: RequiredChunk.IEND,
}


class PNGReader:
    """Decodes one PNG stream into a WritableImage."""

    def __init__(
        self, image: WritableImage, initial_buffer_size: int = INITIAL_BUFFER_SIZE
    ):
        self.image = image
        self.state = ReaderState.EXPECT_SIGNATURE
        self.chunks_seen = RequiredChunk(0)
        self.header: PNGHeader | None = None
        self._initial_buffer_size = initial_buffer_size
        self._last_chunk_type: bytes | None = None

        self._decompressor: Decompressor | None = None
        self._unfilter = ScanlineUnfilter()
        self._scanline = bytearray()
        self._prior_scanline = bytearray()
        self._x = 0
        self._y = -1
        self._image_done = False

    def read(self, stream: BinaryIO) -> None:
        """
        Decode the whole stream into the image

        Streams without peek() or seek() are read through a buffer. The
        image's end_write() is called exactly once, with success=False if
        anything goes wrong.

        Raises:
            PNGError: If the stream is not a valid supported PNG
        """
        success = False
        try:
            self.image.begin_write()
            with peekable(stream) as source:
                self._read(source)
            success = True
        finally:
            self.image.end_write(success)

    def _read(self, stream: BinaryIO) -> None:
        self._check_signature(stream)
        self.state = ReaderState.EXPECT_HEADER

        while not at_eof(stream):
            if self.state is ReaderState.DONE:
                # IEND must be the last chunk
                raise InvalidPNGError("Found data after IEND chunk")
            self._read_chunk(stream)

        if self.chunks_seen != RequiredChunk.ALL:
            missing = [
                chunk.name
                for chunk in RequiredChunk
                if chunk is not RequiredChunk.ALL and chunk not in self.chunks_seen
            ]
            raise InvalidPNGError(
                "Missing required chunk(s): " + ", ".join(missing)
            )

        if not self._image_done:
            raise InvalidPNGError(
                f"Incomplete image data: got {self._pixel_count()} of "
                f"{self.header.width * self.header.height} pixels"
            )

    def _check_signature(self, stream: BinaryIO) -> None:
        try:
            signature = read_exact(stream, len(PNG_SIGNATURE))
        except PNGIOError as e:
            raise InvalidPNGError(f"File is not a valid PNG image: {e}") from e

        if signature != PNG_SIGNATURE:
            raise InvalidPNGError("File is not a valid PNG image (bad signature)")

    def _read_chunk(self, stream: BinaryIO) -> None:
        reader = ChunkReader(stream)
        payload = reader.read_payload()
        # Verify integrity before acting on the type or payload
        reader.end()

        chunk_type = reader.chunk_type
        required = _REQUIRED_CHUNKS.get(chunk_type)

        if self.state is ReaderState.EXPECT_HEADER and chunk_type != IHDR:
            raise InvalidPNGError(
                f"Found {reader.name!r} chunk before the IHDR chunk"
            )

        if required is not None:
            self._check_order(required)

        if chunk_type == IHDR:
            self._read_header(payload)
            self.state = ReaderState.READING_CHUNKS
        elif chunk_type == PLTE:
            self._read_palette(payload)
        elif chunk_type == IDAT:
            self._read_image_data(payload)
        elif chunk_type == IEND:
            self._read_end(payload)
            self.state = ReaderState.DONE
        else:
            self._skip_unknown(reader)

        self._last_chunk_type = chunk_type

    def _check_order(self, chunk: RequiredChunk) -> None:
        # IDAT is the only required chunk that may occur more than once
        if chunk is not RequiredChunk.IDAT and chunk in self.chunks_seen:
            raise InvalidPNGError(f"Found duplicate {chunk.name} chunk")

        # A later chunk has already been seen
        if (chunk << 1) <= self.chunks_seen:
            raise InvalidPNGError(f"Found out-of-order {chunk.name} chunk")

        if (
            chunk is RequiredChunk.IDAT
            and chunk in self.chunks_seen
            and self._last_chunk_type != IDAT
        ):
            raise InvalidPNGError("IDAT chunks must be consecutive")

        self.chunks_seen |= chunk

    def _read_header(self, payload: bytes) -> None:
        self.header = PNGHeader.parse(payload)
        width = self.header.width

        self.image.set_image_info(self.header.image_info)

        # Set up for the first image data byte, which selects a filter
        self._scanline = bytearray(width)
        self._prior_scanline = bytearray(width)
        self._x = width
        self._y = -1

    def _read_palette(self, payload: bytes) -> None:
        if len(payload) % 3:
            raise InvalidPNGError(
                f"Bad PLTE chunk length: {len(payload)} is not a multiple of 3"
            )

        entry_count = len(payload) // 3
        if entry_count > PALETTE_SIZE:
            raise InvalidPNGError(
                f"PLTE chunk has {entry_count} entries (max {PALETTE_SIZE})"
            )

        for index in range(entry_count):
            offset = index * 3
            red, green, blue = payload[offset : offset + 3]
            self.image.set_palette_entry(index, PaletteEntry(red, green, blue))

    def _read_image_data(self, payload: bytes) -> None:
        if self._decompressor is None:
            self._decompressor = Decompressor(self._initial_buffer_size)

        self._decompressor.feed(payload)
        self._process_decompressed(self._decompressor.output)
        self._decompressor.clear()

    def _process_decompressed(self, data: bytes) -> None:
        width = self.header.width
        height = self.header.height
        scanline = self._scanline
        x = self._x

        for byte in data:
            if x == width:
                # Start of the next scanline: this byte selects the filter
                if self._y + 1 == height:
                    raise InvalidPNGError("Image data contains too many pixels")
                self._y += 1
                self._prior_scanline, self._scanline = (
                    self._scanline,
                    self._prior_scanline,
                )
                scanline = self._scanline
                prior = self._prior_scanline if self._y else None
                self._unfilter.begin_scanline(prior, filter_type_from_code(byte))
                x = 0
            else:
                scanline[x] = self._unfilter.unfilter(byte)
                x += 1
                if x == width:
                    self.image.set_scanline(self._y, bytes(scanline))
                    if self._y == height - 1:
                        self._image_done = True

        self._x = x

    def _read_end(self, payload: bytes) -> None:
        if payload:
            raise InvalidPNGError(
                f"IEND chunk must be empty (got {len(payload)} bytes)"
            )

    def _skip_unknown(self, reader: ChunkReader) -> None:
        if not reader.is_ancillary:
            # Critical chunks we don't understand must not be ignored
            raise InvalidPNGError(
                f"Unsupported critical chunk {reader.name!r}"
            )
        logger.debug(
            "Skipping ancillary chunk %r (%d bytes)", reader.name, reader.length
        )

    def _pixel_count(self) -> int:
        if self._y < 0:
            return 0
        return self._y * self.header.width + min(self._x, self.header.width)


def load_png(stream: BinaryIO, image: WritableImage) -> None:
    """
    Load a PNG image from a binary stream

    Args:
        stream: Stream opened in binary mode, positioned at the signature
        image: The image the decoded data is written to

    Raises:
        PNGError: If the data is not a valid supported PNG. The image is left
            in an indeterminate state.
    """
    PNGReader(image).read(stream)


def load_png_file(file_path: str, image: WritableImage) -> None:
    """
    Load a PNG image from a file

    Raises:
        PNGIOError: If the file cannot be opened or read
        PNGError: If the file is not a valid supported PNG
    """
    try:
        with open(file_path, "rb") as f:
            load_png(f, image)
    except OSError as e:
        raise PNGIOError(f"Failed to read file: {e}") from e
