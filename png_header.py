"""
PNG Header Module

This module holds the error types, format constants and the basic image
description shared by the PNG reader and writer, plus parsing and validation
of the IHDR chunk payload.

Only 8-bit palette-indexed, non-interlaced images are supported. The IHDR
payload is always 13 bytes; all multi-byte integers are big-endian.

Reference: W3C Portable Network Graphics (PNG), Second Edition
"""

import struct
from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple, Self


class PNGError(Exception):
    """Base exception for PNG-related errors"""

    pass


class PNGIOError(PNGError):
    """Raised when the underlying stream is exhausted or cannot be written"""

    pass


class InvalidPNGError(PNGError):
    """Raised when PNG data is structurally invalid or unsupported"""

    pass


class PNGChecksumError(PNGError):
    """Raised when a chunk's stored CRC does not match its contents"""

    pass


class PNGCompressionError(PNGError):
    """Raised when the zlib engine reports an error"""

    pass


# This 8 byte signature appears at the start of every PNG file.
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

# IHDR payload: width, height, bit depth, color type, compression method,
# filter method, interlace method.
IHDR_FORMAT = ">IIBBBBB"
IHDR_LENGTH = struct.calcsize(IHDR_FORMAT)

BIT_DEPTH = 8  # 8 bits per pixel
COLOR_TYPE = 3  # Palette
COMPRESSION_METHOD = 0  # Deflate
FILTER_METHOD = 0  # Adaptive filtering
INTERLACE_METHOD = 0  # No interlace

PALETTE_SIZE = 256
MAX_DIMENSION = 0xFFFFFFFF


class ImageFormat(Enum):
    # Only one format currently supported.
    PALETTED8 = "8-bit palette-indexed"


@dataclass(frozen=True)
class ImageInfo:
    """Width and height of an image, in pixels, plus its pixel format."""

    width: int
    height: int
    format: ImageFormat = ImageFormat.PALETTED8

    def validate(self) -> tuple[bool, list[str]]:
        """
        Validate the image dimensions

        Returns:
            Tuple of (is_valid, list_of_errors)
        """
        errors = []

        if self.width <= 0 or self.height <= 0:
            errors.append(f"Invalid image size: {self.width}x{self.height}")

        if self.width > MAX_DIMENSION or self.height > MAX_DIMENSION:
            errors.append(
                f"Image size {self.width}x{self.height} does not fit in "
                "32-bit fields"
            )

        if self.format is not ImageFormat.PALETTED8:
            errors.append(f"Unsupported image format: {self.format}")

        return (len(errors) == 0, errors)


class PaletteEntry(NamedTuple):
    red: int
    green: int
    blue: int


@dataclass
class PNGHeader:
    """
    PNG IHDR chunk payload (13 bytes total)

    Should be constructed using `PNGHeader.parse(payload)` when reading, or
    `PNGHeader.from_image_info(info)` when writing.
    """

    width: int  # Offset 0-3
    height: int  # Offset 4-7
    bit_depth: int  # Offset 8: must be 8
    color_type: int  # Offset 9: must be 3 (palette)
    compression_method: int  # Offset 10: must be 0
    filter_method: int  # Offset 11: must be 0
    interlace_method: int  # Offset 12: must be 0

    @classmethod
    def from_image_info(cls, info: ImageInfo) -> Self:
        return cls(
            info.width,
            info.height,
            BIT_DEPTH,
            COLOR_TYPE,
            COMPRESSION_METHOD,
            FILTER_METHOD,
            INTERLACE_METHOD,
        )

    @property
    def image_info(self) -> ImageInfo:
        return ImageInfo(self.width, self.height)

    def validate(self) -> tuple[bool, list[str]]:
        """
        Validate the IHDR fields against the supported subset

        Returns:
            Tuple of (is_valid, list_of_errors)
        """
        _, errors = self.image_info.validate()

        if self.bit_depth != BIT_DEPTH:
            errors.append(
                f"Unsupported bit depth: {self.bit_depth} "
                f"(only {BIT_DEPTH} is supported)"
            )

        if self.color_type != COLOR_TYPE:
            errors.append(
                f"Unsupported color type: {self.color_type} "
                f"(only {COLOR_TYPE} = palette is supported)"
            )

        if self.compression_method != COMPRESSION_METHOD:
            errors.append(
                f"Unsupported compression method: {self.compression_method}"
            )

        if self.filter_method != FILTER_METHOD:
            errors.append(f"Unsupported filter method: {self.filter_method}")

        if self.interlace_method != INTERLACE_METHOD:
            errors.append(
                f"Unsupported interlace method: {self.interlace_method} "
                "(interlaced images are not supported)"
            )

        return (len(errors) == 0, errors)

    def pack(self) -> bytes:
        """Serialize the header to its 13-byte IHDR payload"""
        try:
            return struct.pack(
                IHDR_FORMAT,
                self.width,
                self.height,
                self.bit_depth,
                self.color_type,
                self.compression_method,
                self.filter_method,
                self.interlace_method,
            )
        except struct.error as e:
            raise InvalidPNGError(f"Failed to pack IHDR chunk: {e}") from e

    @classmethod
    def parse(cls, payload: bytes) -> Self:
        """
        Parse and validate an IHDR chunk payload

        Args:
            payload: The 13 payload bytes of the IHDR chunk

        Returns:
            PNGHeader object containing the parsed fields

        Raises:
            InvalidPNGError: If the payload is malformed or unsupported
        """
        if len(payload) != IHDR_LENGTH:
            raise InvalidPNGError(
                f"Invalid IHDR chunk length: {len(payload)} "
                f"(expected {IHDR_LENGTH})"
            )

        try:
            fields = struct.unpack(IHDR_FORMAT, payload)
        except struct.error as e:
            raise InvalidPNGError(f"Failed to parse IHDR chunk: {e}") from e

        header = cls(*fields)

        is_valid, errors = header.validate()
        if not is_valid:
            error_msg = "Invalid PNG header:\n" + "\n".join(
                f"  - {e}" for e in errors
            )
            raise InvalidPNGError(error_msg)

        return header
