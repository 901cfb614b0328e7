"""
PNG Chunk Module

Every PNG chunk is laid out as:

    length (4 bytes) | type (4 bytes) | payload (length bytes) | CRC (4 bytes)

The CRC covers the type code and payload. ChunkWriter and ChunkReader stream
a chunk field by field, keeping the running CRC up to date as they go.
"""

from typing import BinaryIO

from png_crc import CRCCalculator
from png_header import InvalidPNGError, PNGChecksumError
from png_io import (
    read_exact,
    read_uint32,
    write_bytes,
    write_byte,
    write_uint32,
)

IHDR = b"IHDR"
PLTE = b"PLTE"
IDAT = b"IDAT"
IEND = b"IEND"

MAX_CHUNK_LENGTH = 0xFFFFFFFF

# Bit 5 of the first type byte (lowercase letter) marks ancillary chunks
ANCILLARY_BIT = 0x20


def is_ancillary(chunk_type: bytes) -> bool:
    return bool(chunk_type[0] & ANCILLARY_BIT)


def chunk_name(chunk_type: bytes) -> str:
    return chunk_type.decode("latin-1")


class ChunkWriter:
    """
    Writes one chunk whose payload length is known up front.

    The length and type are written on construction; payload writes follow,
    and `end()` seals the chunk with its CRC.
    """

    def __init__(self, stream: BinaryIO, length: int, chunk_type: bytes):
        if not 0 <= length <= MAX_CHUNK_LENGTH:
            raise InvalidPNGError(f"Invalid chunk length: {length}")

        self._stream = stream
        self.length = length
        self.chunk_type = chunk_type
        self._written = 0
        self._crc = CRCCalculator()

        write_uint32(stream, length)
        write_bytes(stream, chunk_type)
        self._crc.append(chunk_type)

    def write_byte(self, byte: int) -> None:
        write_byte(self._stream, byte)
        self._crc.append_byte(byte)
        self._written += 1

    def write_uint32(self, value: int) -> None:
        write_uint32(self._stream, value)
        self._crc.append_uint32(value)
        self._written += 4

    def write(self, data: bytes) -> None:
        write_bytes(self._stream, data)
        self._crc.append(data)
        self._written += len(data)

    def end(self) -> None:
        if self._written != self.length:
            raise InvalidPNGError(
                f"{chunk_name(self.chunk_type)} chunk declared {self.length} "
                f"bytes but {self._written} were written"
            )
        write_uint32(self._stream, self._crc.finalize())


class ChunkReader:
    """
    Reads one chunk from the stream.

    The length and type are read on construction; payload reads follow, and
    `end()` checks the stored CRC against the one computed while reading.
    """

    def __init__(self, stream: BinaryIO):
        self._stream = stream
        self.length = read_uint32(stream)
        self.chunk_type = read_exact(stream, 4)
        self._remaining = self.length
        self._crc = CRCCalculator()
        self._crc.append(self.chunk_type)

    @property
    def name(self) -> str:
        return chunk_name(self.chunk_type)

    @property
    def is_ancillary(self) -> bool:
        return is_ancillary(self.chunk_type)

    @property
    def remaining(self) -> int:
        return self._remaining

    def read(self, length: int) -> bytes:
        if length > self._remaining:
            raise InvalidPNGError(
                f"Attempt to read {length} bytes past the end of the "
                f"{self.name} chunk ({self._remaining} left)"
            )
        data = read_exact(self._stream, length)
        self._crc.append(data)
        self._remaining -= length
        return data

    def read_byte(self) -> int:
        return self.read(1)[0]

    def read_uint32(self) -> int:
        return int.from_bytes(self.read(4), "big")

    def read_payload(self) -> bytes:
        """Read whatever is left of the payload."""
        return self.read(self._remaining)

    def end(self) -> None:
        """
        Finish the chunk, skipping any unread payload

        Raises:
            PNGChecksumError: If the stored CRC does not match
        """
        if self._remaining:
            self.read_payload()

        stored_crc = read_uint32(self._stream)
        computed_crc = self._crc.finalize()
        if stored_crc != computed_crc:
            raise PNGChecksumError(
                f"Bad CRC in {self.name!r} chunk: stored 0x{stored_crc:08X}, "
                f"computed 0x{computed_crc:08X}"
            )
