"""
Binary stream primitives for PNG reading and writing.

All integers in a PNG file are big-endian ("network byte order"). Every
helper raises PNGIOError when the stream runs short or refuses a write.
"""

import io
import struct
from contextlib import contextmanager
from typing import BinaryIO, Iterator

from png_header import PNGIOError

_UINT32 = struct.Struct(">I")

# Largest single read; chunk lengths come from the file and are untrusted
READ_BLOCK_SIZE = 64 * 1024


def read_exact(stream: BinaryIO, length: int) -> bytes:
    """
    Read exactly `length` bytes from the stream

    Large reads are made in blocks of at most READ_BLOCK_SIZE bytes, so a
    bogus length fails once the stream runs dry instead of allocating the
    whole amount up front.

    Raises:
        PNGIOError: If the stream ends early or cannot be read
    """
    data = bytearray()
    while len(data) < length:
        wanted = min(length - len(data), READ_BLOCK_SIZE)
        try:
            block = stream.read(wanted)
        except OSError as e:
            raise PNGIOError(f"Failed to read PNG data: {e}") from e

        if not block:
            raise PNGIOError(
                f"Unexpected end of PNG data: wanted {length} bytes, "
                f"got {len(data)}"
            )
        data += block
    return bytes(data)


def read_byte(stream: BinaryIO) -> int:
    return read_exact(stream, 1)[0]


def read_uint32(stream: BinaryIO) -> int:
    return _UINT32.unpack(read_exact(stream, 4))[0]


def write_bytes(stream: BinaryIO, data: bytes) -> None:
    """
    Write all of `data` to the stream

    Raises:
        PNGIOError: If the stream rejects the write or writes short
    """
    try:
        written = stream.write(data)
    except OSError as e:
        raise PNGIOError(f"Failed to write PNG data: {e}") from e

    # Raw streams may return None or a short count
    if written is not None and written != len(data):
        raise PNGIOError(
            f"Short write: wrote {written} of {len(data)} bytes"
        )


def write_byte(stream: BinaryIO, byte: int) -> None:
    write_bytes(stream, bytes((byte,)))


def write_uint32(stream: BinaryIO, value: int) -> None:
    try:
        data = _UINT32.pack(value)
    except struct.error as e:
        raise PNGIOError(f"Value {value} does not fit in 32 bits") from e
    write_bytes(stream, data)


def at_eof(stream: BinaryIO) -> bool:
    """
    Check whether the stream has no bytes left, without consuming any

    Buffered readers are probed with peek(); other streams must be seekable.
    """
    try:
        peek = getattr(stream, "peek", None)
        if peek is not None:
            return not peek(1)

        if stream.seekable():
            position = stream.tell()
            probe = stream.read(1)
            stream.seek(position)
            return not probe
    except OSError as e:
        raise PNGIOError(f"Failed to read PNG data: {e}") from e

    raise PNGIOError("PNG input stream must support peek() or seek()")


@contextmanager
def peekable(stream: BinaryIO) -> Iterator[BinaryIO]:
    """
    Yield a view of the stream that at_eof() can probe

    Streams with peek() or seek() are used as they are. Anything else (pipes,
    sockets, raw readers) is wrapped in a BufferedReader, which is detached
    again on exit so the caller's stream is left open.
    """
    seekable = getattr(stream, "seekable", None)
    if hasattr(stream, "peek") or (seekable is not None and seekable()):
        yield stream
        return

    try:
        buffered = io.BufferedReader(stream)
    except (OSError, ValueError) as e:
        raise PNGIOError(f"Cannot buffer PNG input stream: {e}") from e

    try:
        yield buffered
    finally:
        buffered.detach()
