"""
Buffered zlib streams for PNG image data.

The compressor and decompressor accumulate their output in a growable buffer
that doubles its capacity whenever it fills up. Callers feed input in pieces
of any size, read `output`, and `clear()` the buffer once it is consumed.
"""

import logging
import zlib

from png_header import PNGCompressionError

logger = logging.getLogger(__name__)

DEFAULT_COMPRESSION_LEVEL = zlib.Z_DEFAULT_COMPRESSION
INITIAL_BUFFER_SIZE = 1024


class BufferedZlibStream:
    """Output buffer shared by Compressor and Decompressor."""

    def __init__(self, initial_size: int = INITIAL_BUFFER_SIZE):
        if initial_size <= 0:
            raise ValueError(f"Initial buffer size must be positive: {initial_size}")
        self._buffer = bytearray(initial_size)
        self._length = 0

    @property
    def capacity(self) -> int:
        return len(self._buffer)

    @property
    def output(self) -> bytes:
        return bytes(memoryview(self._buffer)[: self._length])

    def __len__(self) -> int:
        return self._length

    def clear(self) -> None:
        self._length = 0

    def _grow(self) -> None:
        old_capacity = len(self._buffer)
        self._buffer.extend(bytes(old_capacity))
        logger.debug("Grew zlib output buffer to %d bytes", len(self._buffer))

    def _append(self, data: bytes) -> None:
        end = self._length + len(data)
        while end > len(self._buffer):
            self._grow()
        self._buffer[self._length : end] = data
        self._length = end


class Compressor(BufferedZlibStream):
    """Deflate compression into a growable buffer."""

    def __init__(
        self,
        level: int = DEFAULT_COMPRESSION_LEVEL,
        initial_size: int = INITIAL_BUFFER_SIZE,
    ):
        super().__init__(initial_size)
        try:
            self._stream = zlib.compressobj(level)
        except (zlib.error, ValueError) as e:
            raise PNGCompressionError(
                f"Failed to initialise deflate (level {level}): {e}"
            ) from e
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    def feed(self, data: bytes) -> None:
        """Compress all of `data`, appending any produced bytes to the output."""
        if self._finished:
            raise PNGCompressionError("Cannot compress after finish()")
        try:
            self._append(self._stream.compress(data))
        except zlib.error as e:
            raise PNGCompressionError(f"deflate failed: {e}") from e

    def finish(self) -> None:
        """Flush all pending state and terminate the zlib stream."""
        if self._finished:
            return
        try:
            # Z_FINISH drains everything in one call
            self._append(self._stream.flush(zlib.Z_FINISH))
        except zlib.error as e:
            raise PNGCompressionError(f"deflate failed to finish: {e}") from e
        self._finished = True


class Decompressor(BufferedZlibStream):
    """Inflate decompression into a growable buffer."""

    def __init__(self, initial_size: int = INITIAL_BUFFER_SIZE):
        super().__init__(initial_size)
        try:
            self._stream = zlib.decompressobj()
        except zlib.error as e:
            raise PNGCompressionError(f"Failed to initialise inflate: {e}") from e

    @property
    def finished(self) -> bool:
        """True once the end of the zlib stream has been reached."""
        return self._stream.eof

    def feed(self, data: bytes) -> int:
        """
        Decompress `data` into the output buffer

        Stops early if the zlib stream ends; any bytes after the end of the
        stream are left unconsumed.

        Returns:
            Number of input bytes consumed
        """
        if self._stream.eof:
            return 0

        pending = data
        try:
            while not self._stream.eof:
                if self._length == len(self._buffer):
                    self._grow()
                room = len(self._buffer) - self._length
                chunk = self._stream.decompress(pending, room)
                self._append(chunk)
                pending = self._stream.unconsumed_tail
                # A full buffer may mean zlib still holds output
                if not pending and len(chunk) < room:
                    break
        except zlib.error as e:
            raise PNGCompressionError(f"inflate failed: {e}") from e

        if self._stream.eof:
            pending = self._stream.unused_data
            if pending:
                logger.debug(
                    "Ignoring %d bytes after end of zlib stream", len(pending)
                )
        return len(data) - len(pending)
