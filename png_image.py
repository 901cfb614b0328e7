"""
Image abstractions used by the PNG reader and writer.

The reader writes into a WritableImage and the writer reads from a
ReadableImage. Any object providing the methods below can be used; nothing
needs to inherit from these protocols.

For a single load the reader calls, in order:

- begin_write()
- set_image_info(info)
- set_palette_entry(index, entry) for each PLTE entry, index 0 upwards
- set_scanline(y, scanline) once per row, y 0 upwards
- end_write(success)

A save makes the matching begin_read / get_* / end_read calls. If anything
fails the sequence is abandoned and end_write(False) / end_read(False) is
called before the error propagates; end_* is always called exactly once.
"""

from typing import Protocol, Self

import numpy as np

from png_header import (
    PALETTE_SIZE,
    ImageFormat,
    ImageInfo,
    InvalidPNGError,
    PaletteEntry,
)


class WritableImage(Protocol):
    def begin_write(self) -> None: ...

    def set_image_info(self, info: ImageInfo) -> None: ...

    def set_palette_entry(self, index: int, entry: PaletteEntry) -> None: ...

    def set_scanline(self, y: int, scanline: bytes) -> None: ...

    def end_write(self, success: bool) -> None: ...


class ReadableImage(Protocol):
    def begin_read(self) -> None: ...

    def get_image_info(self) -> ImageInfo: ...

    def get_palette_entry(self, index: int) -> PaletteEntry: ...

    def get_scanline(self, y: int) -> bytes: ...

    def end_read(self, success: bool) -> None: ...


class SimpleImage:
    """
    In-memory 8-bit palette image backed by NumPy arrays.

    `pixels` has shape (height, width) and `palette` shape (256, 3), both
    uint8. Satisfies both WritableImage and ReadableImage, with no call order
    restrictions.
    """

    def __init__(self, width: int = 0, height: int = 0):
        self.info = ImageInfo(width, height)
        self.pixels = np.zeros((height, width), dtype=np.uint8)
        self.palette = np.zeros((PALETTE_SIZE, 3), dtype=np.uint8)

    @classmethod
    def from_arrays(cls, pixels: np.ndarray, palette: np.ndarray) -> Self:
        """
        Build an image from a 2D index array and an (N, 3) RGB palette

        Palettes shorter than 256 entries are padded with black.
        """
        if pixels.ndim != 2:
            raise ValueError(f"Unsupported pixel array shape: {pixels.shape}")
        if palette.ndim != 2 or palette.shape[1] != 3:
            raise ValueError(f"Unsupported palette shape: {palette.shape}")
        if palette.shape[0] > PALETTE_SIZE:
            raise ValueError(
                f"Palette has {palette.shape[0]} entries (max {PALETTE_SIZE})"
            )

        height, width = pixels.shape
        image = cls(width, height)
        image.pixels[:] = pixels.astype(np.uint8)
        image.palette[: palette.shape[0]] = palette.astype(np.uint8)
        return image

    @property
    def width(self) -> int:
        return self.info.width

    @property
    def height(self) -> int:
        return self.info.height

    def get_pixel(self, x: int, y: int) -> int:
        return int(self.pixels[y, x])

    def set_pixel(self, x: int, y: int, index: int) -> None:
        self.pixels[y, x] = index

    def to_rgb(self) -> np.ndarray:
        """Look up every pixel in the palette, giving a (height, width, 3) array."""
        return self.palette[self.pixels]

    # WritableImage

    def begin_write(self) -> None:
        pass

    def set_image_info(self, info: ImageInfo) -> None:
        if info.format is not ImageFormat.PALETTED8:
            raise InvalidPNGError(f"Unsupported image format: {info.format}")

        if (info.height, info.width) != self.pixels.shape:
            self.pixels = np.zeros((info.height, info.width), dtype=np.uint8)
        self.info = info

    def set_palette_entry(self, index: int, entry: PaletteEntry) -> None:
        self.palette[index] = entry

    def set_scanline(self, y: int, scanline: bytes) -> None:
        self.pixels[y, :] = np.frombuffer(scanline, dtype=np.uint8)

    def end_write(self, success: bool) -> None:
        pass

    # ReadableImage

    def begin_read(self) -> None:
        pass

    def get_image_info(self) -> ImageInfo:
        return self.info

    def get_palette_entry(self, index: int) -> PaletteEntry:
        red, green, blue = (int(c) for c in self.palette[index])
        return PaletteEntry(red, green, blue)

    def get_scanline(self, y: int) -> bytes:
        return self.pixels[y].tobytes()

    def end_read(self, success: bool) -> None:
        pass
