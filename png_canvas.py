"""
PNG Utilities for PyQt6

This module lets a QImage in Format_Indexed8 act as the canvas that PNG data
is loaded into and saved from. The QImage's color table is the palette and
its pixel indices are the scanline bytes.
"""

from PyQt6.QtGui import QColor, QImage

from png_header import PALETTE_SIZE, ImageInfo, InvalidPNGError, PaletteEntry
from png_reader import load_png_file
from png_writer import save_png_file


class QImageCanvas:
    """
    Adapts an indexed QImage to the WritableImage and ReadableImage protocols.

    When loading, a new QImage is created from the decoded header unless a
    fixed `size` is requested, in which case images of any other size are
    rejected.
    """

    def __init__(
        self,
        qimage: QImage | None = None,
        size: tuple[int, int] | None = None,
    ):
        self.qimage = qimage
        self.size = size
        self._color_table: list[int] = []

    # WritableImage

    def begin_write(self) -> None:
        self._color_table = [QColor(0, 0, 0).rgb()] * PALETTE_SIZE

    def set_image_info(self, info: ImageInfo) -> None:
        if self.size is not None and (info.width, info.height) != self.size:
            raise InvalidPNGError(
                f"Loaded image was wrong size: {info.width}x{info.height} "
                f"(expected {self.size[0]}x{self.size[1]})"
            )
        self.qimage = QImage(
            info.width, info.height, QImage.Format.Format_Indexed8
        )
        self.qimage.setColorTable(self._color_table)

    def set_palette_entry(self, index: int, entry: PaletteEntry) -> None:
        self._color_table[index] = QColor(*entry).rgb()

    def set_scanline(self, y: int, scanline: bytes) -> None:
        for x, index in enumerate(scanline):
            self.qimage.setPixel(x, y, index)

    def end_write(self, success: bool) -> None:
        if success:
            # Pixels are written as indices, so the table can be set last
            self.qimage.setColorTable(self._color_table)

    # ReadableImage

    def begin_read(self) -> None:
        _check_indexed(self.qimage)
        self._color_table = list(self.qimage.colorTable())

    def get_image_info(self) -> ImageInfo:
        return ImageInfo(self.qimage.width(), self.qimage.height())

    def get_palette_entry(self, index: int) -> PaletteEntry:
        # Unused entries of a short color table are saved as black
        if index >= len(self._color_table):
            return PaletteEntry(0, 0, 0)
        color = QColor(self._color_table[index])
        return PaletteEntry(color.red(), color.green(), color.blue())

    def get_scanline(self, y: int) -> bytes:
        return bytes(
            self.qimage.pixelIndex(x, y) for x in range(self.qimage.width())
        )

    def end_read(self, success: bool) -> None:
        pass


def load_qimage(file_path: str, size: tuple[int, int] | None = None) -> QImage:
    """
    Load a PNG file into a new QImage.

    Args:
        file_path: Path to the PNG file
        size: Optional required (width, height)

    Returns:
        QImage with Format_Indexed8 and a 256-entry color table

    Raises:
        PNGError: If the file cannot be read, is not a supported PNG, or
            has the wrong size
    """
    canvas = QImageCanvas(size=size)
    load_png_file(file_path, canvas)
    return canvas.qimage


def save_qimage(qimage: QImage, file_path: str) -> None:
    """
    Save an 8-bit indexed QImage as a PNG file.

    Raises:
        ValueError: If the QImage is not in Format_Indexed8
        PNGError: If the file cannot be written
    """
    _check_indexed(qimage)
    save_png_file(file_path, QImageCanvas(qimage))


def _check_indexed(qimage: QImage | None) -> None:
    if qimage is None:
        raise ValueError("No QImage to save")
    if qimage.format() != QImage.Format.Format_Indexed8:
        raise ValueError(
            f"Unsupported QImage format: {qimage.format()}. "
            f"Currently only 8-bit indexed color is supported."
        )
