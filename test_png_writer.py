"""
Pytest tests for the PNG encoding module, including encode/decode round trips
"""

import io
import struct
import zlib

import numpy as np
import pytest

from png_header import (
    PNG_SIGNATURE,
    ImageInfo,
    InvalidPNGError,
    PaletteEntry,
    PNGError,
    PNGIOError,
)
from png_image import SimpleImage
from png_reader import load_png, load_png_file
from png_writer import PNGWriter, save_png, save_png_file


def split_chunks(data):
    """Helper function to split PNG bytes into (type, payload, crc) tuples"""
    assert data.startswith(PNG_SIGNATURE)
    chunks = []
    offset = len(PNG_SIGNATURE)
    while offset < len(data):
        (length,) = struct.unpack(">I", data[offset : offset + 4])
        chunk_type = data[offset + 4 : offset + 8]
        payload = data[offset + 8 : offset + 8 + length]
        (crc,) = struct.unpack(">I", data[offset + 8 + length : offset + 12 + length])
        chunks.append((chunk_type, payload, crc))
        offset += 12 + length
    return chunks


def create_test_image(width, height, seed=0):
    """Helper function to create a random image with a random palette"""
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 256, size=(height, width), dtype=np.uint8)
    palette = rng.integers(0, 256, size=(256, 3), dtype=np.uint8)
    return SimpleImage.from_arrays(pixels, palette)


def encode(image, **kwargs):
    stream = io.BytesIO()
    PNGWriter(image, **kwargs).write(stream)
    return stream.getvalue()


class RecordingSource(SimpleImage):
    """SimpleImage that records begin/end notifications"""

    def __init__(self, width=0, height=0):
        super().__init__(width, height)
        self.events = []

    def begin_read(self):
        self.events.append("begin_read")

    def end_read(self, success):
        self.events.append(("end_read", success))


class TestFileLayout:
    """Test the bytes produced by the writer"""

    def test_chunk_order(self):
        """Test the fixed order of chunks"""
        chunks = split_chunks(encode(create_test_image(5, 4)))
        types = [chunk_type for chunk_type, _, _ in chunks]

        assert types[0] == b"IHDR"
        assert types[1] == b"PLTE"
        assert types[-1] == b"IEND"
        assert set(types[2:-1]) == {b"IDAT"}

    def test_header_payload(self):
        """Test the IHDR fields"""
        chunks = split_chunks(encode(create_test_image(300, 7)))

        assert chunks[0][1] == struct.pack(">IIBBBBB", 300, 7, 8, 3, 0, 0, 0)

    def test_palette_payload(self):
        """Test that all 256 palette entries are written in order"""
        image = create_test_image(3, 3)
        chunks = split_chunks(encode(image))

        assert chunks[1][1] == image.palette.tobytes()
        assert len(chunks[1][1]) == 768

    def test_end_chunk(self):
        """Test that the file ends with the standard IEND chunk"""
        data = encode(create_test_image(2, 2))

        assert data.endswith(bytes.fromhex("0000000049454e44ae426082"))

    def test_crcs(self):
        """Test that every chunk carries a correct CRC"""
        for chunk_type, payload, crc in split_chunks(encode(create_test_image(9, 9))):
            assert crc == zlib.crc32(chunk_type + payload)

    def test_image_data_uses_no_filter(self):
        """Test that the joined IDAT stream holds unfiltered scanlines"""
        image = create_test_image(6, 5)
        chunks = split_chunks(encode(image))
        compressed = b"".join(p for t, p, _ in chunks if t == b"IDAT")

        expected = b"".join(b"\x00" + row.tobytes() for row in image.pixels)
        assert zlib.decompress(compressed) == expected

    def test_no_empty_image_data_chunks(self):
        """Test that at most one IDAT per scanline is written, none empty"""
        chunks = split_chunks(encode(create_test_image(64, 50)))
        idats = [p for t, p, _ in chunks if t == b"IDAT"]

        assert 1 <= len(idats) <= 50
        assert all(idats)

    def test_signature(self):
        """Test the leading signature"""
        assert encode(create_test_image(1, 1))[:8] == PNG_SIGNATURE


class TestWriterErrors:
    """Test encoding failures"""

    @pytest.mark.parametrize("width,height", [(0, 4), (4, 0), (0, 0)])
    def test_zero_dimensions(self, width, height):
        """Test that zero width or height fails before anything is written"""
        stream = io.BytesIO()
        image = RecordingSource(width, height)

        with pytest.raises(InvalidPNGError, match="Invalid image size"):
            PNGWriter(image).write(stream)

        assert stream.getvalue() == b""
        assert image.events == ["begin_read", ("end_read", False)]

    def test_wrong_scanline_length(self):
        """Test that scanlines must be exactly one image width long"""

        class ShortRows(SimpleImage):
            def get_scanline(self, y):
                return super().get_scanline(y)[:-1]

        with pytest.raises(InvalidPNGError, match="Scanline 0 has 2 bytes"):
            encode(ShortRows(3, 3))

    def test_palette_channel_out_of_range(self):
        """Test that palette channels must fit in one byte"""

        class BadPalette(RecordingSource):
            def get_palette_entry(self, index):
                if index == 7:
                    return PaletteEntry(300, 0, 0)
                return super().get_palette_entry(index)

        image = BadPalette(2, 2)
        with pytest.raises(InvalidPNGError, match="Palette entry 7"):
            encode(image)

        assert image.events == ["begin_read", ("end_read", False)]

    def test_end_read_on_success(self):
        """Test that end_read(True) is called exactly once"""
        image = RecordingSource(2, 2)
        encode(image)

        assert image.events == ["begin_read", ("end_read", True)]

    def test_unwritable_stream(self, tmp_path):
        """Test that a stream refusing writes is an I/O error"""
        with open(tmp_path / "readonly.png", "wb"):
            pass

        with open(tmp_path / "readonly.png", "rb") as f:
            with pytest.raises(PNGIOError, match="Failed to write PNG data"):
                save_png(f, SimpleImage(2, 2))

    def test_unwritable_file(self, tmp_path):
        """Test that a path that cannot be created is an I/O error"""
        with pytest.raises(PNGIOError, match="Failed to write file"):
            save_png_file(str(tmp_path / "missing" / "out.png"), SimpleImage(1, 1))


class TestRoundTrip:
    """Test that decoding reverses encoding"""

    @pytest.mark.parametrize(
        "width,height",
        [
            (1, 1),
            (1, 7),
            (7, 1),
            (13, 5),
            (64, 64),
            (300, 3),
        ],
    )
    def test_random_images(self, width, height):
        """Test random pixels and palettes survive a round trip"""
        original = create_test_image(width, height, seed=width * height)
        decoded = SimpleImage()

        load_png(io.BytesIO(encode(original)), decoded)

        assert decoded.info == original.info
        np.testing.assert_array_equal(decoded.pixels, original.pixels)
        np.testing.assert_array_equal(decoded.palette, original.palette)

    @pytest.mark.parametrize("level", [0, 1, 9])
    def test_compression_levels(self, level):
        """Test that any compression level produces a readable file"""
        original = create_test_image(20, 20, seed=level)
        decoded = SimpleImage()

        load_png(io.BytesIO(encode(original, compression_level=level)), decoded)

        np.testing.assert_array_equal(decoded.pixels, original.pixels)

    def test_two_by_two_scenario(self):
        """Test a tiny black and white checkerboard"""
        image = SimpleImage(2, 2)
        image.set_palette_entry(0, PaletteEntry(0, 0, 0))
        image.set_palette_entry(1, PaletteEntry(255, 255, 255))
        for index in range(2, 256):
            image.set_palette_entry(index, PaletteEntry(index, 0, 255 - index))
        image.set_scanline(0, bytes([0, 1]))
        image.set_scanline(1, bytes([1, 0]))

        decoded = SimpleImage()
        load_png(io.BytesIO(encode(image)), decoded)

        assert decoded.get_image_info() == ImageInfo(2, 2)
        assert decoded.get_scanline(0) == bytes([0, 1])
        assert decoded.get_scanline(1) == bytes([1, 0])
        assert decoded.get_palette_entry(0) == PaletteEntry(0, 0, 0)
        assert decoded.get_palette_entry(1) == PaletteEntry(255, 255, 255)

    def test_file_round_trip(self, tmp_path):
        """Test saving and loading through the file wrappers"""
        png_file = tmp_path / "round_trip.png"
        original = create_test_image(17, 11)
        decoded = SimpleImage()

        save_png_file(str(png_file), original)
        load_png_file(str(png_file), decoded)

        assert png_file.read_bytes().startswith(PNG_SIGNATURE)
        np.testing.assert_array_equal(decoded.pixels, original.pixels)

    def test_corruption_after_encoding(self):
        """Test that a damaged encoded file fails instead of misreading"""
        data = bytearray(encode(create_test_image(8, 8)))
        data[len(data) // 2] ^= 0x10

        with pytest.raises(PNGError):
            load_png(io.BytesIO(bytes(data)), SimpleImage())
