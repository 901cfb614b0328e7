"""
Pytest tests for PNG scanline filter reconstruction
"""

import pytest

from png_filters import (
    FilterType,
    ScanlineUnfilter,
    filter_type_from_code,
    paeth_predictor,
    unfilter_scanline,
)
from png_header import InvalidPNGError


def filter_scanline(filter_type, raw, prior=None):
    """Helper function applying a forward filter, as an encoder would"""
    if prior is None:
        prior = bytes(len(raw))

    filtered = bytearray()
    for x, value in enumerate(raw):
        left = raw[x - 1] if x else 0
        above = prior[x]
        above_left = prior[x - 1] if x else 0

        if filter_type == FilterType.NONE:
            predicted = 0
        elif filter_type == FilterType.SUB:
            predicted = left
        elif filter_type == FilterType.UP:
            predicted = above
        elif filter_type == FilterType.AVERAGE:
            predicted = (left + above) // 2
        else:
            predicted = paeth_predictor(left, above, above_left)

        filtered.append((value - predicted) % 256)
    return bytes(filtered)


class TestPaethPredictor:
    """Test the Paeth predictor and its tie-breaking order"""

    @pytest.mark.parametrize(
        "left,above,above_left,expected",
        [
            (1, 2, 3, 1),  # nearest is left
            (10, 20, 10, 20),  # nearest is above
            (9, 0, 4, 4),  # nearest is above-left
            (7, 7, 7, 7),  # all equal
            (3, 5, 4, 4),  # left/above tie, but above-left is exact
            (9, 0, 6, 0),  # above/above-left tie goes to above
            (5, 5, 0, 5),  # left/above tie goes to left
            (0, 0, 0, 0),
            (255, 255, 255, 255),
        ],
    )
    def test_predictor(self, left, above, above_left, expected):
        """Test predictor choice for known neighbourhoods"""
        assert paeth_predictor(left, above, above_left) == expected


class TestFilterTypeFromCode:
    """Test filter type byte interpretation"""

    @pytest.mark.parametrize("code", [0, 1, 2, 3, 4])
    def test_valid_codes(self, code):
        """Test that the five defined codes are accepted"""
        assert filter_type_from_code(code) == code

    @pytest.mark.parametrize("code", [5, 6, 128, 255])
    def test_invalid_codes(self, code):
        """Test that undefined codes are rejected"""
        with pytest.raises(InvalidPNGError, match="Unsupported scanline filter"):
            filter_type_from_code(code)


class TestScanlineUnfilter:
    """Test byte-by-byte reconstruction"""

    @pytest.mark.parametrize(
        "filter_type,filtered,prior,expected",
        [
            (FilterType.NONE, [5, 6, 7], [1, 1, 1], [5, 6, 7]),
            (FilterType.SUB, [1, 1, 1], None, [1, 2, 3]),
            (FilterType.SUB, [200, 100], None, [200, 44]),
            (FilterType.UP, [1, 2], [10, 20], [11, 22]),
            (FilterType.UP, [1, 2], None, [1, 2]),
            (FilterType.UP, [1], [255], [0]),
            (FilterType.AVERAGE, [4, 4], None, [4, 6]),
            (FilterType.AVERAGE, [200], [255], [71]),
            (FilterType.AVERAGE, [0, 0], [10, 20], [5, 12]),
            (FilterType.PAETH, [1, 1], None, [1, 2]),
            (FilterType.PAETH, [0, 0], [30, 40], [30, 40]),
        ],
    )
    def test_known_scanlines(self, filter_type, filtered, prior, expected):
        """Test reconstruction against hand-computed results"""
        prior = None if prior is None else bytes(prior)

        assert unfilter_scanline(filter_type, bytes(filtered), prior) == bytes(
            expected
        )

    def test_begin_scanline_resets_cursors(self):
        """Test that left and above cursors restart at each scanline"""
        unfilter = ScanlineUnfilter()

        unfilter.begin_scanline(None, FilterType.SUB)
        assert [unfilter.unfilter(b) for b in (3, 3)] == [3, 6]

        unfilter.begin_scanline(bytes([3, 6]), FilterType.UP)
        assert [unfilter.unfilter(b) for b in (1, 1)] == [4, 7]

        unfilter.begin_scanline(None, FilterType.SUB)
        assert unfilter.unfilter(9) == 9

    def test_defaults_to_none_filter(self):
        """Test that an unselected filter passes bytes through"""
        unfilter = ScanlineUnfilter()
        unfilter.begin_scanline(bytes([100]))

        assert unfilter.filter_type is FilterType.NONE
        assert unfilter.unfilter(42) == 42


class TestFilterRoundTrip:
    """Test that unfiltering undoes filtering for every byte value"""

    ALL_VALUES = bytes(range(256))

    @pytest.mark.parametrize("filter_type", list(FilterType))
    @pytest.mark.parametrize(
        "prior",
        [
            None,
            bytes(range(255, -1, -1)),
            bytes([0, 255] * 128),
            bytes([128] * 256),
        ],
    )
    def test_all_byte_values(self, filter_type, prior):
        """Test every raw value, including wraparound at 0 and 255"""
        filtered = filter_scanline(filter_type, self.ALL_VALUES, prior)

        assert unfilter_scanline(filter_type, filtered, prior) == self.ALL_VALUES

    @pytest.mark.parametrize("filter_type", list(FilterType))
    def test_extreme_values(self, filter_type):
        """Test alternating 0/255 rows above each other"""
        raw = bytes([0, 255, 0, 255, 255, 0])
        prior = bytes([255, 0, 255, 0, 0, 255])
        filtered = filter_scanline(filter_type, raw, prior)

        assert unfilter_scanline(filter_type, filtered, prior) == raw
