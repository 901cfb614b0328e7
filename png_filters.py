"""
PNG Scanline Filter Module

Undoes the per-scanline predictive filtering applied before compression.
Each scanline starts with a filter type byte selecting one of five
predictors; every following byte stores the difference (modulo 256) between
the raw byte and the prediction made from already-reconstructed neighbours:

- left:       the raw byte before it on the same scanline
- above:      the raw byte at the same position on the prior scanline
- above-left: the raw byte before that on the prior scanline

Neighbours that do not exist (first pixel, first scanline) count as 0. With
8-bit palette images there is one byte per pixel, so "bpp" is always 1.

Reference: W3C Portable Network Graphics (PNG), Section 9 (Filtering)
"""

from enum import IntEnum
from typing import Callable

from png_header import InvalidPNGError


class FilterType(IntEnum):
    NONE = 0
    SUB = 1
    UP = 2
    AVERAGE = 3
    PAETH = 4


def filter_type_from_code(code: int) -> FilterType:
    """
    Map a scanline's filter type byte to a FilterType

    Raises:
        InvalidPNGError: If the code is not one of the five defined types
    """
    try:
        return FilterType(code)
    except ValueError:
        raise InvalidPNGError(f"Unsupported scanline filter type: {code}") from None


def paeth_predictor(left: int, above: int, above_left: int) -> int:
    """
    Return whichever neighbour is nearest to left + above - above_left

    Ties are broken in the order left, above, above-left.
    """
    estimate = left + above - above_left
    left_distance = abs(estimate - left)
    above_distance = abs(estimate - above)
    above_left_distance = abs(estimate - above_left)

    if left_distance <= above_distance and left_distance <= above_left_distance:
        return left
    elif above_distance <= above_left_distance:
        return above
    else:
        return above_left


_PREDICTORS: dict[FilterType, Callable[[int, int, int], int]] = {
    FilterType.NONE: lambda left, above, above_left: 0,
    FilterType.SUB: lambda left, above, above_left: left,
    FilterType.UP: lambda left, above, above_left: above,
    FilterType.AVERAGE: lambda left, above, above_left: (left + above) >> 1,
    FilterType.PAETH: paeth_predictor,
}


class ScanlineUnfilter:
    """
    Reconstructs raw bytes one at a time, left to right.

    Call `begin_scanline` at the start of every scanline with the prior
    scanline's raw bytes (None for the first scanline) and the scanline's
    filter type, then `unfilter` once per pixel.
    """

    def __init__(self):
        self.filter_type = FilterType.NONE
        self._predict = _PREDICTORS[FilterType.NONE]
        self._prior: bytes | None = None
        self._x = 0
        self._left = 0

    def begin_scanline(
        self, prior: bytes | None, filter_type: FilterType = FilterType.NONE
    ) -> None:
        self.filter_type = FilterType(filter_type)
        self._predict = _PREDICTORS[self.filter_type]
        self._prior = prior
        self._x = 0
        self._left = 0

    def unfilter(self, filtered: int) -> int:
        x = self._x
        if self._prior is None:
            above = above_left = 0
        else:
            above = self._prior[x]
            above_left = self._prior[x - 1] if x else 0

        raw = (filtered + self._predict(self._left, above, above_left)) & 0xFF
        self._left = raw
        self._x = x + 1
        return raw


def unfilter_scanline(
    filter_type: FilterType, filtered: bytes, prior: bytes | None = None
) -> bytes:
    """Reconstruct a whole scanline of raw bytes."""
    unfilter = ScanlineUnfilter()
    unfilter.begin_scanline(prior, filter_type)
    return bytes(unfilter.unfilter(byte) for byte in filtered)
