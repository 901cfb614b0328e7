"""
PNG CRC Module

The 32-bit cyclic redundancy check that seals every PNG chunk. It is computed
over the chunk type code and payload, never over the length field.

Adapted from the table-driven sample code in the W3C PNG standard.
"""

from functools import cache

CRC_POLYNOMIAL = 0xEDB88320  # Reflected form of 0x04C11DB7
CRC_MASK = 0xFFFFFFFF


@cache
def crc_table() -> tuple[int, ...]:
    """Build the 256-entry lookup table, once per process."""
    table = []
    for n in range(256):
        c = n
        for _ in range(8):
            if c & 1:
                c = CRC_POLYNOMIAL ^ (c >> 1)
            else:
                c >>= 1
        table.append(c)
    return tuple(table)


class CRCCalculator:
    """
    Running CRC over one chunk.

    Start a fresh calculator per chunk, append the type code and payload,
    then call `finalize()` for the value stored after the chunk.
    """

    def __init__(self):
        self._crc = CRC_MASK

    def append(self, data: bytes) -> None:
        table = crc_table()
        c = self._crc
        for byte in data:
            c = table[(c ^ byte) & 0xFF] ^ (c >> 8)
        self._crc = c

    def append_byte(self, byte: int) -> None:
        self.append(bytes((byte,)))

    def append_uint32(self, value: int) -> None:
        # Network byte order
        self.append(value.to_bytes(4, "big"))

    def finalize(self) -> int:
        return self._crc ^ CRC_MASK


def crc32(data: bytes) -> int:
    calculator = CRCCalculator()
    calculator.append(data)
    return calculator.finalize()
