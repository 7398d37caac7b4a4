"""Bit-field extraction for CAN payloads

Two bit numbering conventions are in use in DBC dictionaries:

Little-endian (Intel)
    Bit ``n`` is bit ``n % 8`` of byte ``n // 8``. A field starting at
    ``start`` is the ``length`` bits read upward from there, as if the whole
    payload were one little-endian integer.

Big-endian (Motorola)
    ``start`` names the most significant bit of the field, using the same
    byte*8 + bit numbering (bit 7 is the MSB of its byte). The field continues
    toward less significant bits, wrapping from bit 0 of one byte to bit 7
    of the next. Read MSB-first, the payload is a single bit stream in which
    the field occupies ``length`` consecutive positions.

Both conventions are handled by one general computation each, over the whole
buffer, so a field inside a single byte is just the shortest case of a field
crossing byte boundaries. Bits beyond the end of the buffer read as zero.
"""

from __future__ import annotations

from .protocols import ByteOrder

MAX_FIELD_BITS: int = 64


def stream_position(start: int, byte_order: ByteOrder) -> int:
    """Position of a field's first bit in its convention's bit stream.

    For little-endian fields the stream is LSB-first and the position is
    ``start`` itself. For big-endian fields the stream is MSB-first and the
    DBC start bit is mapped onto it.

    Examples:
        >>> stream_position(7, ByteOrder.BIG_ENDIAN)
        0
        >>> stream_position(8, ByteOrder.BIG_ENDIAN)
        15
    """
    if byte_order is ByteOrder.LITTLE_ENDIAN:
        return start
    return (start // 8) * 8 + 7 - start % 8


def bits_required(start: int, length: int, byte_order: ByteOrder) -> int:
    """Number of payload bits a field needs to lie entirely inside the buffer."""
    return stream_position(start, byte_order) + length


def extract_bits(
    data: bytes | bytearray,
    start: int,
    length: int,
    byte_order: ByteOrder,
) -> int:
    """Extract an unsigned, right-aligned bit field from a payload.

    Args:
        data: Frame payload
        start: DBC start bit (LSB for little-endian, MSB for big-endian)
        length: Field width in bits, 1..64
        byte_order: Bit numbering convention of the field

    Returns:
        Unsigned integer holding exactly ``length`` bits

    Raises:
        ValueError: If *length* is outside 1..64 or *start* is negative
    """
    if not 1 <= length <= MAX_FIELD_BITS:
        raise ValueError(f"bit length must be in 1..{MAX_FIELD_BITS}, got {length}")
    if start < 0:
        raise ValueError(f"start bit must be non-negative, got {start}")

    mask = (1 << length) - 1

    if byte_order is ByteOrder.LITTLE_ENDIAN:
        return (int.from_bytes(data, "little") >> start) & mask

    # Stream position p is integer bit (total - 1 - p) of the big-endian
    # reading, so the field's LSB sits at bit total - (msb + length).
    total = len(data) * 8
    shift = total - bits_required(start, length, byte_order)
    value = int.from_bytes(data, "big")
    if shift >= 0:
        return (value >> shift) & mask
    return (value << -shift) & mask
