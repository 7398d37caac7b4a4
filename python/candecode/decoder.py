"""CAN frame decoder

Turns a captured frame into one DecodedSignal per active signal of its
message descriptor:

    decoder = Decoder(database)
    for signal in decoder.decode(frame):
        print(signal.name, signal.raw.value, signal.physical)

Decoding is a pure computation over read-only descriptors; a Decoder can be
shared between threads.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import override

from .bits import extract_bits
from .descriptors import (
    EXTENDED_ID_MASK,
    STANDARD_ID_MASK,
    Database,
    MessageDescriptor,
    SignalDescriptor,
)
from .errors import ShapeMismatchError, UnknownMessageError
from .protocols import RawKind

MAX_PAYLOAD_BYTES: int = 64


@dataclass(frozen=True, slots=True)
class RawValue:
    """Raw signal value with exactly one active variant.

    Build through the named constructors:

        >>> RawValue.of_uint(1000).value
        1000
        >>> RawValue.of_bool(True).kind
        <RawKind.BOOL: 'bool'>

    Raises:
        ValueError: If zero or more than one variant is given
    """
    bool_value: bool | None = None
    int_value: int | None = None
    uint_value: int | None = None
    float_value: float | None = None
    bytes_value: bytes | None = None

    def __post_init__(self) -> None:
        active = sum(
            v is not None
            for v in (
                self.bool_value,
                self.int_value,
                self.uint_value,
                self.float_value,
                self.bytes_value,
            )
        )
        if active != 1:
            raise ValueError(f"RawValue needs exactly one variant, got {active}")
        if self.uint_value is not None and self.uint_value < 0:
            raise ValueError(f"unsigned raw value is negative: {self.uint_value}")

    @classmethod
    def of_bool(cls, value: bool) -> RawValue:
        return cls(bool_value=value)

    @classmethod
    def of_int(cls, value: int) -> RawValue:
        return cls(int_value=value)

    @classmethod
    def of_uint(cls, value: int) -> RawValue:
        return cls(uint_value=value)

    @classmethod
    def of_float(cls, value: float) -> RawValue:
        return cls(float_value=value)

    @classmethod
    def of_bytes(cls, value: bytes) -> RawValue:
        return cls(bytes_value=bytes(value))

    @property
    def kind(self) -> RawKind:
        if self.bool_value is not None:
            return RawKind.BOOL
        if self.int_value is not None:
            return RawKind.INT
        if self.uint_value is not None:
            return RawKind.UINT
        if self.float_value is not None:
            return RawKind.FLOAT
        return RawKind.BYTES

    @property
    def value(self) -> bool | int | float | bytes:
        for v in (
            self.bool_value,
            self.int_value,
            self.uint_value,
            self.float_value,
            self.bytes_value,
        ):
            if v is not None:
                return v
        raise AssertionError("RawValue without an active variant")

    @property
    def is_integer(self) -> bool:
        return self.kind in (RawKind.BOOL, RawKind.INT, RawKind.UINT)

    def as_int(self) -> int | None:
        """Integer view for value-table lookup (bool as 0/1), None otherwise."""
        if self.is_integer:
            return int(self.value)  # pyright: ignore[reportArgumentType]
        return None

    def as_float(self) -> float | None:
        """Numeric view of the value; None for raw bytes."""
        if self.kind == RawKind.BYTES:
            return None
        return float(self.value)  # pyright: ignore[reportArgumentType]

    @override
    def __repr__(self) -> str:
        return f"RawValue({self.kind.value}={self.value!r})"


@dataclass(frozen=True, slots=True)
class Frame:
    """One captured CAN frame.

    The identifier is masked to 29 bits for extended frames and 11 bits for
    standard frames.
    """
    can_id: int
    data: bytes = b""
    is_extended: bool = False
    is_remote: bool = False
    timestamp_ns: int = 0

    def __post_init__(self) -> None:
        mask = EXTENDED_ID_MASK if self.is_extended else STANDARD_ID_MASK
        object.__setattr__(self, "can_id", self.can_id & mask)
        object.__setattr__(self, "data", bytes(self.data))
        if len(self.data) > MAX_PAYLOAD_BYTES:
            raise ValueError(
                f"payload too long: {len(self.data)} bytes (max {MAX_PAYLOAD_BYTES})"
            )

    @property
    def length(self) -> int:
        return len(self.data)


@dataclass(frozen=True, slots=True)
class DecodedSignal:
    """Decoded value of one signal in one frame"""
    name: str
    raw: RawValue
    signal: SignalDescriptor = field(repr=False)
    message: MessageDescriptor = field(repr=False)
    timestamp_ns: int = 0
    physical: float | None = None
    description: str | None = None

    @property
    def unit(self) -> str:
        return self.signal.unit

    @property
    def in_range(self) -> bool:
        if self.physical is None:
            return True
        return self.signal.is_in_range(self.physical)


# ============================================================================
# Signal decoding
# ============================================================================

def _to_float(bits: int, length: int) -> float:
    """Reinterpret a 32- or 64-bit pattern as an IEEE-754 value."""
    if length == 32:
        return struct.unpack("<f", bits.to_bytes(4, "little"))[0]
    return struct.unpack("<d", bits.to_bytes(8, "little"))[0]


def _sign_extend(bits: int, length: int) -> int:
    if bits & (1 << (length - 1)):
        return bits - (1 << length)
    return bits


def decode_raw(signal: SignalDescriptor, data: bytes | bytearray) -> RawValue:
    """Extract and interpret a signal's raw value.

    Priority: 1-bit fields are bool, then float reinterpretation, then sign
    extension for signed fields, else unsigned.
    """
    bits = extract_bits(data, signal.start, signal.length, signal.byte_order)
    if signal.length == 1:
        return RawValue.of_bool(bits != 0)
    if signal.is_float:
        return RawValue.of_float(_to_float(bits, signal.length))
    if signal.is_signed:
        return RawValue.of_int(_sign_extend(bits, signal.length))
    return RawValue.of_uint(bits)


def decode_signal(
    signal: SignalDescriptor,
    message: MessageDescriptor,
    frame: Frame,
) -> DecodedSignal:
    """Decode one signal of a frame into raw, physical and description.

    The physical value is derived only for integer (non-bool, non-float)
    raw values of signals with a physical mapping.
    """
    raw = decode_raw(signal, frame.data)

    physical: float | None = None
    numeric = raw.as_float()
    if raw.kind in (RawKind.INT, RawKind.UINT) and numeric is not None and signal.has_physical_mapping:
        physical = signal.to_physical(numeric)

    description: str | None = None
    integer = raw.as_int()
    if integer is not None and signal.value_descriptions:
        description = signal.describe(integer)

    return DecodedSignal(
        name=signal.name,
        raw=raw,
        signal=signal,
        message=message,
        timestamp_ns=frame.timestamp_ns,
        physical=physical,
        description=description,
    )


# ============================================================================
# Frame decoding
# ============================================================================

class Decoder:
    """Decoder for CAN frames using a message dictionary

    Example:
        >>> decoder = Decoder(load_dbc("vehicle.dbc"))
        >>> signals = decoder.decode(frame)
    """

    def __init__(self, database: Database):
        self.database: Database = database

    def find_message(self, frame: Frame) -> MessageDescriptor:
        """Look up the descriptor for a frame's identifier.

        The frame format is not part of the lookup; a standard frame hitting
        an extended descriptor (or the reverse) is left to ``validate_shape``.

        Raises:
            UnknownMessageError: If the identifier is not in the dictionary
        """
        message = self.database.get_message(frame.can_id)
        if message is None:
            raise UnknownMessageError(frame.can_id)
        return message

    @staticmethod
    def validate_shape(message: MessageDescriptor, frame: Frame) -> None:
        """Check a frame against its descriptor before decoding.

        Raises:
            ShapeMismatchError: On length, extension or remote-flag mismatch
        """
        if frame.is_remote:
            raise ShapeMismatchError(frame.can_id, "remote frame")
        if frame.is_extended != message.is_extended:
            raise ShapeMismatchError(
                frame.can_id,
                f"extended={frame.is_extended}, expected {message.is_extended}",
            )
        if frame.length != message.length:
            raise ShapeMismatchError(
                frame.can_id,
                f"length {frame.length}, expected {message.length}",
            )

    def decode(self, frame: Frame) -> list[DecodedSignal]:
        """Decode every active signal of a frame.

        Non-multiplexed signals and the multiplexer switch come first; then
        only the multiplexed signals selected by the switch value. Signals of
        other multiplexer values are absent from the result.

        Raises:
            UnknownMessageError: If the identifier is not in the dictionary
            ShapeMismatchError: If the frame does not match its descriptor
        """
        message = self.find_message(frame)
        self.validate_shape(message, frame)
        return self._decode_signals(message, frame)

    def decode_message(
        self,
        message: MessageDescriptor,
        data: bytes | bytearray,
        timestamp_ns: int = 0,
    ) -> list[DecodedSignal]:
        """Decode a payload against a known message, skipping shape checks."""
        frame = Frame(
            can_id=message.frame_id,
            data=bytes(data),
            is_extended=message.is_extended,
            timestamp_ns=timestamp_ns,
        )
        return self._decode_signals(message, frame)

    @staticmethod
    def _decode_signals(
        message: MessageDescriptor, frame: Frame,
    ) -> list[DecodedSignal]:
        decoded: list[DecodedSignal] = []
        mux_value: int | None = None

        for signal in message.signals:
            if signal.is_multiplexed:
                continue
            if signal.is_multiplexer:
                mux_value = extract_bits(
                    frame.data, signal.start, signal.length, signal.byte_order,
                )
            decoded.append(decode_signal(signal, message, frame))

        if mux_value is not None:
            for signal in message.signals:
                if signal.multiplexer_value == mux_value:
                    decoded.append(decode_signal(signal, message, frame))

        return decoded
