"""Message and signal descriptors

Immutable, validated description of a CAN dictionary. Descriptors are built
once by a loader (dbc_converter, yaml_loader) and only read afterwards, so
they can be shared freely between threads.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from .bits import MAX_FIELD_BITS, bits_required
from .errors import DescriptorInvalidError
from .protocols import ByteOrder

STANDARD_ID_MASK: int = 0x7FF
EXTENDED_ID_MASK: int = 0x1FFFFFFF

_FLOAT_LENGTHS = frozenset({32, 64})
_RANGE_EPSILON = 1e-9
_MAX_MESSAGE_BYTES = 64


@dataclass(frozen=True, slots=True)
class ValueDescription:
    """One entry of a signal's value table (e.g. 0 -> "Off")"""
    value: int
    description: str


@dataclass(frozen=True, slots=True)
class SignalDescriptor:
    """Bit layout and conversion parameters of one signal.

    ``multiplexer_value`` is set on multiplexed signals only; it is the switch
    value for which the signal is present. ``is_multiplexer`` marks the switch
    itself. Scale, offset, minimum and maximum all zero means the signal has
    no physical mapping.
    """
    name: str
    start: int
    length: int
    byte_order: ByteOrder = ByteOrder.LITTLE_ENDIAN
    is_signed: bool = False
    is_float: bool = False
    is_multiplexer: bool = False
    multiplexer_value: int | None = None
    scale: float = 1.0
    offset: float = 0.0
    minimum: float = 0.0
    maximum: float = 0.0
    unit: str = ""
    value_descriptions: tuple[ValueDescription, ...] = ()
    receivers: tuple[str, ...] = ()
    comment: str = ""

    @property
    def is_multiplexed(self) -> bool:
        return self.multiplexer_value is not None

    @property
    def has_physical_mapping(self) -> bool:
        return (
            self.scale != 0
            or self.offset != 0
            or self.minimum != 0
            or self.maximum != 0
        )

    def to_physical(self, raw: float) -> float:
        return raw * self.scale + self.offset

    def describe(self, raw: int) -> str | None:
        """Look up the value-table description of a raw integer, if any."""
        for entry in self.value_descriptions:
            if entry.value == raw:
                return entry.description
        return None

    def is_in_range(self, physical: float) -> bool:
        """Check a physical value against [minimum, maximum].

        Both bounds zero means the signal is unconstrained.
        """
        if self.minimum == 0 and self.maximum == 0:
            return True
        return (
            self.minimum - _RANGE_EPSILON
            <= physical
            <= self.maximum + _RANGE_EPSILON
        )

    def validate(self, message_length: int) -> None:
        """Check the layout invariants against the owning message length.

        Raises:
            DescriptorInvalidError: On any violation
        """
        if not 1 <= self.length <= MAX_FIELD_BITS:
            raise DescriptorInvalidError(
                f"signal {self.name}: bit length must be in 1..{MAX_FIELD_BITS}, "
                + f"got {self.length}"
            )
        if self.start < 0:
            raise DescriptorInvalidError(
                f"signal {self.name}: negative start bit {self.start}"
            )
        if self.is_float and self.length not in _FLOAT_LENGTHS:
            raise DescriptorInvalidError(
                f"signal {self.name}: float signals must be 32 or 64 bits, "
                + f"got {self.length}"
            )
        if self.is_multiplexer and (self.is_float or self.is_multiplexed):
            raise DescriptorInvalidError(
                f"signal {self.name}: multiplexer switch must be a plain integer"
            )
        needed = bits_required(self.start, self.length, self.byte_order)
        if needed > message_length * 8:
            raise DescriptorInvalidError(
                f"signal {self.name}: bits {self.start}+{self.length} "
                + f"({self.byte_order.value}) exceed {message_length} byte message"
            )


@dataclass(frozen=True, slots=True)
class MessageDescriptor:
    """Payload layout of one CAN identifier"""
    frame_id: int
    name: str
    length: int
    signals: tuple[SignalDescriptor, ...] = ()
    is_extended: bool = False
    senders: tuple[str, ...] = ()
    comment: str = ""

    @property
    def multiplexer(self) -> SignalDescriptor | None:
        for signal in self.signals:
            if signal.is_multiplexer:
                return signal
        return None

    def signal(self, name: str) -> SignalDescriptor | None:
        for signal in self.signals:
            if signal.name == name:
                return signal
        return None

    def validate(self) -> None:
        """Validate the message and every signal in it.

        Raises:
            DescriptorInvalidError: On any violation
        """
        id_mask = EXTENDED_ID_MASK if self.is_extended else STANDARD_ID_MASK
        if not 0 <= self.frame_id <= id_mask:
            raise DescriptorInvalidError(
                f"message {self.name}: id 0x{self.frame_id:X} out of range "
                + f"for {'extended' if self.is_extended else 'standard'} frames"
            )
        if not 0 <= self.length <= _MAX_MESSAGE_BYTES:
            raise DescriptorInvalidError(
                f"message {self.name}: length {self.length} outside 0..{_MAX_MESSAGE_BYTES}"
            )

        seen: set[str] = set()
        switches = 0
        for signal in self.signals:
            if signal.name in seen:
                raise DescriptorInvalidError(
                    f"message {self.name}: duplicate signal {signal.name}"
                )
            seen.add(signal.name)
            signal.validate(self.length)
            if signal.is_multiplexer:
                switches += 1

        if switches > 1:
            raise DescriptorInvalidError(
                f"message {self.name}: more than one multiplexer switch"
            )
        if switches == 0 and any(s.is_multiplexed for s in self.signals):
            raise DescriptorInvalidError(
                f"message {self.name}: multiplexed signals without a switch"
            )


@dataclass(frozen=True)
class Database:
    """Read-only set of message descriptors.

    Lookup is by numeric identifier or by message name. An identifier names
    at most one message, standard or extended, so output channels keyed by
    identifier never mix two frame formats. Every message is validated on
    construction.
    """
    messages: tuple[MessageDescriptor, ...]
    version: str = ""
    _by_id: dict[int, MessageDescriptor] = field(
        init=False, repr=False, compare=False,
    )
    _by_name: dict[str, MessageDescriptor] = field(
        init=False, repr=False, compare=False,
    )

    def __post_init__(self) -> None:
        by_id: dict[int, MessageDescriptor] = {}
        by_name: dict[str, MessageDescriptor] = {}
        for message in self.messages:
            message.validate()
            if message.frame_id in by_id:
                raise DescriptorInvalidError(
                    f"duplicate message id 0x{message.frame_id:X} "
                    + f"({by_id[message.frame_id].name}, {message.name})"
                )
            if message.name in by_name:
                raise DescriptorInvalidError(f"duplicate message name {message.name}")
            by_id[message.frame_id] = message
            by_name[message.name] = message
        object.__setattr__(self, "_by_id", by_id)
        object.__setattr__(self, "_by_name", by_name)

    @classmethod
    def from_messages(
        cls, messages: Iterable[MessageDescriptor], version: str = "",
    ) -> Database:
        return cls(messages=tuple(messages), version=version)

    def get_message(
        self, frame_id: int, is_extended: bool | None = None,
    ) -> MessageDescriptor | None:
        """Find a message by identifier.

        With ``is_extended`` set, a message of the other frame format does
        not match.
        """
        message = self._by_id.get(frame_id)
        if message is None:
            return None
        if is_extended is not None and message.is_extended != is_extended:
            return None
        return message

    def get_message_by_name(self, name: str) -> MessageDescriptor | None:
        return self._by_name.get(name)

    def signals(self) -> Iterator[tuple[MessageDescriptor, SignalDescriptor]]:
        for message in self.messages:
            for signal in message.signals:
                yield message, signal

    def __iter__(self) -> Iterator[MessageDescriptor]:
        return iter(self.messages)

    def __len__(self) -> int:
        return len(self.messages)
