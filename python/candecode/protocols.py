"""Type definitions for structured data

Defines TypedDict classes and Enums for well-known structures.
This provides better type safety and IDE support.
"""

from __future__ import annotations

from enum import Enum
from typing import TypedDict, NotRequired


class ByteOrder(str, Enum):
    """CAN signal byte order"""
    LITTLE_ENDIAN = "little_endian"  # Intel
    BIG_ENDIAN = "big_endian"  # Motorola

    @classmethod
    def parse(cls, text: str) -> ByteOrder:
        """Parse a byte order name, accepting the Intel/Motorola aliases.

        Raises:
            ValueError: If *text* names no known byte order.
        """
        normalized = text.strip().lower()
        if normalized in ("little_endian", "intel"):
            return cls.LITTLE_ENDIAN
        if normalized in ("big_endian", "motorola"):
            return cls.BIG_ENDIAN
        raise ValueError(f"unknown byte order: {text!r}")


class RawKind(str, Enum):
    """Active variant of a decoded raw value"""
    BOOL = "bool"
    INT = "int"
    UINT = "uint"
    FLOAT = "float"
    BYTES = "bytes"


class Compression(str, Enum):
    """Chunk compression of the output container"""
    ZSTD = "zstd"
    LZ4 = "lz4"
    NONE = "none"


# ============================================================================
# YAML dictionary structure
# ============================================================================

class YAMLSignal(TypedDict):
    """Signal entry of a YAML dictionary"""
    name: str
    start: int
    length: int
    byte_order: str  # "little_endian" | "big_endian" | "intel" | "motorola"
    signed: NotRequired[bool]
    float: NotRequired[bool]
    scale: NotRequired[float]
    offset: NotRequired[float]
    min: NotRequired[float]
    max: NotRequired[float]
    unit: NotRequired[str]
    multiplexer: NotRequired[bool]
    multiplex_value: NotRequired[int]
    values: NotRequired[dict[int, str]]
    receivers: NotRequired[list[str]]


class YAMLMessage(TypedDict):
    """Message entry of a YAML dictionary"""
    id: int
    name: str
    length: int
    signals: list[YAMLSignal]
    extended: NotRequired[bool]
    senders: NotRequired[list[str]]


class YAMLDictionary(TypedDict):
    """Complete YAML dictionary file"""
    version: NotRequired[str]
    messages: list[YAMLMessage]


# ============================================================================
# Output container structures
# ============================================================================

class ChannelMetadata(TypedDict):
    """Metadata map attached to every output channel"""
    can_id: str  # "0x1AB"
    message: str
    signal: str
    is_extended: str  # "true" | "false"
    unit: NotRequired[str]  # omitted when the signal has no unit


class SignalRecord(TypedDict):
    """JSON record written once per decoded signal occurrence

    Exactly one of the raw_* fields is present.
    """
    can_id: int
    message: str
    signal: str
    timestamp_ns: int
    raw_bool: NotRequired[bool]
    raw_int: NotRequired[int]
    raw_uint: NotRequired[int]
    raw_float: NotRequired[float]
    raw_float_special: NotRequired[str]  # "nan", "inf" or "-inf"
    raw_bytes: NotRequired[str]  # base64
    physical: NotRequired[float]
    description: NotRequired[str]
    unit: NotRequired[str]
