"""YAML loader for CAN message dictionaries

Loads message and signal descriptors from YAML files or strings, as a
lightweight alternative to .dbc files for tests and hand-written
dictionaries.

Usage:
    from candecode.yaml_loader import load_dictionary

    # From a file
    database = load_dictionary("vehicle.yaml")

    # From a YAML string
    database = load_dictionary('''
    messages:
      - id: 0x100
        name: EngineStatus
        length: 8
        signals:
          - name: EngineSpeed
            start: 0
            length: 16
            byte_order: little_endian
            scale: 0.25
            unit: rpm
    ''')

YAML Schema
============

::

    version: "1.0"                   # optional
    messages:
      - id: 0x100
        name: EngineStatus
        length: 8                     # payload bytes
        extended: false               # optional, 29-bit identifier
        senders: [ECU1]               # optional
        signals:
          - name: EngineSpeed
            start: 0                  # DBC start bit
            length: 16
            byte_order: little_endian # little_endian|big_endian|intel|motorola
            signed: false             # optional
            float: false              # optional, IEEE-754 (32/64 bits)
            scale: 0.25               # optional, default 1
            offset: 0                 # optional, default 0
            min: 0                    # optional
            max: 8000                 # optional
            unit: rpm                 # optional
            multiplexer: false        # optional, true on the switch signal
            multiplex_value: 1        # optional, present when switch == 1
            values: {0: "Off"}        # optional value table
            receivers: [ECU2]         # optional
"""

from __future__ import annotations

from pathlib import Path
from typing import TypeGuard

import yaml  # type: ignore[import-untyped]

from .descriptors import (
    Database,
    MessageDescriptor,
    SignalDescriptor,
    ValueDescription,
)
from .protocols import ByteOrder


# ============================================================================
# Type guards: runtime narrowing for YAML-parsed data
# ============================================================================

def _is_str_dict(val: object) -> TypeGuard[dict[str, object]]:
    """Narrow an unknown value to ``dict[str, object]``.

    YAML ``safe_load`` always produces dicts with string keys for our
    schema, so an ``isinstance(val, dict)`` check is sufficient at runtime.
    """
    return isinstance(val, dict)


def _is_object_list(val: object) -> TypeGuard[list[object]]:
    """Narrow an unknown value to ``list[object]``."""
    return isinstance(val, list)


# ============================================================================
# Field accessors with runtime type checking
# ============================================================================

def _get_str(d: dict[str, object], key: str, where: str) -> str:
    """Extract a required string field from a dict."""
    val = d.get(key)
    if not isinstance(val, str):
        raise ValueError(f"{where}: missing or invalid '{key}' (expected string)")
    return val


def _get_int(d: dict[str, object], key: str, where: str) -> int:
    """Extract a required integer field from a dict."""
    val = d.get(key)
    if isinstance(val, int) and not isinstance(val, bool):
        return val
    raise ValueError(f"{where}: missing or invalid '{key}' (expected integer)")


def _opt_number(d: dict[str, object], key: str, where: str, default: float) -> float:
    """Extract an optional numeric field from a dict."""
    if key not in d:
        return default
    val = d[key]
    if isinstance(val, (int, float)) and not isinstance(val, bool):
        return float(val)
    raise ValueError(f"{where}: invalid '{key}' (expected number)")


def _opt_bool(d: dict[str, object], key: str, where: str) -> bool:
    """Extract an optional boolean field from a dict."""
    val = d.get(key, False)
    if not isinstance(val, bool):
        raise ValueError(f"{where}: invalid '{key}' (expected true/false)")
    return val


def _opt_str(d: dict[str, object], key: str, where: str) -> str:
    val = d.get(key, "")
    if val is None:
        return ""
    if not isinstance(val, str):
        raise ValueError(f"{where}: invalid '{key}' (expected string)")
    return val


def _opt_str_list(d: dict[str, object], key: str, where: str) -> tuple[str, ...]:
    val = d.get(key, [])
    if val is None:
        return ()
    if not _is_object_list(val) or not all(isinstance(v, str) for v in val):
        raise ValueError(f"{where}: invalid '{key}' (expected list of strings)")
    return tuple(str(v) for v in val)


# ============================================================================
# Public API
# ============================================================================

def load_dictionary(source: str | Path) -> Database:
    """Load a message dictionary from a YAML file or YAML string.

    Args:
        source: Path to .yaml/.yml file, or a YAML string

    Returns:
        Validated descriptor database

    Raises:
        ValueError: Missing or mistyped fields
        DescriptorInvalidError: A descriptor breaks a layout invariant
        FileNotFoundError: File path doesn't exist
    """
    raw = _load_yaml(source)

    if not _is_str_dict(raw) or "messages" not in raw:
        raise ValueError("YAML must contain a 'messages' list")

    messages_raw = raw["messages"]
    if not _is_object_list(messages_raw):
        raise ValueError("YAML must contain a 'messages' list")

    messages: list[MessageDescriptor] = []
    for entry in messages_raw:
        if not _is_str_dict(entry):
            raise ValueError("Each message must be a YAML mapping")
        messages.append(_parse_message(entry))

    version = raw.get("version", "")
    return Database.from_messages(messages, version=str(version) if version else "")


# ============================================================================
# Internal helpers
# ============================================================================

def _load_yaml(source: str | Path) -> object:
    """Load YAML from a file path or string.

    Returns the raw parsed object; the caller must validate structure.
    """
    if isinstance(source, Path):
        if not source.exists():
            raise FileNotFoundError(f"YAML file not found: {source}")
        with open(source, encoding="utf-8") as f:
            return yaml.safe_load(f)  # type: ignore[no-any-return]

    # String: detect whether it's a file path or inline YAML
    if "\n" in source or source.lstrip().startswith("messages:"):
        return yaml.safe_load(source)  # type: ignore[no-any-return]

    # Treat as file path
    path = Path(source)
    if not path.exists():
        raise FileNotFoundError(f"YAML file not found: {source}")
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f)  # type: ignore[no-any-return]


def _parse_message(entry: dict[str, object]) -> MessageDescriptor:
    """Parse a single message entry from the YAML."""
    name = _get_str(entry, "name", "Message '<unnamed>'")
    where = f"Message '{name}'"

    signals_raw = entry.get("signals", [])
    if not _is_object_list(signals_raw):
        raise ValueError(f"{where}: 'signals' must be a list")

    signals: list[SignalDescriptor] = []
    for sig in signals_raw:
        if not _is_str_dict(sig):
            raise ValueError(f"{where}: each signal must be a YAML mapping")
        signals.append(_parse_signal(sig, name))

    return MessageDescriptor(
        frame_id=_get_int(entry, "id", where),
        name=name,
        length=_get_int(entry, "length", where),
        signals=tuple(signals),
        is_extended=_opt_bool(entry, "extended", where),
        senders=_opt_str_list(entry, "senders", where),
        comment=_opt_str(entry, "comment", where),
    )


def _parse_signal(entry: dict[str, object], message_name: str) -> SignalDescriptor:
    """Parse a single signal entry of a message."""
    name = _get_str(entry, "name", f"Message '{message_name}'")
    where = f"Signal '{message_name}.{name}'"

    try:
        byte_order = ByteOrder.parse(_get_str(entry, "byte_order", where))
    except ValueError as e:
        raise ValueError(f"{where}: {e}") from e

    multiplex_value: int | None = None
    if "multiplex_value" in entry:
        multiplex_value = _get_int(entry, "multiplex_value", where)

    return SignalDescriptor(
        name=name,
        start=_get_int(entry, "start", where),
        length=_get_int(entry, "length", where),
        byte_order=byte_order,
        is_signed=_opt_bool(entry, "signed", where),
        is_float=_opt_bool(entry, "float", where),
        is_multiplexer=_opt_bool(entry, "multiplexer", where),
        multiplexer_value=multiplex_value,
        scale=_opt_number(entry, "scale", where, 1.0),
        offset=_opt_number(entry, "offset", where, 0.0),
        minimum=_opt_number(entry, "min", where, 0.0),
        maximum=_opt_number(entry, "max", where, 0.0),
        unit=_opt_str(entry, "unit", where),
        value_descriptions=_parse_values(entry, where),
        receivers=_opt_str_list(entry, "receivers", where),
        comment=_opt_str(entry, "comment", where),
    )


def _parse_values(entry: dict[str, object], where: str) -> tuple[ValueDescription, ...]:
    """Parse the optional value table of a signal."""
    raw = entry.get("values")
    if raw is None:
        return ()
    if not isinstance(raw, dict):
        raise ValueError(f"{where}: 'values' must be a mapping of integer to text")

    descriptions: list[ValueDescription] = []
    for value, text in raw.items():
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValueError(f"{where}: value table key {value!r} is not an integer")
        descriptions.append(ValueDescription(value=value, description=str(text)))
    return tuple(sorted(descriptions, key=lambda d: d.value))
