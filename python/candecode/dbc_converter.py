"""
Convert .dbc files into candecode descriptors.

Uses cantools to parse .dbc files and maps its messages and signals onto the
immutable descriptor model used by the decoder.
"""

from __future__ import annotations

import logging
from pathlib import Path

try:
    import cantools
except ImportError:
    raise ImportError(
        "cantools is required for DBC conversion. "
        "Install it with: pip install cantools"
    )

from .descriptors import (
    Database,
    MessageDescriptor,
    SignalDescriptor,
    ValueDescription,
)
from .errors import DescriptorInvalidError
from .protocols import ByteOrder

_LOGGER = logging.getLogger(__name__)


def _value_descriptions(
    choices: dict[int, object] | None,
) -> tuple[ValueDescription, ...]:
    if not choices:
        return ()
    return tuple(
        ValueDescription(value=int(value), description=str(text))
        for value, text in sorted(choices.items())
    )


def _multiplexer_value(signal: cantools.database.can.Signal) -> int | None:
    """Switch value selecting a multiplexed signal, None if always present."""
    ids = signal.multiplexer_ids
    if not ids:
        return None
    if len(ids) > 1:
        # Only the first selecting value is kept
        _LOGGER.warning(
            "Signal %s is selected by %d multiplexer values, using %d",
            signal.name, len(ids), ids[0],
        )
    return int(ids[0])


def signal_from_cantools(signal: cantools.database.can.Signal) -> SignalDescriptor:
    """Convert a cantools Signal to a SignalDescriptor."""

    byte_order = (
        ByteOrder.LITTLE_ENDIAN
        if signal.byte_order == "little_endian"
        else ByteOrder.BIG_ENDIAN
    )

    return SignalDescriptor(
        name=signal.name,
        start=signal.start,
        length=signal.length,
        byte_order=byte_order,
        is_signed=bool(signal.is_signed),
        is_float=bool(signal.is_float),
        is_multiplexer=bool(signal.is_multiplexer),
        multiplexer_value=_multiplexer_value(signal),
        scale=float(signal.scale),
        offset=float(signal.offset),
        minimum=float(signal.minimum) if signal.minimum is not None else 0.0,
        maximum=float(signal.maximum) if signal.maximum is not None else 0.0,
        unit=signal.unit if signal.unit else "",
        value_descriptions=_value_descriptions(signal.choices),
        receivers=tuple(signal.receivers or ()),
        comment=signal.comment if isinstance(signal.comment, str) else "",
    )


def message_from_cantools(message: cantools.database.can.Message) -> MessageDescriptor:
    """Convert a cantools Message to a MessageDescriptor."""

    return MessageDescriptor(
        frame_id=message.frame_id,
        name=message.name,
        length=message.length,
        signals=tuple(signal_from_cantools(sig) for sig in message.signals),
        is_extended=bool(message.is_extended_frame),
        senders=tuple(message.senders or ()),
        comment=message.comment if isinstance(message.comment, str) else "",
    )


def database_from_cantools(db: cantools.database.can.Database) -> Database:
    """Convert a loaded cantools database, validating every descriptor.

    Raises:
        DescriptorInvalidError: If a message or signal breaks a layout invariant
    """
    return Database.from_messages(
        (message_from_cantools(msg) for msg in db.messages),
        version=db.version if db.version else "",
    )


def load_dbc(dbc_path: str | Path) -> Database:
    """
    Load a .dbc file into a validated descriptor database.

    Args:
        dbc_path: Path to the .dbc file

    Returns:
        Database of message descriptors

    Raises:
        FileNotFoundError: If the file does not exist
        DescriptorInvalidError: If cantools rejects the file or a descriptor
            breaks a layout invariant
    """
    path = Path(dbc_path)
    if not path.exists():
        raise FileNotFoundError(f"DBC file not found: {dbc_path}")

    try:
        db = cantools.database.load_file(str(path), database_format="dbc")
    except cantools.database.UnsupportedDatabaseFormatError as e:
        raise DescriptorInvalidError(f"failed to parse {path}: {e}") from e

    database = database_from_cantools(db)
    _LOGGER.info("Loaded %d messages from %s", len(database), path.name)
    return database
