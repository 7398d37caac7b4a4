"""candecode - Decode CAN captures into per-signal MCAP channels

Conversion
==========

The primary interface converts a capture file in one call:

    from candecode import convert_file

    stats = convert_file("vehicle.dbc", "drive.pcapng", "mcap/drive.mcap")
    print(f"{stats.signals_written} signals from {stats.frames_decoded} frames")

Building blocks
===============

Decode frames and write signals yourself:

    from candecode import Decoder, Frame, SignalWriter, load_dbc

    decoder = Decoder(load_dbc("vehicle.dbc"))
    with SignalWriter("out.mcap") as writer:
        frame = Frame(can_id=0x100, data=bytes.fromhex("E803000000000000"))
        for signal in decoder.decode(frame):
            writer.append(signal)

Every (CAN identifier, signal name) pair gets its own channel, with topic
``/can/<message>/<signal>``, registered the first time the signal is seen.
"""

from candecode.converter import ConversionStats, convert, convert_file, load_database
from candecode.dbc_converter import load_dbc
from candecode.decoder import DecodedSignal, Decoder, Frame, RawValue
from candecode.descriptors import (
    Database,
    MessageDescriptor,
    SignalDescriptor,
    ValueDescription,
)
from candecode.errors import (
    CandecodeError,
    CaptureFormatError,
    ChannelWriteError,
    DecodeError,
    DescriptorInvalidError,
    RegistryRaceViolation,
    ShapeMismatchError,
    UnknownMessageError,
)
from candecode.mcap_writer import SignalWriter, WriterOptions
from candecode.protocols import ByteOrder, Compression, RawKind
from candecode.registry import ChannelHandle, ChannelRegistry
from candecode.yaml_loader import load_dictionary

__version__ = "0.1.0"
__all__ = [
    "ConversionStats",
    "convert",
    "convert_file",
    "load_database",
    "load_dbc",
    "load_dictionary",
    "DecodedSignal",
    "Decoder",
    "Frame",
    "RawValue",
    "Database",
    "MessageDescriptor",
    "SignalDescriptor",
    "ValueDescription",
    "CandecodeError",
    "CaptureFormatError",
    "ChannelWriteError",
    "DecodeError",
    "DescriptorInvalidError",
    "RegistryRaceViolation",
    "ShapeMismatchError",
    "UnknownMessageError",
    "SignalWriter",
    "WriterOptions",
    "ByteOrder",
    "Compression",
    "RawKind",
    "ChannelHandle",
    "ChannelRegistry",
]
