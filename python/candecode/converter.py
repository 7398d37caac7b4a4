"""Capture to MCAP conversion

Streams frames from a capture through the decoder into a SignalWriter.
Frames without a descriptor and frames whose shape disagrees with their
descriptor are counted and skipped; write failures abort the conversion.

Example:
    stats = convert_file("vehicle.dbc", "drive.blf", "mcap/drive.mcap")
    print(stats.frames_decoded, stats.signals_written)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass
from pathlib import Path

from .dbc_converter import load_dbc
from .decoder import DecodedSignal, Decoder, Frame
from .descriptors import Database
from .errors import ShapeMismatchError, UnknownMessageError
from .mcap_writer import SignalWriter, WriterOptions
from .pcapng import open_frame_source
from .yaml_loader import load_dictionary

_LOGGER = logging.getLogger(__name__)

YAML_EXTENSIONS: frozenset[str] = frozenset({".yaml", ".yml"})


@dataclass
class ConversionStats:
    """Counters of one conversion run"""
    frames_read: int = 0
    frames_decoded: int = 0
    unknown_frames: int = 0
    shape_mismatches: int = 0
    signals_written: int = 0
    cancelled: bool = False

    @property
    def frames_skipped(self) -> int:
        return self.unknown_frames + self.shape_mismatches

    def to_dict(self) -> dict[str, int | bool]:
        return asdict(self)


def load_database(path: str | Path) -> Database:
    """Load a message dictionary, picking the loader by extension.

    ``.yaml``/``.yml`` files use the YAML loader, anything else is parsed
    as a .dbc file.
    """
    resolved = Path(path)
    if resolved.suffix.lower() in YAML_EXTENSIONS:
        return load_dictionary(resolved)
    return load_dbc(resolved)


def convert(
    frames: Iterable[Frame],
    decoder: Decoder,
    writer: SignalWriter,
    *,
    cancel: threading.Event | None = None,
    on_signal: Callable[[DecodedSignal], None] | None = None,
) -> ConversionStats:
    """Decode every frame and append its signals to the writer.

    Args:
        frames: Frame source, consumed lazily
        decoder: Decoder over the message dictionary
        writer: Open output container
        cancel: Checked before each frame; when set the loop stops and the
            stats are marked cancelled
        on_signal: Called with each signal after it has been written

    Returns:
        Counters for the run

    Raises:
        ChannelWriteError: If appending to the container fails
    """
    stats = ConversionStats()

    for frame in frames:
        if cancel is not None and cancel.is_set():
            stats.cancelled = True
            _LOGGER.info("Conversion cancelled after %d frames", stats.frames_read)
            break

        stats.frames_read += 1
        try:
            signals = decoder.decode(frame)
        except UnknownMessageError as e:
            stats.unknown_frames += 1
            _LOGGER.debug("Skipping frame: %s", e)
            continue
        except ShapeMismatchError as e:
            stats.shape_mismatches += 1
            _LOGGER.debug("Skipping frame: %s", e)
            continue

        stats.frames_decoded += 1
        for signal in signals:
            writer.append(signal)
            stats.signals_written += 1
            if on_signal is not None:
                on_signal(signal)

    return stats


def convert_file(
    dbc_path: str | Path,
    capture_path: str | Path,
    output_path: str | Path,
    options: WriterOptions | None = None,
    cancel: threading.Event | None = None,
) -> ConversionStats:
    """Convert a capture file into an MCAP file.

    The writer is closed even when the conversion fails, so a partial
    output is still a readable container.

    Raises:
        FileNotFoundError: If the dictionary or capture is missing
        ValueError: If the capture format is not supported
        DescriptorInvalidError: If the dictionary is invalid
        CaptureFormatError: If the capture is malformed
        ChannelWriteError: If the output cannot be written
    """
    capture = Path(capture_path)
    if not capture.exists():
        raise FileNotFoundError(f"capture file not found: {capture_path}")

    decoder = Decoder(load_database(dbc_path))
    frames = open_frame_source(capture)

    _LOGGER.info("Converting %s -> %s", capture, output_path)
    with SignalWriter(output_path, options) as writer:
        stats = convert(frames, decoder, writer, cancel=cancel)

    _LOGGER.info(
        "Converted %d of %d frames into %d signals on %d channels "
        "(%d unknown, %d shape mismatches)",
        stats.frames_decoded, stats.frames_read, stats.signals_written,
        writer.channel_count, stats.unknown_frames, stats.shape_mismatches,
    )
    return stats
