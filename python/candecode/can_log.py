"""CAN log file reader

Read industry-standard CAN log files as a stream of Frames for decoding.
Supports ASC, BLF, CSV, candump .log, MF4, SQLite and TRC formats via
python-can.

Example:
    from candecode.can_log import load_can_log, iter_can_log

    # Eager: load entire file
    frames = load_can_log("drive.blf")

    # Lazy: iterate one frame at a time
    for frame in iter_can_log("highway.asc"):
        signals = decoder.decode(frame)
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import Literal

import can

from .decoder import Frame

SUPPORTED_EXTENSIONS: frozenset[str] = frozenset({
    ".asc", ".blf", ".csv", ".db", ".log", ".mf4", ".trc",
})


def load_can_log(
    path: str | Path,
    *,
    skip_error_frames: bool = True,
    on_error: Literal["skip", "raise"] = "skip",
) -> list[Frame]:
    """Load all CAN frames from a log file into memory.

    Args:
        path: Path to a CAN log file (.asc, .blf, .csv, .log, .mf4, .trc)
        skip_error_frames: Skip CAN error frames (default True)
        on_error: "skip" to silently skip corrupt frames, "raise" to propagate

    Returns:
        List of frames in file order
    """
    return list(iter_can_log(
        path,
        skip_error_frames=skip_error_frames,
        on_error=on_error,
    ))


def iter_can_log(
    path: str | Path,
    *,
    skip_error_frames: bool = True,
    on_error: Literal["skip", "raise"] = "skip",
) -> Iterator[Frame]:
    """Lazily iterate CAN frames from a log file.

    Remote frames are kept: the decoder rejects them as a shape mismatch,
    so they still count as read frames.

    Args:
        path: Path to a CAN log file (.asc, .blf, .csv, .log, .mf4, .trc)
        skip_error_frames: Skip CAN error frames (default True)
        on_error: "skip" to silently skip corrupt frames, "raise" to propagate

    Yields:
        Frames with nanosecond timestamps
    """
    resolved = Path(path)
    validate_path(resolved)

    reader = can.LogReader(str(resolved))
    try:
        for msg in reader:
            try:
                result = convert_message(msg, skip_error_frames=skip_error_frames)
            except (ValueError, TypeError, AttributeError):
                if on_error == "raise":
                    raise
                continue

            if result is not None:
                yield result
    finally:
        reader.stop()


def validate_path(path: Path) -> None:
    """Validate that the file exists and has a supported extension."""
    if not path.exists():
        raise FileNotFoundError(f"CAN log file not found: {path}")

    ext = effective_extension(path)
    if ext not in SUPPORTED_EXTENSIONS:
        raise ValueError(
            f"Unsupported CAN log format '{ext}'. " +
            f"Supported: {', '.join(sorted(SUPPORTED_EXTENSIONS))}"
        )


def effective_extension(path: Path) -> str:
    """Get the effective file extension, stripping .gz if present."""
    suffixes = path.suffixes
    if len(suffixes) >= 2 and suffixes[-1] == ".gz":
        return suffixes[-2]
    return path.suffix


def convert_message(
    msg: can.Message,
    *,
    skip_error_frames: bool,
) -> Frame | None:
    """Convert a python-can Message to a Frame.

    Returns None if the message should be skipped.
    """
    if skip_error_frames and msg.is_error_frame:
        return None

    data = bytes(msg.data) if msg.data is not None else b""
    if msg.is_remote_frame:
        data = b""

    return Frame(
        can_id=msg.arbitration_id,
        data=data,
        is_extended=bool(msg.is_extended_id),
        is_remote=bool(msg.is_remote_frame),
        timestamp_ns=timestamp_to_ns(msg.timestamp),
    )


def timestamp_to_ns(timestamp: float) -> int:
    """Convert seconds (float) to nanoseconds (int)."""
    return int(round(timestamp * 1_000_000_000))
