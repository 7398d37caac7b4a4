"""Command-line interface for candecode

Subcommands:
    convert  - decode a CAN capture into an MCAP file
    decode   - decode signals from a single CAN frame
    signals  - list all signals defined in a dictionary

Usage:
    python -m candecode convert --dbc vehicle.dbc drive.pcapng
    python -m candecode decode --dbc vehicle.dbc 0x100 E803000000000000
    python -m candecode signals --dbc vehicle.yaml
"""

from __future__ import annotations

import argparse
import json
import signal
import sys
import threading
from pathlib import Path
from typing import NoReturn, TypedDict

import yaml  # type: ignore[import-untyped]

from .converter import ConversionStats, convert_file, load_database
from .decoder import DecodedSignal, Decoder, Frame
from .descriptors import Database, MessageDescriptor, SignalDescriptor
from .errors import CandecodeError, DecodeError
from .logging_config import configure_logging
from .mcap_writer import DEFAULT_CHUNK_SIZE, WriterOptions
from .protocols import ByteOrder, Compression, RawKind
from .registry import DEFAULT_TOPIC_PREFIX


# ============================================================================
# Exit codes
# ============================================================================

_EXIT_OK = 0
_EXIT_DECODE_FAILED = 1
_EXIT_ERROR = 2

_DEFAULT_OUTPUT_DIR = "mcap"


class _SignalOutput(TypedDict):
    name: str
    raw: bool | int | float | str
    physical: float | None
    unit: str
    description: str | None
    in_range: bool


# ============================================================================
# Helpers
# ============================================================================

def _die(msg: str) -> NoReturn:
    """Print error to stderr and exit with code 2."""
    print(f"Error: {msg}", file=sys.stderr)
    sys.exit(_EXIT_ERROR)


def parse_can_id(s: str) -> int:
    """Parse a CAN ID from hex (0x100) or decimal (256) string.

    Raises:
        ValueError: If *s* is not a valid integer.
    """
    s = s.strip()
    try:
        if s.lower().startswith("0x"):
            return int(s, 16)
        return int(s)
    except ValueError as exc:
        raise ValueError(f"invalid CAN ID: {s!r}") from exc


def parse_hex_data(s: str) -> bytes:
    """Parse hex data string into bytes.

    Accepts:
        "E803000000000000"
        "E8 03 00 00 00 00 00 00"
        "E8:03:00:00:00:00:00:00"

    Raises:
        ValueError: If *s* contains non-hex characters or has odd length.
    """
    cleaned = s.replace(" ", "").replace(":", "")
    if cleaned.lower().startswith("0x"):
        cleaned = cleaned[2:]
    if len(cleaned) % 2 != 0:
        raise ValueError(f"hex data has odd number of characters: {s!r}")
    try:
        return bytes.fromhex(cleaned)
    except ValueError as exc:
        raise ValueError(f"invalid hex data: {s!r}") from exc


def format_signal_value(value: float, unit: str = "") -> str:
    """Format a physical value with a precision chosen by its magnitude.

    Examples:
        >>> format_signal_value(10.0, "km/h")
        '10.00 km/h'
        >>> format_signal_value(1500.0)
        '1.500e+03'
    """
    magnitude = abs(value)
    if magnitude == 0:
        formatted = "0"
    elif magnitude >= 1000 or magnitude < 0.01:
        formatted = f"{value:.3e}"
    elif magnitude >= 100:
        formatted = f"{value:.1f}"
    elif magnitude >= 10:
        formatted = f"{value:.2f}"
    else:
        formatted = f"{value:.3f}"

    if unit:
        return f"{formatted} {unit}"
    return formatted


def default_output_path(capture: str | Path) -> Path:
    """``mcap/<capture stem>.mcap``"""
    return Path(_DEFAULT_OUTPUT_DIR) / f"{Path(capture).stem}.mcap"


def _load_database(args: argparse.Namespace) -> Database:
    """Load the dictionary named by --dbc (.dbc or .yaml/.yml)."""
    dbc_path: str = args.dbc
    if not Path(dbc_path).exists():
        _die(f"dictionary file not found: {dbc_path}")
    try:
        return load_database(dbc_path)
    except yaml.YAMLError as exc:
        _die(f"invalid YAML in {dbc_path}: {exc}")


# ============================================================================
# Subcommand: signals
# ============================================================================

def _format_signal_line(sig: SignalDescriptor) -> str:
    """Format a single signal as a one-line summary."""
    order = "LE" if sig.byte_order == ByteOrder.LITTLE_ENDIAN else "BE"
    if sig.is_float:
        kind = "float"
    else:
        kind = "signed" if sig.is_signed else "unsigned"

    offset_str = f"+{sig.offset}" if sig.offset >= 0 else str(sig.offset)
    range_str = (
        f"[{sig.minimum}, {sig.maximum}]"
        if sig.minimum != 0 or sig.maximum != 0
        else ""
    )
    if sig.is_multiplexer:
        mux_str = "  mux"
    elif sig.multiplexer_value is not None:
        mux_str = f"  m{sig.multiplexer_value}"
    else:
        mux_str = ""

    return (
        f"  {sig.name:<20s} bits[{sig.start}:{sig.length}]"
        + f"   {order}  {kind:<10s}"
        + f"  x{sig.scale} {offset_str}"
        + f"  {sig.unit:>6s}  {range_str}{mux_str}"
    ).rstrip()


def _print_signals_text(database: Database) -> None:
    """Print dictionary signals in human-readable text format."""
    total_signals = 0

    for msg in database:
        sender_part = f", sender {', '.join(msg.senders)}" if msg.senders else ""
        extended_part = ", extended" if msg.is_extended else ""
        print(f"Message 0x{msg.frame_id:X} {msg.name} (DLC {msg.length}{extended_part}{sender_part})")

        for sig in msg.signals:
            total_signals += 1
            print(_format_signal_line(sig))

        print()

    print(f"{len(database)} messages, {total_signals} signals")


def _signal_to_dict(sig: SignalDescriptor) -> dict[str, object]:
    out: dict[str, object] = {
        "name": sig.name,
        "start": sig.start,
        "length": sig.length,
        "byte_order": sig.byte_order.value,
        "signed": sig.is_signed,
        "float": sig.is_float,
        "scale": sig.scale,
        "offset": sig.offset,
        "min": sig.minimum,
        "max": sig.maximum,
        "unit": sig.unit,
    }
    if sig.is_multiplexer:
        out["multiplexer"] = True
    if sig.multiplexer_value is not None:
        out["multiplex_value"] = sig.multiplexer_value
    if sig.value_descriptions:
        out["values"] = {str(v.value): v.description for v in sig.value_descriptions}
    return out


def _message_to_dict(msg: MessageDescriptor) -> dict[str, object]:
    return {
        "id": msg.frame_id,
        "name": msg.name,
        "length": msg.length,
        "extended": msg.is_extended,
        "senders": list(msg.senders),
        "signals": [_signal_to_dict(sig) for sig in msg.signals],
    }


def _cmd_signals(args: argparse.Namespace) -> int:
    """List signals defined in a dictionary."""
    database = _load_database(args)

    if getattr(args, "json", False):
        out = {
            "version": database.version,
            "messages": [_message_to_dict(msg) for msg in database],
        }
        print(json.dumps(out, indent=2))
    else:
        _print_signals_text(database)

    return _EXIT_OK


# ============================================================================
# Subcommand: decode
# ============================================================================

def _signal_output(decoded: DecodedSignal) -> _SignalOutput:
    raw = decoded.raw
    raw_value = raw.value
    if raw.kind == RawKind.BYTES and isinstance(raw_value, bytes):
        raw_value = raw_value.hex()
    return {
        "name": decoded.name,
        "raw": raw_value,
        "physical": decoded.physical,
        "unit": decoded.unit,
        "description": decoded.description,
        "in_range": decoded.in_range,
    }


def _format_decoded_line(decoded: DecodedSignal) -> str:
    """Format one decoded signal as ``name = raw [-> physical] [(desc)]``."""
    line = f"  {decoded.name:<20s} = {decoded.raw.value!r}"
    if decoded.physical is not None:
        line += f" -> {format_signal_value(decoded.physical, decoded.unit)}"
    if decoded.description is not None:
        line += f" ({decoded.description})"
    if not decoded.in_range:
        line += "  [out of range]"
    return line


def _cmd_decode(args: argparse.Namespace) -> int:
    """Decode signals from a single CAN frame."""
    database = _load_database(args)
    can_id = parse_can_id(args.can_id)
    data = parse_hex_data(args.data)

    frame = Frame(can_id=can_id, data=data, is_extended=args.extended)
    decoder = Decoder(database)
    try:
        message = decoder.find_message(frame)
        decoder.validate_shape(message, frame)
    except DecodeError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return _EXIT_DECODE_FAILED

    signals = decoder.decode_message(message, frame.data)
    name = message.name

    if getattr(args, "json", False):
        out = {
            "can_id": frame.can_id,
            "message": name,
            "signals": [_signal_output(s) for s in signals],
        }
        print(json.dumps(out, indent=2))
    else:
        print(f"CAN ID 0x{frame.can_id:X} ({name}):")
        print()
        if signals:
            for decoded in signals:
                print(_format_decoded_line(decoded))
        else:
            print("  (no signals)")

    return _EXIT_OK


# ============================================================================
# Subcommand: convert
# ============================================================================

def _run_conversion(
    args: argparse.Namespace, output: Path, options: WriterOptions,
) -> ConversionStats:
    """Run convert_file, turning SIGINT into a cancellation between frames."""
    cancel = threading.Event()

    def _on_sigint(signum: int, frame: object) -> None:
        cancel.set()

    previous = None
    if threading.current_thread() is threading.main_thread():
        previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        return convert_file(args.dbc, args.capture, output, options, cancel=cancel)
    finally:
        if previous is not None:
            signal.signal(signal.SIGINT, previous)


def _print_conversion_text(args: argparse.Namespace, output: Path, stats: ConversionStats) -> None:
    print("candecode: CAN capture to MCAP")
    print()
    print(f"Dictionary: {args.dbc}")
    print(f"Capture:    {args.capture}")
    print(f"Output:     {output}")
    print()
    print(f"Frames read:      {stats.frames_read}")
    print(f"Frames decoded:   {stats.frames_decoded}")
    print(f"Unknown ids:      {stats.unknown_frames}")
    print(f"Shape mismatches: {stats.shape_mismatches}")
    print(f"Signals written:  {stats.signals_written}")
    if stats.cancelled:
        print()
        print("Conversion cancelled; output holds the frames read so far")


def _cmd_convert(args: argparse.Namespace) -> int:
    """Decode a capture file into an MCAP file."""
    if not Path(args.dbc).exists():
        _die(f"dictionary file not found: {args.dbc}")
    if not Path(args.capture).exists():
        _die(f"capture file not found: {args.capture}")
    if args.chunk_size <= 0:
        _die(f"chunk size must be positive, got {args.chunk_size}")

    output = Path(args.output) if args.output else default_output_path(args.capture)
    options = WriterOptions(
        topic_prefix=args.topic_prefix,
        chunk_size=args.chunk_size,
        compression=Compression(args.compression),
    )

    try:
        stats = _run_conversion(args, output, options)
    except yaml.YAMLError as exc:
        _die(f"invalid YAML in {args.dbc}: {exc}")

    if getattr(args, "json", False):
        out = {"output": str(output), **stats.to_dict()}
        print(json.dumps(out, indent=2))
    else:
        _print_conversion_text(args, output, stats)

    return _EXIT_ERROR if stats.cancelled else _EXIT_OK


# ============================================================================
# Argument parser
# ============================================================================

def _build_parser() -> argparse.ArgumentParser:
    """Build the top-level argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="candecode",
        description="Decode CAN captures into per-signal MCAP channels",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # -- convert -------------------------------------------------------------
    p_convert = subparsers.add_parser(
        "convert",
        help="decode a CAN capture into an MCAP file",
    )
    p_convert.add_argument(
        "capture",
        help="capture file (.pcapng, .asc, .blf, .csv, .log, .mf4, .trc)",
    )
    p_convert.add_argument("--dbc", required=True, help=".dbc or .yaml dictionary")
    p_convert.add_argument(
        "-o", "--output",
        help=f"output file (default: {_DEFAULT_OUTPUT_DIR}/<capture>.mcap)",
    )
    p_convert.add_argument(
        "--topic-prefix", default=DEFAULT_TOPIC_PREFIX,
        help=f"first topic segment (default: {DEFAULT_TOPIC_PREFIX})",
    )
    p_convert.add_argument(
        "--compression", default=Compression.ZSTD.value,
        choices=[c.value for c in Compression],
        help="chunk compression (default: zstd)",
    )
    p_convert.add_argument(
        "--chunk-size", type=int, default=DEFAULT_CHUNK_SIZE,
        help=f"chunk size in bytes (default: {DEFAULT_CHUNK_SIZE})",
    )
    p_convert.add_argument("--json", action="store_true", help="output stats as JSON")

    # -- decode --------------------------------------------------------------
    p_decode = subparsers.add_parser(
        "decode",
        help="decode signals from a single CAN frame",
    )
    p_decode.add_argument("can_id", help="CAN ID (hex 0x100 or decimal 256)")
    p_decode.add_argument("data", help="frame data as hex bytes")
    p_decode.add_argument("--dbc", required=True, help=".dbc or .yaml dictionary")
    p_decode.add_argument("--extended", action="store_true", help="29-bit identifier")
    p_decode.add_argument("--json", action="store_true", help="output as JSON")

    # -- signals -------------------------------------------------------------
    p_signals = subparsers.add_parser(
        "signals",
        help="list signals defined in a dictionary",
    )
    p_signals.add_argument("--dbc", required=True, help=".dbc or .yaml dictionary")
    p_signals.add_argument("--json", action="store_true", help="output as JSON")

    return parser


# ============================================================================
# Entry point
# ============================================================================

_COMMANDS = {
    "convert": _cmd_convert,
    "decode": _cmd_decode,
    "signals": _cmd_signals,
}


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns exit code."""
    parser = _build_parser()

    try:
        args = parser.parse_args(argv)
        configure_logging(verbose=args.verbose)
        handler = _COMMANDS[args.command]
        return handler(args)
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else _EXIT_ERROR
    except (FileNotFoundError, ValueError, CandecodeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return _EXIT_ERROR
