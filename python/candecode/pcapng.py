"""pcapng capture reader for SocketCAN traffic

Reads CAN frames from pcapng files written by tcpdump, Wireshark or dumpcap
on a SocketCAN interface. Supported link types:

- 227 (LINKTYPE_CAN_SOCKETCAN): raw can_frame / canfd_frame, id word in
  network byte order
- 113 (LINKTYPE_LINUX_SLL) and 276 (LINKTYPE_LINUX_SLL2): Linux cooked
  capture wrapping a can_frame, id word in host (little-endian) byte order

Packets on other link types, error frames and packets too short to hold a
CAN frame are skipped and counted.

Example:
    with open("capture.pcapng", "rb") as f:
        reader = PcapngReader(f)
        for frame in reader:
            ...
"""

from __future__ import annotations

import logging
import struct
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import IO

from .can_log import effective_extension, iter_can_log, validate_path
from .decoder import Frame
from .errors import CaptureFormatError

_LOGGER = logging.getLogger(__name__)

BLOCK_SECTION_HEADER: int = 0x0A0D0D0A
BLOCK_INTERFACE_DESCRIPTION: int = 0x00000001
BLOCK_SIMPLE_PACKET: int = 0x00000003
BLOCK_ENHANCED_PACKET: int = 0x00000006

BYTE_ORDER_MAGIC: int = 0x1A2B3C4D

LINKTYPE_LINUX_SLL: int = 113
LINKTYPE_CAN_SOCKETCAN: int = 227
LINKTYPE_LINUX_SLL2: int = 276

OPTION_END: int = 0
OPTION_IF_TSRESOL: int = 9
OPTION_IF_TSOFFSET: int = 14

CAN_EFF_FLAG: int = 0x80000000
CAN_RTR_FLAG: int = 0x40000000
CAN_ERR_FLAG: int = 0x20000000
CAN_EFF_MASK: int = 0x1FFFFFFF
CAN_SFF_MASK: int = 0x000007FF

_CAN_HEADER_LEN = 8
_CAN_MAX_DLEN = 8
_CANFD_MAX_DLEN = 64
_CANFD_MTU = _CAN_HEADER_LEN + _CANFD_MAX_DLEN
_SLL_HEADER_LEN = 16
_SLL2_HEADER_LEN = 20

PCAPNG_EXTENSION: str = ".pcapng"

_NS_PER_SECOND = 1_000_000_000
_DEFAULT_TS_UNITS = 1_000_000  # microseconds


@dataclass(slots=True)
class _Interface:
    link_type: int
    snap_len: int
    ts_units: int = _DEFAULT_TS_UNITS
    ts_offset_s: int = 0

    def to_ns(self, ticks: int) -> int:
        return ticks * _NS_PER_SECOND // self.ts_units + self.ts_offset_s * _NS_PER_SECOND


def parse_can_payload(payload: bytes, id_byte_order: str, timestamp_ns: int) -> Frame | None:
    """Turn a SocketCAN can_frame / canfd_frame into a Frame.

    Args:
        payload: Frame bytes starting at the id word
        id_byte_order: struct prefix of the id word ("<" or ">")
        timestamp_ns: Capture time of the packet

    Returns:
        The frame, or None for error frames and runt packets
    """
    if len(payload) < _CAN_HEADER_LEN:
        return None

    (id_word,) = struct.unpack_from(id_byte_order + "I", payload, 0)
    if id_word & CAN_ERR_FLAG:
        return None

    is_extended = bool(id_word & CAN_EFF_FLAG)
    is_remote = bool(id_word & CAN_RTR_FLAG)
    can_id = id_word & (CAN_EFF_MASK if is_extended else CAN_SFF_MASK)

    max_dlen = _CANFD_MAX_DLEN if len(payload) == _CANFD_MTU else _CAN_MAX_DLEN
    dlen = min(payload[4], max_dlen)
    data = b"" if is_remote else payload[_CAN_HEADER_LEN:_CAN_HEADER_LEN + dlen]

    return Frame(
        can_id=can_id,
        data=data,
        is_extended=is_extended,
        is_remote=is_remote,
        timestamp_ns=timestamp_ns,
    )


class PcapngReader:
    """Iterate CAN frames from a pcapng stream.

    Handles sections of either byte order and any number of interfaces.

    Raises:
        CaptureFormatError: While iterating, on truncated or malformed blocks
    """

    def __init__(self, stream: IO[bytes]):
        self._stream: IO[bytes] = stream
        self._endian: str | None = None
        self._interfaces: list[_Interface] = []
        self.packet_count: int = 0
        self.frame_count: int = 0
        self.skipped_count: int = 0

    def __iter__(self) -> Iterator[Frame]:
        while True:
            header = self._stream.read(8)
            if not header:
                return
            if len(header) < 8:
                raise CaptureFormatError("truncated block header")

            if struct.unpack("<I", header[:4])[0] == BLOCK_SECTION_HEADER:
                self._read_section_header(header)
                continue

            if self._endian is None:
                raise CaptureFormatError("packet block before section header")

            block_type, total_len = struct.unpack(self._endian + "II", header)
            body = self._read_body(total_len)

            if block_type == BLOCK_INTERFACE_DESCRIPTION:
                self._interfaces.append(self._parse_interface(body))
            elif block_type == BLOCK_ENHANCED_PACKET:
                frame = self._parse_enhanced_packet(body)
                if frame is not None:
                    yield frame
            elif block_type == BLOCK_SIMPLE_PACKET:
                frame = self._parse_simple_packet(body)
                if frame is not None:
                    yield frame

    def _read_body(self, total_len: int) -> bytes:
        """Read the rest of a block; returns the body without trailing length."""
        if total_len < 12 or total_len % 4 != 0:
            raise CaptureFormatError(f"invalid block length {total_len}")
        rest = self._stream.read(total_len - 8)
        if len(rest) < total_len - 8:
            raise CaptureFormatError("truncated block")
        return rest[:-4]

    def _read_section_header(self, header: bytes) -> None:
        magic = self._stream.read(4)
        if len(magic) < 4:
            raise CaptureFormatError("truncated section header")
        if struct.unpack("<I", magic)[0] == BYTE_ORDER_MAGIC:
            self._endian = "<"
        elif struct.unpack(">I", magic)[0] == BYTE_ORDER_MAGIC:
            self._endian = ">"
        else:
            raise CaptureFormatError(f"bad byte-order magic {magic.hex()}")

        (total_len,) = struct.unpack(self._endian + "I", header[4:])
        if total_len < 28 or total_len % 4 != 0:
            raise CaptureFormatError(f"invalid section header length {total_len}")
        rest = self._stream.read(total_len - 12)
        if len(rest) < total_len - 12:
            raise CaptureFormatError("truncated section header")

        # Interface ids are scoped to their section
        self._interfaces = []

    def _parse_interface(self, body: bytes) -> _Interface:
        if len(body) < 8:
            raise CaptureFormatError("truncated interface description")
        assert self._endian is not None
        link_type, _, snap_len = struct.unpack_from(self._endian + "HHI", body, 0)
        interface = _Interface(link_type=link_type, snap_len=snap_len)

        offset = 8
        while offset + 4 <= len(body):
            code, length = struct.unpack_from(self._endian + "HH", body, offset)
            offset += 4
            if code == OPTION_END:
                break
            value = body[offset:offset + length]
            offset += (length + 3) & ~3
            if code == OPTION_IF_TSRESOL and length >= 1:
                resolution = value[0]
                if resolution & 0x80:
                    interface.ts_units = 2 ** (resolution & 0x7F)
                else:
                    interface.ts_units = 10 ** resolution
            elif code == OPTION_IF_TSOFFSET and length >= 8:
                (interface.ts_offset_s,) = struct.unpack(self._endian + "q", value[:8])

        _LOGGER.debug(
            "Interface %d: link type %d, %d ticks/s",
            len(self._interfaces), link_type, interface.ts_units,
        )
        return interface

    def _interface(self, interface_id: int) -> _Interface:
        if interface_id >= len(self._interfaces):
            raise CaptureFormatError(f"packet references unknown interface {interface_id}")
        return self._interfaces[interface_id]

    def _parse_enhanced_packet(self, body: bytes) -> Frame | None:
        if len(body) < 20:
            raise CaptureFormatError("truncated enhanced packet block")
        assert self._endian is not None
        interface_id, ts_high, ts_low, cap_len, _ = struct.unpack_from(
            self._endian + "IIIII", body, 0,
        )
        packet = body[20:20 + cap_len]
        if len(packet) < cap_len:
            raise CaptureFormatError("enhanced packet shorter than its captured length")
        interface = self._interface(interface_id)
        timestamp_ns = interface.to_ns((ts_high << 32) | ts_low)
        return self._to_frame(interface, packet, timestamp_ns)

    def _parse_simple_packet(self, body: bytes) -> Frame | None:
        if len(body) < 4:
            raise CaptureFormatError("truncated simple packet block")
        assert self._endian is not None
        (orig_len,) = struct.unpack_from(self._endian + "I", body, 0)
        interface = self._interface(0)
        cap_len = min(orig_len, interface.snap_len) if interface.snap_len else orig_len
        return self._to_frame(interface, body[4:4 + cap_len], 0)

    def _to_frame(self, interface: _Interface, packet: bytes, timestamp_ns: int) -> Frame | None:
        self.packet_count += 1

        if interface.link_type == LINKTYPE_CAN_SOCKETCAN:
            frame = parse_can_payload(packet, ">", timestamp_ns)
        elif interface.link_type == LINKTYPE_LINUX_SLL:
            frame = parse_can_payload(packet[_SLL_HEADER_LEN:], "<", timestamp_ns)
        elif interface.link_type == LINKTYPE_LINUX_SLL2:
            frame = parse_can_payload(packet[_SLL2_HEADER_LEN:], "<", timestamp_ns)
        else:
            frame = None

        if frame is None:
            self.skipped_count += 1
            return None
        self.frame_count += 1
        return frame


def iter_pcapng(path: str | Path) -> Iterator[Frame]:
    """Lazily iterate CAN frames from a pcapng file.

    Raises:
        FileNotFoundError: If the file does not exist
        CaptureFormatError: On a malformed capture
    """
    resolved = Path(path)
    if not resolved.exists():
        raise FileNotFoundError(f"capture file not found: {path}")

    with open(resolved, "rb") as f:
        reader = PcapngReader(f)
        yield from reader
        _LOGGER.debug(
            "Read %d packets from %s, %d CAN frames, %d skipped",
            reader.packet_count, resolved.name, reader.frame_count, reader.skipped_count,
        )


def open_frame_source(path: str | Path) -> Iterator[Frame]:
    """Frames of a capture file, picking the reader by extension.

    ``.pcapng`` goes to the pcapng reader, everything else to python-can.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the extension is not supported
    """
    resolved = Path(path)
    if effective_extension(resolved) == PCAPNG_EXTENSION:
        if resolved.suffix == ".gz":
            raise ValueError("compressed pcapng captures are not supported")
        if not resolved.exists():
            raise FileNotFoundError(f"capture file not found: {path}")
        return iter_pcapng(resolved)

    # Checked here so a bad path fails before the output is created
    validate_path(resolved)
    return iter_can_log(resolved)
