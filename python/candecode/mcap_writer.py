"""MCAP output for decoded CAN signals

Writes one channel per (CAN identifier, signal name) pair, registered lazily
on first use, all sharing one JSON schema. The container is chunked and
compressed; ``close()`` writes the summary section and footer.

Example:
    with SignalWriter("drive.mcap") as writer:
        for frame in frames:
            for signal in decoder.decode(frame):
                writer.append(signal)
"""

from __future__ import annotations

import base64
import json
import logging
import math
import struct
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import IO, override

from mcap.writer import CompressionType, Writer

from .decoder import DecodedSignal
from .errors import ChannelWriteError
from .protocols import Compression, RawKind, SignalRecord
from .registry import DEFAULT_TOPIC_PREFIX, ChannelHandle, ChannelRegistry

_LOGGER = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE: int = 1024 * 1024
DEFAULT_LIBRARY: str = "candecode"

SCHEMA_NAME: str = "candecode.DecodedSignal"
SCHEMA_ENCODING: str = "jsonschema"
MESSAGE_ENCODING: str = "json"

SIGNAL_SCHEMA: dict[str, object] = {
    "title": SCHEMA_NAME,
    "type": "object",
    "properties": {
        "can_id": {"type": "integer"},
        "message": {"type": "string"},
        "signal": {"type": "string"},
        "timestamp_ns": {"type": "integer"},
        "raw_bool": {"type": "boolean"},
        "raw_int": {"type": "integer"},
        "raw_uint": {"type": "integer", "minimum": 0},
        "raw_float": {"type": "number"},
        "raw_float_special": {"type": "string", "enum": ["nan", "inf", "-inf"]},
        "raw_bytes": {"type": "string", "contentEncoding": "base64"},
        "physical": {"type": "number"},
        "description": {"type": "string"},
        "unit": {"type": "string"},
    },
    "required": ["can_id", "message", "signal", "timestamp_ns"],
}

_COMPRESSION_TYPES: dict[Compression, CompressionType] = {
    Compression.ZSTD: CompressionType.ZSTD,
    Compression.LZ4: CompressionType.LZ4,
    Compression.NONE: CompressionType.NONE,
}


@dataclass(frozen=True)
class WriterOptions:
    """Output container settings"""
    topic_prefix: str = DEFAULT_TOPIC_PREFIX
    chunk_size: int = DEFAULT_CHUNK_SIZE
    compression: Compression = Compression.ZSTD
    profile: str = ""
    library: str = DEFAULT_LIBRARY


def _special_float_name(value: float) -> str:
    if math.isnan(value):
        return "nan"
    return "inf" if value > 0 else "-inf"


def encode_record(decoded: DecodedSignal) -> bytes:
    """Serialize a decoded signal as the JSON record of its channel."""
    record: SignalRecord = {
        "can_id": decoded.message.frame_id,
        "message": decoded.message.name,
        "signal": decoded.name,
        "timestamp_ns": decoded.timestamp_ns,
    }

    raw = decoded.raw
    match raw.kind:
        case RawKind.BOOL:
            record["raw_bool"] = bool(raw.bool_value)
        case RawKind.INT:
            record["raw_int"] = int(raw.int_value or 0)
        case RawKind.UINT:
            record["raw_uint"] = int(raw.uint_value or 0)
        case RawKind.FLOAT:
            value = float(raw.float_value or 0.0)
            if math.isfinite(value):
                record["raw_float"] = value
            else:
                record["raw_float_special"] = _special_float_name(value)
        case RawKind.BYTES:
            record["raw_bytes"] = base64.b64encode(raw.bytes_value or b"").decode("ascii")

    if decoded.physical is not None and math.isfinite(decoded.physical):
        record["physical"] = decoded.physical
    if decoded.description is not None:
        record["description"] = decoded.description
    if decoded.unit:
        record["unit"] = decoded.unit

    return json.dumps(record, separators=(",", ":"), allow_nan=False).encode("utf-8")


class SignalWriter:
    """MCAP container writer with lazily registered signal channels.

    ``append`` and ``close`` serialize on one lock, so several producer
    threads may share a writer. The channel registry is owned by the writer
    and is always entered with the writer lock held.

    Args:
        output: Path to create, or a writable binary stream
        options: Container settings (defaults: zstd, 1 MiB chunks, "can")

    Raises:
        ChannelWriteError: If the output cannot be opened or the header
            cannot be written
    """

    def __init__(self, output: str | Path | IO[bytes], options: WriterOptions | None = None):
        self.options: WriterOptions = options or WriterOptions()
        self._lock: threading.Lock = threading.Lock()
        self._closed: bool = False
        self._owns_stream: bool = False
        self._messages_written: int = 0
        self._sequences: dict[int, int] = {}
        self._mcap_channel_ids: dict[int, int] = {}

        if isinstance(output, (str, Path)):
            path = Path(output)
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                self._stream: IO[bytes] = open(path, "wb")
            except OSError as e:
                raise ChannelWriteError(f"cannot open output {path}: {e}") from e
            self._owns_stream = True
        else:
            self._stream = output

        try:
            self._mcap: Writer = Writer(
                self._stream,
                chunk_size=self.options.chunk_size,
                compression=_COMPRESSION_TYPES[self.options.compression],
            )
            self._mcap.start(profile=self.options.profile, library=self.options.library)
            schema_id = self._mcap.register_schema(
                name=SCHEMA_NAME,
                encoding=SCHEMA_ENCODING,
                data=json.dumps(SIGNAL_SCHEMA).encode("utf-8"),
            )
        except (OSError, ValueError, struct.error) as e:
            self._release_stream()
            raise ChannelWriteError(f"cannot start MCAP container: {e}") from e

        self.registry: ChannelRegistry = ChannelRegistry(
            emit=self._register_channel,
            schema_id=schema_id,
            topic_prefix=self.options.topic_prefix,
        )

    def _register_channel(self, handle: ChannelHandle) -> None:
        """Registry callback: write the channel record (writer lock held)."""
        try:
            mcap_id = self._mcap.register_channel(
                topic=handle.topic,
                message_encoding=MESSAGE_ENCODING,
                schema_id=handle.schema_id,
                metadata=dict(handle.metadata),
            )
        except (OSError, ValueError, struct.error) as e:
            raise ChannelWriteError(f"cannot register channel {handle.topic}: {e}") from e
        self._mcap_channel_ids[handle.id] = mcap_id

    def _resolve(self, decoded: DecodedSignal) -> ChannelHandle:
        return self.registry.resolve(
            can_id=decoded.message.frame_id,
            signal_name=decoded.name,
            message_name=decoded.message.name,
            unit=decoded.unit,
            is_extended=decoded.message.is_extended,
        )

    def _ensure_open(self) -> None:
        if self._closed:
            raise ChannelWriteError("writer is closed")

    def append(self, decoded: DecodedSignal) -> ChannelHandle:
        """Write one decoded signal to its channel.

        Returns:
            The channel the record was written to

        Raises:
            ChannelWriteError: If the writer is closed or the write fails
        """
        data = encode_record(decoded)
        with self._lock:
            self._ensure_open()
            handle = self._resolve(decoded)
            sequence = self._sequences.get(handle.id, 0)
            try:
                self._mcap.add_message(
                    channel_id=self._mcap_channel_ids[handle.id],
                    log_time=decoded.timestamp_ns,
                    data=data,
                    publish_time=decoded.timestamp_ns,
                    sequence=sequence,
                )
            except (OSError, ValueError, struct.error) as e:
                raise ChannelWriteError(
                    f"cannot write {handle.topic} at {decoded.timestamp_ns}: {e}"
                ) from e
            self._sequences[handle.id] = sequence + 1
            self._messages_written += 1
        return handle

    def close(self) -> None:
        """Finish the open chunk, write the summary and footer.

        Calling close on a closed writer does nothing.

        Raises:
            ChannelWriteError: If finalizing the container fails
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                self._mcap.finish()
            except (OSError, ValueError, struct.error) as e:
                raise ChannelWriteError(f"cannot finish MCAP container: {e}") from e
            finally:
                self._release_stream()
        _LOGGER.debug(
            "Closed MCAP container: %d channels, %d messages",
            len(self.registry), self._messages_written,
        )

    def _release_stream(self) -> None:
        if self._owns_stream:
            self._stream.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def messages_written(self) -> int:
        return self._messages_written

    @property
    def channel_count(self) -> int:
        return len(self.registry)

    def __enter__(self):
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object
    ) -> None:
        self.close()

    @override
    def __repr__(self) -> str:
        return (
            f"SignalWriter("
            f"channels={self.channel_count}, "
            f"messages={self._messages_written}, "
            f"closed={self._closed})"
        )
