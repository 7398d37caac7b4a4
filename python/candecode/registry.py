"""Channel registry for the output container

Maps (CAN identifier, signal name) to a channel handle. The first resolution
of a key allocates the next handle id, builds the channel's topic and
metadata, and hands the new handle to an ``emit`` callback (which writes the
channel record). Later resolutions return the same handle without emitting.

Lookup, allocation and emission form one critical section, so concurrent
first resolutions of one key emit exactly once.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import override

from .errors import RegistryRaceViolation
from .protocols import ChannelMetadata

_LOGGER = logging.getLogger(__name__)

DEFAULT_TOPIC_PREFIX: str = "can"

ChannelKey = tuple[str, str]
"""(hex CAN identifier, signal name)"""


def format_can_id(can_id: int) -> str:
    """Stable hex form of a CAN identifier: ``0x`` prefix, uppercase digits.

    Examples:
        >>> format_can_id(0x1ab)
        '0x1AB'
    """
    return f"0x{can_id:X}"


def build_topic(prefix: str, message_name: str, signal_name: str) -> str:
    """Topic string ``/<prefix>/<message>/<signal>``."""
    stripped = prefix.strip("/")
    if stripped:
        return f"/{stripped}/{message_name}/{signal_name}"
    return f"/{message_name}/{signal_name}"


def build_metadata(
    can_id: int,
    message_name: str,
    signal_name: str,
    unit: str,
    is_extended: bool,
) -> ChannelMetadata:
    """Channel metadata map; ``unit`` is left out when empty."""
    metadata: ChannelMetadata = {
        "can_id": format_can_id(can_id),
        "message": message_name,
        "signal": signal_name,
        "is_extended": "true" if is_extended else "false",
    }
    if unit:
        metadata["unit"] = unit
    return metadata


@dataclass(frozen=True, slots=True)
class ChannelHandle:
    """Immutable handle of one registered output channel"""
    id: int
    topic: str
    schema_id: int
    metadata: MappingProxyType[str, str] = field(compare=False)

    @property
    def key(self) -> ChannelKey:
        return (self.metadata["can_id"], self.metadata["signal"])


EmitFn = Callable[[ChannelHandle], None]


class ChannelRegistry:
    """Idempotent, thread-safe allocation of output channels.

    Args:
        emit: Called once per new channel, inside the critical section,
            before the handle is published. If it raises, the channel is not
            registered and its id is not consumed.
        schema_id: Schema shared by every channel
        topic_prefix: First topic segment (default "can")
    """

    def __init__(
        self,
        emit: EmitFn,
        schema_id: int,
        topic_prefix: str = DEFAULT_TOPIC_PREFIX,
    ):
        self._emit: EmitFn = emit
        self.schema_id: int = schema_id
        self.topic_prefix: str = topic_prefix
        self._lock: threading.Lock = threading.Lock()
        self._handles: dict[ChannelKey, ChannelHandle] = {}
        self._next_id: int = 1
        self._last_id: int = 0

    def resolve(
        self,
        can_id: int,
        signal_name: str,
        message_name: str,
        unit: str = "",
        is_extended: bool = False,
    ) -> ChannelHandle:
        """Return the channel for a signal stream, creating it on first use."""
        key: ChannelKey = (format_can_id(can_id), signal_name)

        with self._lock:
            handle = self._handles.get(key)
            if handle is not None:
                return handle

            metadata = build_metadata(
                can_id, message_name, signal_name, unit, is_extended,
            )
            handle = ChannelHandle(
                id=self._next_id,
                topic=build_topic(self.topic_prefix, message_name, signal_name),
                schema_id=self.schema_id,
                metadata=MappingProxyType(dict(metadata)),
            )
            self._emit(handle)
            self._insert(key, handle)
            self._next_id += 1

        _LOGGER.debug("Registered channel %d %s (%s)", handle.id, handle.topic, key[0])
        return handle

    def _insert(self, key: ChannelKey, handle: ChannelHandle) -> None:
        if key in self._handles:
            raise RegistryRaceViolation(f"second handle allocated for {key}")
        if handle.id <= self._last_id:
            raise RegistryRaceViolation(
                f"channel id {handle.id} not above previous id {self._last_id}"
            )
        self._handles[key] = handle
        self._last_id = handle.id

    def get(self, can_id: int, signal_name: str) -> ChannelHandle | None:
        with self._lock:
            return self._handles.get((format_can_id(can_id), signal_name))

    def handles(self) -> list[ChannelHandle]:
        """Registered handles in allocation order."""
        with self._lock:
            return sorted(self._handles.values(), key=lambda h: h.id)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def __iter__(self) -> Iterator[ChannelHandle]:
        return iter(self.handles())

    @override
    def __repr__(self) -> str:
        return f"ChannelRegistry(prefix={self.topic_prefix!r}, channels={len(self)})"
