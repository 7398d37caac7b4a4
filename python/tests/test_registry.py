"""Unit tests for the channel registry

Tests cover:
- Topic and metadata construction
- Idempotent resolution, id allocation order
- Concurrent first resolution emits exactly once
- Emit failures leave the registry unchanged
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from candecode.registry import (
    ChannelHandle,
    ChannelRegistry,
    build_metadata,
    build_topic,
    format_can_id,
)


class _Recorder:
    """emit callback that records every handle it is given"""

    def __init__(self) -> None:
        self.emitted: list[ChannelHandle] = []

    def __call__(self, handle: ChannelHandle) -> None:
        self.emitted.append(handle)


# ============================================================================
# Topic and metadata
# ============================================================================

class TestNaming:
    """Hex ids, topics and metadata maps."""

    def test_format_can_id(self) -> None:
        assert format_can_id(0x1AB) == "0x1AB"
        assert format_can_id(0) == "0x0"
        assert format_can_id(0x18FEF100) == "0x18FEF100"

    def test_build_topic(self) -> None:
        assert build_topic("can", "EngineStatus", "EngineSpeed") == "/can/EngineStatus/EngineSpeed"

    def test_build_topic_strips_slashes(self) -> None:
        assert build_topic("/vehicle/", "M", "S") == "/vehicle/M/S"

    def test_build_topic_empty_prefix(self) -> None:
        assert build_topic("", "M", "S") == "/M/S"

    def test_metadata_with_unit(self) -> None:
        assert build_metadata(0x100, "EngineStatus", "EngineSpeed", "km/h", False) == {
            "can_id": "0x100",
            "message": "EngineStatus",
            "signal": "EngineSpeed",
            "is_extended": "false",
            "unit": "km/h",
        }

    def test_metadata_without_unit(self) -> None:
        metadata = build_metadata(0x18FEF100, "Ext", "S", "", True)
        assert "unit" not in metadata
        assert metadata["is_extended"] == "true"


# ============================================================================
# Resolution
# ============================================================================

class TestResolve:
    """First resolution allocates and emits; later ones return the handle."""

    def test_first_resolution_emits(self) -> None:
        recorder = _Recorder()
        registry = ChannelRegistry(recorder, schema_id=1)
        handle = registry.resolve(0x100, "EngineSpeed", "EngineStatus", "km/h")
        assert handle.id == 1
        assert handle.topic == "/can/EngineStatus/EngineSpeed"
        assert handle.schema_id == 1
        assert handle.metadata["unit"] == "km/h"
        assert recorder.emitted == [handle]

    def test_repeat_resolution_is_idempotent(self) -> None:
        recorder = _Recorder()
        registry = ChannelRegistry(recorder, schema_id=1)
        first = registry.resolve(0x100, "EngineSpeed", "EngineStatus")
        second = registry.resolve(0x100, "EngineSpeed", "EngineStatus")
        assert first is second
        assert len(recorder.emitted) == 1

    def test_ids_increase_per_new_key(self) -> None:
        registry = ChannelRegistry(_Recorder(), schema_id=1)
        ids = [
            registry.resolve(0x100, "A", "M").id,
            registry.resolve(0x100, "B", "M").id,
            registry.resolve(0x200, "A", "N").id,
            registry.resolve(0x100, "A", "M").id,
        ]
        assert ids == [1, 2, 3, 1]

    def test_same_signal_name_on_two_ids(self) -> None:
        registry = ChannelRegistry(_Recorder(), schema_id=1)
        a = registry.resolve(0x100, "Status", "M1")
        b = registry.resolve(0x200, "Status", "M2")
        assert a.id != b.id

    def test_custom_prefix(self) -> None:
        registry = ChannelRegistry(_Recorder(), schema_id=1, topic_prefix="vehicle")
        assert registry.resolve(0x100, "S", "M").topic == "/vehicle/M/S"

    def test_handle_key(self) -> None:
        registry = ChannelRegistry(_Recorder(), schema_id=1)
        assert registry.resolve(0x1AB, "S", "M").key == ("0x1AB", "S")

    def test_handle_metadata_is_read_only(self) -> None:
        registry = ChannelRegistry(_Recorder(), schema_id=1)
        handle = registry.resolve(0x100, "S", "M")
        with pytest.raises(TypeError):
            handle.metadata["unit"] = "x"  # type: ignore[index]

    def test_lookup_helpers(self) -> None:
        registry = ChannelRegistry(_Recorder(), schema_id=1)
        handle = registry.resolve(0x100, "S", "M")
        assert registry.get(0x100, "S") is handle
        assert registry.get(0x100, "T") is None
        assert ("0x100", "S") in registry
        assert len(registry) == 1
        assert list(registry) == [handle]

    def test_emit_failure_registers_nothing(self) -> None:
        calls = 0

        def failing_emit(handle: ChannelHandle) -> None:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise OSError("disk full")

        registry = ChannelRegistry(failing_emit, schema_id=1)
        with pytest.raises(OSError):
            registry.resolve(0x100, "S", "M")
        assert len(registry) == 0

        handle = registry.resolve(0x100, "S", "M")
        assert handle.id == 1
        assert calls == 2


# ============================================================================
# Concurrency
# ============================================================================

class TestConcurrency:
    """Lookup, allocation and emission are one critical section."""

    def test_concurrent_first_resolution_emits_once(self) -> None:
        recorder = _Recorder()
        registry = ChannelRegistry(recorder, schema_id=1)
        n = 32
        barrier = threading.Barrier(n)

        def worker(_: int) -> ChannelHandle:
            barrier.wait()
            return registry.resolve(0x100, "EngineSpeed", "EngineStatus")

        with ThreadPoolExecutor(max_workers=n) as pool:
            handles = list(pool.map(worker, range(n)))

        assert len(recorder.emitted) == 1
        assert all(h is handles[0] for h in handles)

    def test_concurrent_distinct_keys_get_unique_ids(self) -> None:
        recorder = _Recorder()
        registry = ChannelRegistry(recorder, schema_id=1)

        def worker(i: int) -> ChannelHandle:
            return registry.resolve(0x100 + i % 8, f"S{(i // 8) % 4}", f"M{i % 8}")

        with ThreadPoolExecutor(max_workers=16) as pool:
            list(pool.map(worker, range(200)))

        ids = [h.id for h in recorder.emitted]
        assert len(recorder.emitted) == 32
        assert ids == list(range(1, 33))
        assert sorted(h.id for h in registry.handles()) == ids
