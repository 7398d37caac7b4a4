"""Unit tests for the YAML dictionary loader

Tests cover:
- Loading from file paths, path strings and inline YAML
- Signal fields: byte order aliases, defaults, value tables, multiplexing
- Validation errors: missing/mistyped fields, layout violations
"""

from __future__ import annotations

from pathlib import Path

import pytest

from candecode.descriptors import Database, ValueDescription
from candecode.errors import DescriptorInvalidError
from candecode.protocols import ByteOrder
from candecode.yaml_loader import load_dictionary

from conftest import SAMPLE_YAML


_MINIMAL = """\
messages:
  - id: 0x123
    name: Minimal
    length: 2
    signals:
      - name: Value
        start: 0
        length: 16
        byte_order: little_endian
"""


# ============================================================================
# Sources
# ============================================================================

class TestSources:
    """File path, path string and inline YAML."""

    def test_load_from_path(self, yaml_file: Path, sample_database: Database) -> None:
        assert load_dictionary(yaml_file).messages == sample_database.messages

    def test_load_from_path_string(self, yaml_file: Path) -> None:
        assert len(load_dictionary(str(yaml_file))) == 3

    def test_load_inline(self) -> None:
        database = load_dictionary(SAMPLE_YAML)
        assert database.version == "1.0"
        assert database.get_message(0x300) is not None

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="YAML file not found"):
            load_dictionary(tmp_path / "missing.yaml")

    def test_missing_file_string(self) -> None:
        with pytest.raises(FileNotFoundError):
            load_dictionary("/nonexistent/vehicle.yaml")


# ============================================================================
# Fields
# ============================================================================

class TestFields:
    """Signal and message field parsing."""

    def test_defaults(self) -> None:
        msg = load_dictionary(_MINIMAL).get_message(0x123)
        assert msg is not None
        assert msg.is_extended is False
        assert msg.senders == ()
        sig = msg.signals[0]
        assert sig.scale == 1.0
        assert sig.offset == 0.0
        assert sig.minimum == 0.0
        assert sig.maximum == 0.0
        assert sig.unit == ""
        assert sig.is_signed is False
        assert sig.multiplexer_value is None

    @pytest.mark.parametrize("text,expected", [
        ("little_endian", ByteOrder.LITTLE_ENDIAN),
        ("intel", ByteOrder.LITTLE_ENDIAN),
        ("big_endian", ByteOrder.BIG_ENDIAN),
        ("Motorola", ByteOrder.BIG_ENDIAN),
    ])
    def test_byte_order_aliases(self, text: str, expected: ByteOrder) -> None:
        yaml_text = _MINIMAL.replace("byte_order: little_endian", f"byte_order: {text}")
        if expected is ByteOrder.BIG_ENDIAN:
            yaml_text = yaml_text.replace("start: 0", "start: 7")
        msg = load_dictionary(yaml_text).get_message(0x123)
        assert msg is not None
        assert msg.signals[0].byte_order is expected

    def test_value_table(self, yaml_file: Path) -> None:
        msg = load_dictionary(yaml_file).get_message(0x100)
        assert msg is not None
        gear = msg.signal("Gear")
        assert gear is not None
        assert gear.value_descriptions[0] == ValueDescription(0, "Park")
        assert gear.describe(2) == "Neutral"

    def test_multiplexing(self, yaml_file: Path) -> None:
        msg = load_dictionary(yaml_file).get_message(0x300)
        assert msg is not None
        assert msg.multiplexer is not None
        assert msg.multiplexer.name == "Mode"
        current = msg.signal("Current")
        assert current is not None
        assert current.multiplexer_value == 1

    def test_empty_senders_and_receivers(self) -> None:
        yaml_text = _MINIMAL.replace("    length: 2\n", "    length: 2\n    senders:\n")
        yaml_text += "        receivers:\n"
        msg = load_dictionary(yaml_text).get_message(0x123)
        assert msg is not None
        assert msg.senders == ()
        assert msg.signals[0].receivers == ()

    def test_extended_message(self) -> None:
        yaml_text = _MINIMAL.replace("id: 0x123", "id: 0x18FEF100\n    extended: true")
        msg = load_dictionary(yaml_text).get_message(0x18FEF100, is_extended=True)
        assert msg is not None
        assert msg.is_extended


# ============================================================================
# Errors
# ============================================================================

class TestErrors:
    """Invalid dictionaries are rejected with a message naming the field."""

    def test_no_messages_key(self) -> None:
        with pytest.raises(ValueError, match="'messages' list"):
            load_dictionary("version: 1\nother: []\n")

    def test_missing_name(self) -> None:
        with pytest.raises(ValueError, match="'name'"):
            load_dictionary(_MINIMAL.replace("    name: Minimal\n", ""))

    def test_mistyped_length(self) -> None:
        with pytest.raises(ValueError, match="Message 'Minimal'.*'length'"):
            load_dictionary(_MINIMAL.replace("length: 2", "length: two"))

    def test_bad_byte_order(self) -> None:
        with pytest.raises(ValueError, match="unknown byte order"):
            load_dictionary(_MINIMAL.replace("little_endian", "middle_endian"))

    def test_bad_scale(self) -> None:
        yaml_text = _MINIMAL + "        scale: fast\n"
        with pytest.raises(ValueError, match="'scale'"):
            load_dictionary(yaml_text)

    def test_bool_is_not_an_integer(self) -> None:
        with pytest.raises(ValueError, match="'start'"):
            load_dictionary(_MINIMAL.replace("start: 0", "start: true"))

    def test_signal_exceeds_message(self) -> None:
        with pytest.raises(DescriptorInvalidError, match="exceed"):
            load_dictionary(_MINIMAL.replace("length: 16", "length: 17"))

    def test_value_table_key_must_be_integer(self) -> None:
        yaml_text = _MINIMAL + "        values: {on: 1}\n"
        with pytest.raises(ValueError, match="not an integer"):
            load_dictionary(yaml_text)
