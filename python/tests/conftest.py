"""Shared test fixtures for all test modules

Provides the sample dictionary (as .dbc text, YAML text and descriptors)
and frame helpers used across test files.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from candecode.decoder import Decoder
from candecode.descriptors import (
    Database,
    MessageDescriptor,
    SignalDescriptor,
    ValueDescription,
)
from candecode.protocols import ByteOrder


DBC_HEADER = (
    'VERSION ""\n\n'
    + "NS_ :\n\n"
    + "BS_:\n\n"
    + "BU_: ECU1 ECU2\n\n"
)

DBC_ENGINE_MSG = (
    "BO_ 256 EngineStatus: 8 ECU1\n"
    + ' SG_ EngineSpeed : 0|16@1+ (0.01,0) [0|655.35] "km/h" ECU2\n'
    + ' SG_ EngineTemp : 16|8@1- (0.1,40) [0|0] "degC" ECU2\n'
    + ' SG_ Gear : 24|4@1+ (1,0) [0|0] "" ECU2\n'
)

DBC_BRAKE_MSG = (
    "BO_ 512 BrakeStatus: 8 ECU2\n"
    + ' SG_ BrakePressure : 7|16@0+ (0.1,0) [0|6553.5] "bar" ECU1\n'
)

DBC_MUX_MSG = (
    "BO_ 768 Diagnostics: 8 ECU1\n"
    + ' SG_ Mode M : 0|8@1+ (1,0) [0|0] "" ECU2\n'
    + ' SG_ Voltage m0 : 8|16@1+ (0.001,0) [0|65.535] "V" ECU2\n'
    + ' SG_ Current m1 : 8|16@1- (0.01,0) [-327.68|327.67] "A" ECU2\n'
)

DBC_VALUE_TABLES = '\nVAL_ 256 Gear 0 "Park" 1 "Reverse" 2 "Neutral" 3 "Drive" ;\n'


def write_dbc(path: Path, *messages: str, extra: str = "") -> Path:
    """Write a minimal .dbc file from message blocks."""
    path.write_text(DBC_HEADER + "\n".join(messages) + extra)
    return path


SAMPLE_YAML = """\
version: "1.0"
messages:
  - id: 0x100
    name: EngineStatus
    length: 8
    senders: [ECU1]
    signals:
      - name: EngineSpeed
        start: 0
        length: 16
        byte_order: little_endian
        scale: 0.01
        min: 0
        max: 655.35
        unit: km/h
        receivers: [ECU2]
      - name: EngineTemp
        start: 16
        length: 8
        byte_order: intel
        signed: true
        scale: 0.1
        offset: 40
        unit: degC
        receivers: [ECU2]
      - name: Gear
        start: 24
        length: 4
        byte_order: little_endian
        values: {0: Park, 1: Reverse, 2: Neutral, 3: Drive}
        receivers: [ECU2]
  - id: 0x200
    name: BrakeStatus
    length: 8
    senders: [ECU2]
    signals:
      - name: BrakePressure
        start: 7
        length: 16
        byte_order: motorola
        scale: 0.1
        min: 0
        max: 6553.5
        unit: bar
        receivers: [ECU1]
  - id: 0x300
    name: Diagnostics
    length: 8
    senders: [ECU1]
    signals:
      - name: Mode
        start: 0
        length: 8
        byte_order: little_endian
        multiplexer: true
        receivers: [ECU2]
      - name: Voltage
        start: 8
        length: 16
        byte_order: little_endian
        scale: 0.001
        max: 65.535
        unit: V
        multiplex_value: 0
        receivers: [ECU2]
      - name: Current
        start: 8
        length: 16
        byte_order: little_endian
        signed: true
        scale: 0.01
        min: -327.68
        max: 327.67
        unit: A
        multiplex_value: 1
        receivers: [ECU2]
"""


def build_sample_database() -> Database:
    """Descriptors matching the sample .dbc and YAML dictionaries."""
    engine = MessageDescriptor(
        frame_id=0x100,
        name="EngineStatus",
        length=8,
        senders=("ECU1",),
        signals=(
            SignalDescriptor(
                name="EngineSpeed", start=0, length=16,
                scale=0.01, maximum=655.35, unit="km/h", receivers=("ECU2",),
            ),
            SignalDescriptor(
                name="EngineTemp", start=16, length=8, is_signed=True,
                scale=0.1, offset=40.0, unit="degC", receivers=("ECU2",),
            ),
            SignalDescriptor(
                name="Gear", start=24, length=4, receivers=("ECU2",),
                value_descriptions=(
                    ValueDescription(0, "Park"),
                    ValueDescription(1, "Reverse"),
                    ValueDescription(2, "Neutral"),
                    ValueDescription(3, "Drive"),
                ),
            ),
        ),
    )
    brake = MessageDescriptor(
        frame_id=0x200,
        name="BrakeStatus",
        length=8,
        senders=("ECU2",),
        signals=(
            SignalDescriptor(
                name="BrakePressure", start=7, length=16,
                byte_order=ByteOrder.BIG_ENDIAN,
                scale=0.1, maximum=6553.5, unit="bar", receivers=("ECU1",),
            ),
        ),
    )
    diagnostics = MessageDescriptor(
        frame_id=0x300,
        name="Diagnostics",
        length=8,
        senders=("ECU1",),
        signals=(
            SignalDescriptor(
                name="Mode", start=0, length=8, is_multiplexer=True,
                receivers=("ECU2",),
            ),
            SignalDescriptor(
                name="Voltage", start=8, length=16, multiplexer_value=0,
                scale=0.001, maximum=65.535, unit="V", receivers=("ECU2",),
            ),
            SignalDescriptor(
                name="Current", start=8, length=16, is_signed=True,
                multiplexer_value=1, scale=0.01, minimum=-327.68,
                maximum=327.67, unit="A", receivers=("ECU2",),
            ),
        ),
    )
    return Database.from_messages([engine, brake, diagnostics], version="1.0")


@pytest.fixture
def sample_database() -> Database:
    return build_sample_database()


@pytest.fixture
def decoder(sample_database: Database) -> Decoder:
    return Decoder(sample_database)


@pytest.fixture
def dbc_file(tmp_path: Path) -> Path:
    """Sample dictionary as a .dbc file"""
    return write_dbc(
        tmp_path / "vehicle.dbc",
        DBC_ENGINE_MSG, DBC_BRAKE_MSG, DBC_MUX_MSG,
        extra=DBC_VALUE_TABLES,
    )


@pytest.fixture
def yaml_file(tmp_path: Path) -> Path:
    """Sample dictionary as a YAML file"""
    p = tmp_path / "vehicle.yaml"
    p.write_text(SAMPLE_YAML)
    return p
