"""Exception hierarchy for candecode

Per-frame decode errors (UnknownMessageError, ShapeMismatchError) are
expected in real captures and are skipped by the conversion loop.
Dictionary and write errors propagate to the caller.
"""


class CandecodeError(Exception):
    """Base exception for all candecode errors"""


class DecodeError(CandecodeError):
    """A single frame could not be decoded"""

    def __init__(self, can_id: int, message: str):
        super().__init__(message)
        self.can_id: int = can_id


class UnknownMessageError(DecodeError):
    """Frame identifier has no message descriptor"""

    def __init__(self, can_id: int):
        super().__init__(can_id, f"unknown message id: 0x{can_id:X}")


class ShapeMismatchError(DecodeError):
    """Frame length, extension or remote flag disagree with the descriptor"""

    def __init__(self, can_id: int, reason: str):
        super().__init__(can_id, f"frame shape mismatch for 0x{can_id:X}: {reason}")
        self.reason: str = reason


class DescriptorInvalidError(CandecodeError, ValueError):
    """Message or signal descriptor violates a layout invariant"""


class ChannelWriteError(CandecodeError):
    """Writing to the output container failed"""


class CaptureFormatError(CandecodeError):
    """Capture file is truncated or malformed"""


class RegistryRaceViolation(AssertionError):
    """Two channel handles were allocated for one key"""
