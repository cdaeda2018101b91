"""
Packed encoding of recurring expense intervals.

An interval is stored as a single 32-bit integer: the top 3 bits hold the
interval type and the low 29 bits hold the magnitude.
"""

from enum import IntEnum

from .errors import InvalidInterval

__all__ = ["IntervalType", "Interval", "encode_interval", "decode_interval"]

TYPE_SHIFT = 29
MAGNITUDE_MASK = 0x1FFFFFFF
MAX_ENCODED = 1 << 32


class IntervalType(IntEnum):
    """Unit of a recurring interval."""

    DAY = 0
    WEEK = 1
    MONTH = 2
    YEAR = 3


class Interval:
    """A decoded recurring interval."""

    def __init__(self, interval_type: IntervalType, magnitude: int) -> None:
        self.type = interval_type
        self.magnitude = magnitude

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Interval):
            return NotImplemented
        return (self.type, self.magnitude) == (other.type, other.magnitude)

    def __repr__(self) -> str:
        return f"Interval({self.type.name}, {self.magnitude})"

    def encode(self) -> int:
        """Pack this interval into its integer form."""
        return encode_interval(self.type, self.magnitude)


def encode_interval(interval_type: int, magnitude: int) -> int:
    """Pack an interval type and magnitude into one integer."""
    try:
        kind = IntervalType(interval_type)
    except ValueError as e:
        raise InvalidInterval(f"Unknown interval type: {interval_type!r}") from e

    if isinstance(magnitude, bool) or not isinstance(magnitude, int):
        raise InvalidInterval(f"Interval magnitude must be an integer: {magnitude!r}")
    if magnitude < 0 or magnitude > MAGNITUDE_MASK:
        raise InvalidInterval(
            f"Interval magnitude {magnitude} does not fit in {TYPE_SHIFT} bits."
        )

    return (int(kind) << TYPE_SHIFT) | magnitude


def decode_interval(value: object) -> Interval:
    """Unpack an integer produced by encode_interval."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInterval(f"Recurring interval must be an integer: {value!r}")
    if value < 0 or value >= MAX_ENCODED:
        raise InvalidInterval(f"Recurring interval out of range: {value}")

    raw_type = value >> TYPE_SHIFT
    try:
        kind = IntervalType(raw_type)
    except ValueError as e:
        raise InvalidInterval(f"Unknown interval type bits: {raw_type}") from e

    return Interval(kind, value & MAGNITUDE_MASK)
