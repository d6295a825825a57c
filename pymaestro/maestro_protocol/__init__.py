"""Maestro serial protocol implementation

This package implements the three Maestro serial protocol variants, with
separate modules for host-to-controller commands and controller-to-host
replies. The value codec shared by both directions lives here.
"""

from enum import Enum
from typing import Sequence, Tuple

from ..maestro_exceptions import InvalidArgumentError

POLOLU_PROTO_ON = 0xAA     # Pololu frame marker, followed by device number
MINISSC_PROTO_ON = 0xFF    # MiniSSC frame marker, followed by channel

MAX_7BIT = 0x7F
MAX_8BIT = 0xFF
MAX_14BIT = 0x3FFF


class Protocol(Enum):
    """Serial protocol variants understood by the controller"""
    POLOLU = "pololu"      # Addressed: [0xAA, device, opcode & 0x7F, ...]
    COMPACT = "compact"    # Unaddressed: [opcode, ...]
    MINISSC = "minissc"    # Legacy: [0xFF, channel, target8]


def check_range(name: str, value: int, low: int, high: int) -> int:
    """Validate that an integer field lies within [low, high]

    Raises:
        InvalidArgumentError: If value is outside the range
    """
    if not low <= value <= high:
        raise InvalidArgumentError(f"{name} must be {low}-{high}, got {value}")
    return value


def split14(value: int) -> Tuple[int, int]:
    """Split a 14-bit value into (low, high) 7-bit data bytes"""
    check_range("Value", value, 0, MAX_14BIT)
    return value & 0x7F, (value >> 7) & 0x7F


def join_le(data: Sequence[int]) -> int:
    """Reassemble a little-endian reply of 1 or 2 bytes"""
    return sum(b << (8 * i) for i, b in enumerate(data))


__all__ = [
    'Protocol', 'POLOLU_PROTO_ON', 'MINISSC_PROTO_ON', 'MAX_7BIT', 'MAX_8BIT',
    'MAX_14BIT', 'check_range', 'split14', 'join_le', 'commands', 'messages',
]
