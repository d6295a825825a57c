from dataclasses import dataclass
from enum import IntEnum
from typing import List, Sequence
import logging

from . import join_le
from ..maestro_exceptions import ProtocolError

logger = logging.getLogger(__name__)

ERROR_REGISTER_MASK = 0xFFFF


class ErrorCode(IntEnum):
    """Error register bits reported by the get errors query"""
    SIGNAL_ERROR = 0x0001           # Serial signal error
    OVERRUN_ERROR = 0x0002          # Serial overrun error
    RX_BUFFER_FULL_ERROR = 0x0004   # Serial receive buffer full
    CRC_ERROR = 0x0008              # Serial CRC error
    PROTOCOL_ERROR = 0x0010         # Serial protocol error
    TIMEOUT_ERROR = 0x0020          # Serial timeout error
    STACK_ERROR = 0x0040            # Script stack error
    CALL_STACK_ERROR = 0x0080       # Script call stack error
    PROGRAM_COUNTER_ERROR = 0x0100  # Script program counter error


@dataclass(frozen=True)
class ErrorInfo:
    """Decoded error register"""
    error_code: int            # Raw 16-bit register value
    flags: List[ErrorCode]     # Set flags in ascending bit order
    unknown_bits: int          # Set bits with no known meaning
    description: str           # Human-readable error description


def decode_errors(value: int) -> List[ErrorCode]:
    """Return the error flags set in a register value, lowest bit first"""
    return [code for code in sorted(ErrorCode) if value & code]


def describe_errors(value: int) -> ErrorInfo:
    """Decode an error register value into flags and a description"""
    value &= ERROR_REGISTER_MASK
    flags = decode_errors(value)

    known = 0
    for code in flags:
        known |= code
    unknown_bits = value & ~known

    descriptions = [code.name.lower().replace('_', ' ') for code in flags]
    if unknown_bits:
        logger.warning(f"Unknown error register bits: 0x{unknown_bits:04X}")
        descriptions.append(f"unknown bits 0x{unknown_bits:04X}")

    description = '; '.join(descriptions) if descriptions else "no errors"

    return ErrorInfo(
        error_code=value,
        flags=flags,
        unknown_bits=unknown_bits,
        description=description,
    )


def decode_reply(data: Sequence[int], expected_size: int) -> int:
    """Decode a fixed-size little-endian reply

    Args:
        data: Raw reply bytes
        expected_size: Reply length for the query that produced it

    Returns:
        Unsigned integer value of the reply

    Raises:
        ProtocolError: If fewer than expected_size bytes were received
    """
    if len(data) < expected_size:
        raise ProtocolError(
            f"Incorrect reply size: expected {expected_size} bytes, got {len(data)}"
        )
    return join_le(data[:expected_size])
