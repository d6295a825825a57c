"""Host to controller command generation and encoding"""

from enum import IntEnum
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

from . import (
    Protocol,
    POLOLU_PROTO_ON,
    MINISSC_PROTO_ON,
    MAX_7BIT,
    MAX_8BIT,
    check_range,
    split14,
)
from ..maestro_exceptions import InvalidArgumentError


class CommandType(IntEnum):
    """Compact protocol opcodes. The Pololu opcode is the same byte with bit 7 cleared."""
    SET_TARGET = 0x84
    SET_MULTIPLE_TARGETS = 0x9F
    SET_SPEED = 0x87
    SET_ACCELERATION = 0x89
    SET_PWM = 0x8A
    GET_POSITION = 0x90
    GET_MOVING_STATE = 0x93
    GET_ERRORS = 0xA1
    GO_HOME = 0xA2
    STOP_SCRIPT = 0xA4
    RESTART_SCRIPT = 0xA7
    RESTART_SCRIPT_WITH_PARAMETER = 0xA8
    GET_SCRIPT_STATUS = 0xAE

    @property
    def pololu_opcode(self) -> int:
        return self.value & 0x7F


@dataclass(frozen=True)
class SetTargetCommand:
    """Move one channel to a target"""
    channel: int  # Output channel (0-127; 0-254 for MiniSSC)
    target: int   # Quarter-microseconds (0-16383); 8-bit value for MiniSSC


@dataclass(frozen=True)
class SetMultipleTargetsCommand:
    """Set targets for a run of consecutive channels at once"""
    first_channel: int                       # Channel receiving targets[0]
    targets: Optional[Sequence[int]] = None  # Targets in quarter-microseconds
    count: Optional[int] = None              # Defaults to len(targets)


@dataclass(frozen=True)
class SetSpeedCommand:
    """Limit the speed of a channel"""
    channel: int
    speed: int  # 0.25us / 10ms units, 0 for unlimited


@dataclass(frozen=True)
class SetAccelerationCommand:
    """Limit the acceleration of a channel"""
    channel: int
    acceleration: int  # 0.25us / 10ms / 80ms units, 0 for unlimited


@dataclass(frozen=True)
class SetPwmCommand:
    """Configure the PWM output"""
    on_time: int  # 1/48us units
    period: int   # 1/48us units


@dataclass(frozen=True)
class GetPositionCommand:
    """Query the current position of a channel"""
    channel: int


@dataclass(frozen=True)
class GetMovingStateCommand:
    """Query whether any servo is still moving"""
    pass


@dataclass(frozen=True)
class GetErrorsCommand:
    """Read and clear the error register"""
    pass


@dataclass(frozen=True)
class GoHomeCommand:
    """Send all channels to their home positions"""
    pass


@dataclass(frozen=True)
class StopScriptCommand:
    """Stop the running script"""
    pass


@dataclass(frozen=True)
class RestartScriptCommand:
    """Restart the script at a subroutine, optionally pushing a parameter"""
    subroutine: int
    parameter: Optional[int] = None  # 0-16383, pushed on the script stack


@dataclass(frozen=True)
class GetScriptStatusCommand:
    """Query whether the script is stopped"""
    pass


Command = Union[
    SetTargetCommand,
    SetMultipleTargetsCommand,
    SetSpeedCommand,
    SetAccelerationCommand,
    SetPwmCommand,
    GetPositionCommand,
    GetMovingStateCommand,
    GetErrorsCommand,
    GoHomeCommand,
    StopScriptCommand,
    RestartScriptCommand,
    GetScriptStatusCommand,
]

# Reply length in bytes for each query command
REPLY_SIZES = {
    GetPositionCommand: 2,
    GetErrorsCommand: 2,
    GetMovingStateCommand: 1,
    GetScriptStatusCommand: 1,
}


def reply_size(command: Command) -> Optional[int]:
    """Number of reply bytes a command produces, or None if it has no reply"""
    return REPLY_SIZES.get(type(command))


def encode_command(command: Command, protocol: Protocol = Protocol.COMPACT,
                   device: Optional[int] = None) -> bytes:
    """Encode a command for transmission

    Args:
        command: Command to encode
        protocol: Protocol variant to frame the command with
        device: Device number, required for the Pololu protocol

    Returns:
        Complete frame ready to write to the transport

    Raises:
        InvalidArgumentError: If command parameters are invalid
    """
    if protocol is Protocol.MINISSC:
        if not isinstance(command, SetTargetCommand):
            raise InvalidArgumentError(
                f"MiniSSC protocol only supports set target, got {type(command).__name__}"
            )
        return _encode_minissc_target(command)

    opcode, params = _encode_body(command)

    if protocol is Protocol.POLOLU:
        if device is None:
            raise InvalidArgumentError("Pololu protocol requires a device number")
        check_range("Device number", device, 0, MAX_7BIT)
        return bytes([POLOLU_PROTO_ON, device, opcode.pololu_opcode]) + params
    elif protocol is Protocol.COMPACT:
        return bytes([opcode]) + params
    else:
        raise InvalidArgumentError(f"Unknown protocol: {protocol}")


def _encode_body(command: Command) -> Tuple[CommandType, bytes]:
    """Select the opcode and encode parameters (internal helper)"""
    if isinstance(command, SetTargetCommand):
        return CommandType.SET_TARGET, _encode_channel_value(command.channel, command.target)
    elif isinstance(command, SetMultipleTargetsCommand):
        return CommandType.SET_MULTIPLE_TARGETS, _encode_multiple_targets(command)
    elif isinstance(command, SetSpeedCommand):
        return CommandType.SET_SPEED, _encode_channel_value(command.channel, command.speed)
    elif isinstance(command, SetAccelerationCommand):
        return CommandType.SET_ACCELERATION, _encode_channel_value(
            command.channel, command.acceleration)
    elif isinstance(command, SetPwmCommand):
        return CommandType.SET_PWM, bytes([*split14(command.on_time), *split14(command.period)])
    elif isinstance(command, GetPositionCommand):
        return CommandType.GET_POSITION, bytes([check_range("Channel", command.channel, 0, MAX_7BIT)])
    elif isinstance(command, GetMovingStateCommand):
        return CommandType.GET_MOVING_STATE, b""
    elif isinstance(command, GetErrorsCommand):
        return CommandType.GET_ERRORS, b""
    elif isinstance(command, GoHomeCommand):
        return CommandType.GO_HOME, b""
    elif isinstance(command, StopScriptCommand):
        return CommandType.STOP_SCRIPT, b""
    elif isinstance(command, RestartScriptCommand):
        check_range("Subroutine number", command.subroutine, 0, MAX_7BIT)
        if command.parameter is None:
            return CommandType.RESTART_SCRIPT, bytes([command.subroutine])
        return (CommandType.RESTART_SCRIPT_WITH_PARAMETER,
                bytes([command.subroutine, *split14(command.parameter)]))
    elif isinstance(command, GetScriptStatusCommand):
        return CommandType.GET_SCRIPT_STATUS, b""
    else:
        raise InvalidArgumentError(f"Unknown command type: {type(command)}")


def _encode_channel_value(channel: int, value: int) -> bytes:
    """Encode [channel, low7, high7] (internal helper)"""
    check_range("Channel", channel, 0, MAX_7BIT)
    return bytes([channel, *split14(value)])


def _encode_multiple_targets(command: SetMultipleTargetsCommand) -> bytes:
    """Encode [count, first_channel, (low7, high7) * count] (internal helper)"""
    targets = command.targets
    count = command.count if command.count is not None else len(targets or ())

    check_range("Target count", count, 0, MAX_7BIT)
    check_range("First channel", command.first_channel, 0, MAX_7BIT)

    if count > 0 and (targets is None or len(targets) == 0):
        raise InvalidArgumentError(f"Target list required for {count} targets")
    if targets is not None and len(targets) < count:
        raise InvalidArgumentError(
            f"Expected at least {count} targets, got {len(targets)}"
        )

    body = bytearray([count, command.first_channel])
    for target in list(targets or ())[:count]:
        body.extend(split14(target))
    return bytes(body)


def _encode_minissc_target(command: SetTargetCommand) -> bytes:
    """Encode [0xFF, channel, target8] (internal helper)"""
    # Channel byte includes the device's SSC offset and must stay below the marker
    check_range("MiniSSC channel", command.channel, 0, MAX_8BIT - 1)
    check_range("MiniSSC target", command.target, 0, MAX_8BIT)
    return bytes([MINISSC_PROTO_ON, command.channel, command.target])
