from dataclasses import dataclass, fields
from typing import Optional, Sequence, Union
import logging
import re
import threading
from pathlib import Path

import yaml

from .serial_wrapper import (
    SerialWrapper,
    DEFAULT_PORT,
    DEFAULT_BAUDRATE,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_READ_TIMEOUT,
)
from .maestro_logger import MaestroLogger
from .maestro_exceptions import MaestroError, MaestroIOError, MaestroTimeoutError
from .maestro_protocol import Protocol
from .maestro_protocol.commands import (
    Command,
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
    encode_command,
    reply_size,
)
from .maestro_protocol.messages import ErrorInfo, decode_reply, describe_errors

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config" / "maestro.yaml"

# Marks a query that should use the configured timeout
_CONFIG_TIMEOUT = object()


@dataclass(frozen=True)
class MaestroConfig:
    """Connection settings for one controller"""

    port: str = DEFAULT_PORT  # Serial device path
    baudrate: int = DEFAULT_BAUDRATE  # Line speed in baud
    device: Optional[int] = None  # Device number; selects the Pololu protocol when set
    timeout: Optional[float] = 1.0  # Reply deadline in seconds, None waits forever
    poll_interval: float = DEFAULT_POLL_INTERVAL  # Readiness poll period in seconds
    read_timeout: float = DEFAULT_READ_TIMEOUT  # Inter-byte read bound in seconds

    @property
    def protocol(self) -> Protocol:
        return Protocol.POLOLU if self.device is not None else Protocol.COMPACT


def load_config(config_path: Optional[Union[str, Path]] = None) -> MaestroConfig:
    """Load controller configuration from a YAML file

    The file holds a ``Maestro`` mapping whose keys match MaestroConfig fields.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the YAML is malformed, required keys are missing, unknown
            keys are present or a value has the wrong type
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        try:
            config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Malformed YAML in {path}: {e}") from e

    if isinstance(config, dict):
        config = config.get("Maestro", config)
    if not isinstance(config, dict):
        raise ValueError(f"Expected a mapping in {path}")

    required_keys = {"port", "baudrate"}
    missing = required_keys - set(config.keys())
    if missing:
        raise ValueError(f"Missing required keys in config: {missing}")

    known_keys = {f.name for f in fields(MaestroConfig)}
    unknown = set(config.keys()) - known_keys
    if unknown:
        raise ValueError(f"Unknown keys in config: {unknown}")

    _check_types(config)
    return MaestroConfig(**config)


def _check_types(config: dict):
    """Validate value types of a config mapping (internal helper)"""
    if not isinstance(config["port"], str):
        raise ValueError(f"port must be a string, got {config['port']!r}")

    for key in ("baudrate", "device"):
        value = config.get(key)
        if value is None and key == "device":
            continue
        # bool is an int subclass
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValueError(f"{key} must be an integer, got {value!r}")

    for key in ("timeout", "poll_interval", "read_timeout"):
        if key not in config:
            continue
        value = config[key]
        if value is None and key == "timeout":
            continue
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise ValueError(f"{key} must be a number, got {value!r}")


def execute(transport, data: bytes) -> None:
    """Write an encoded command that has no reply

    Raises:
        MaestroIOError: If the transport fails or writes fewer bytes than given
    """
    try:
        written = transport.write(data)
    except MaestroError:
        raise
    except OSError as e:
        raise MaestroIOError(f"Error writing command: {e}") from e

    if written != len(data):
        logger.error(f"Short write: {written} of {len(data)} bytes")
        raise MaestroIOError(f"Short write: {written} of {len(data)} bytes")


def query(transport, data: bytes, size: int, timeout: Optional[float] = None) -> int:
    """Write an encoded query and decode its fixed-size reply

    Args:
        transport: Open transport to exchange bytes with
        data: Encoded query command
        size: Expected reply length in bytes
        timeout: Reply deadline in seconds, None to wait indefinitely

    Returns:
        int: Decoded reply value

    Raises:
        MaestroIOError: If writing, waiting or reading fails
        MaestroTimeoutError: If no reply arrives before the deadline
        ProtocolError: If the reply is shorter than expected
    """
    execute(transport, data)

    try:
        ready = transport.wait_ready(timeout)
    except MaestroError:
        raise
    except OSError as e:
        raise MaestroIOError(f"Error waiting for reply: {e}") from e

    if not ready:
        # The command was delivered; only the reply went unobserved
        raise MaestroTimeoutError(f"No reply within {timeout}s")

    try:
        reply = transport.read(size)
    except MaestroError:
        raise
    except OSError as e:
        raise MaestroIOError(f"Error reading reply: {e}") from e

    return decode_reply(reply, size)


def _command_name(command: Command) -> str:
    """SetTargetCommand -> set_target"""
    name = type(command).__name__
    if name.endswith("Command"):
        name = name[:-len("Command")]
    return re.sub(r'(?<!^)(?=[A-Z])', '_', name).lower()


class MaestroController:
    """Control interface for one Maestro servo controller"""

    def __init__(self, config: Optional[MaestroConfig] = None, transport=None,
                 command_logger: Optional[MaestroLogger] = None):
        """Initialize controller interface

        Args:
            config: Connection settings, defaults to MaestroConfig()
            transport: Optional existing transport to share between controllers
            command_logger: Optional session logger for commands and replies
        """
        self.config = config if config else MaestroConfig()
        self.transport = transport if transport else SerialWrapper(
            port=self.config.port,
            baudrate=self.config.baudrate,
            poll_interval=self.config.poll_interval,
            read_timeout=self.config.read_timeout,
        )
        self._owns_transport = transport is None
        self.command_logger = command_logger
        # One request/reply cycle at a time per transport
        self._lock = threading.Lock()

    @property
    def protocol(self) -> Protocol:
        return self.config.protocol

    def open(self) -> "MaestroController":
        """Open the transport if this controller owns it"""
        if self._owns_transport and not self.transport.is_open:
            self.transport.open()
        return self

    def close(self):
        """Close the transport if this controller owns it"""
        if self._owns_transport:
            self.transport.close()

    def __enter__(self) -> "MaestroController":
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def send(self, command: Command, protocol: Optional[Protocol] = None,
             timeout=_CONFIG_TIMEOUT) -> Optional[int]:
        """Encode and send a command, returning the reply for queries

        Args:
            command: Command to send
            protocol: Protocol override, defaults to the configured one
            timeout: Reply deadline in seconds, None waits forever

        Returns:
            Decoded reply for query commands, None otherwise
        """
        protocol = protocol if protocol else self.protocol
        device = self.config.device if protocol is Protocol.POLOLU else None
        data = encode_command(command, protocol, device)
        name = _command_name(command)
        size = reply_size(command)
        if timeout is _CONFIG_TIMEOUT:
            timeout = self.config.timeout

        logger.debug(f"{name} ({protocol.value}): {data.hex(' ')}")
        if self.command_logger:
            self.command_logger.log_command(name, protocol.value, device, data)

        with self._lock:
            if size is None:
                execute(self.transport, data)
                return None
            value = query(self.transport, data, size, timeout)

        if self.command_logger:
            self.command_logger.log_reply(name, value)
        return value

    def set_target(self, channel: int, target: int, protocol: Optional[Protocol] = None):
        """Move a channel to a target

        Args:
            channel: Output channel
            target: Quarter-microseconds, or an 8-bit value with Protocol.MINISSC
            protocol: Pass Protocol.MINISSC to use the MiniSSC frame
        """
        self.send(SetTargetCommand(channel=channel, target=target), protocol)

    def set_multiple_targets(self, first_channel: int, targets: Optional[Sequence[int]],
                             count: Optional[int] = None):
        """Set targets for consecutive channels starting at first_channel"""
        self.send(SetMultipleTargetsCommand(
            first_channel=first_channel, targets=targets, count=count))

    def set_speed(self, channel: int, speed: int):
        """Set the speed limit of a channel, 0 for unlimited"""
        self.send(SetSpeedCommand(channel=channel, speed=speed))

    def set_acceleration(self, channel: int, acceleration: int):
        """Set the acceleration limit of a channel, 0 for unlimited"""
        self.send(SetAccelerationCommand(channel=channel, acceleration=acceleration))

    def set_pwm(self, on_time: int, period: int):
        """Configure the PWM output in 1/48us units"""
        self.send(SetPwmCommand(on_time=on_time, period=period))

    def get_position(self, channel: int, timeout=_CONFIG_TIMEOUT) -> int:
        """Current position of a channel in quarter-microseconds"""
        return self.send(GetPositionCommand(channel=channel), timeout=timeout)

    def get_moving_state(self, timeout=_CONFIG_TIMEOUT) -> int:
        """Raw moving state: 1 if any servo is moving, 0 otherwise"""
        return self.send(GetMovingStateCommand(), timeout=timeout)

    def is_moving(self, timeout=_CONFIG_TIMEOUT) -> bool:
        return bool(self.get_moving_state(timeout=timeout))

    def get_errors(self, timeout=_CONFIG_TIMEOUT) -> int:
        """Raw error register. Reading it clears the errors on the controller."""
        return self.send(GetErrorsCommand(), timeout=timeout)

    def get_error_info(self, timeout=_CONFIG_TIMEOUT) -> ErrorInfo:
        return describe_errors(self.get_errors(timeout=timeout))

    def go_home(self):
        """Send all servos to their home positions"""
        self.send(GoHomeCommand())

    def stop_script(self):
        self.send(StopScriptCommand())

    def restart_script(self, subroutine: int, parameter: Optional[int] = None):
        """Restart the script at a subroutine, optionally with a parameter"""
        self.send(RestartScriptCommand(subroutine=subroutine, parameter=parameter))

    def get_script_status(self, timeout=_CONFIG_TIMEOUT) -> int:
        """Raw script status: 1 if the script is stopped, 0 if running"""
        return self.send(GetScriptStatusCommand(), timeout=timeout)

    def is_script_stopped(self, timeout=_CONFIG_TIMEOUT) -> bool:
        return bool(self.get_script_status(timeout=timeout))
