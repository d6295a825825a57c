# pymaestro/__init__.py

from .maestro_interface import (
    MaestroController,
    MaestroConfig,
    load_config,
    execute,
    query,
)
from .maestro_protocol import Protocol, split14, join_le
from .maestro_protocol.messages import ErrorCode, ErrorInfo, decode_errors, describe_errors
from .maestro_exceptions import (
    MaestroError,
    InvalidArgumentError,
    MaestroIOError,
    MaestroTimeoutError,
    ProtocolError,
)
from .serial_wrapper import SerialWrapper, MockSerialWrapper
from .maestro_logger import MaestroLogger
from .targets_file import load_targets

__all__ = [
    'MaestroController',
    'MaestroConfig',
    'load_config',
    'execute',
    'query',
    'Protocol',
    'split14',
    'join_le',
    'ErrorCode',
    'ErrorInfo',
    'decode_errors',
    'describe_errors',
    'MaestroError',
    'InvalidArgumentError',
    'MaestroIOError',
    'MaestroTimeoutError',
    'ProtocolError',
    'SerialWrapper',
    'MockSerialWrapper',
    'MaestroLogger',
    'load_targets',
]
