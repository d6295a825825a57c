"""Exceptions raised by the Maestro codec, engine and transport."""


class MaestroError(Exception):
    """Base class for all Maestro communication errors."""


class InvalidArgumentError(MaestroError, ValueError):
    """A command parameter is missing or outside its field range."""


class MaestroIOError(MaestroError, IOError):
    """The transport failed to open, close, write, read or wait."""


class MaestroTimeoutError(MaestroError, TimeoutError):
    """No reply was observed before the caller's deadline."""


class ProtocolError(MaestroError):
    """The reply is shorter than the fixed length expected for its query."""
