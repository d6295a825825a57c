from typing import List, Optional
import logging
import time

import serial

from .maestro_exceptions import MaestroIOError

logger = logging.getLogger(__name__)

DEFAULT_PORT = "/dev/ttyACM0"
DEFAULT_BAUDRATE = 9600  # Maestro detects the baud rate in its auto-detect mode
DEFAULT_POLL_INTERVAL = 0.001
DEFAULT_READ_TIMEOUT = 0.1  # Bound on the gap between bytes of one reply


class SerialWrapper:
    """High level wrapper for the serial port a Maestro is attached to"""

    def __init__(self, port: str = DEFAULT_PORT, baudrate: int = DEFAULT_BAUDRATE,
                 poll_interval: float = DEFAULT_POLL_INTERVAL,
                 read_timeout: float = DEFAULT_READ_TIMEOUT):
        """Initialize serial wrapper

        Args:
            port: Serial device path, e.g. /dev/ttyACM0
            baudrate: Line speed in baud
            poll_interval: Sleep between readiness checks in seconds
            read_timeout: Time a read waits for the rest of a reply in seconds
        """
        self.port = port
        self.baudrate = baudrate
        self.poll_interval = poll_interval
        self.read_timeout = read_timeout
        self._serial: Optional[serial.Serial] = None

    @property
    def is_open(self) -> bool:
        return self._serial is not None and self._serial.is_open

    def open(self, port: Optional[str] = None, baudrate: Optional[int] = None) -> None:
        """Open the serial port in raw 8N1 mode

        Args:
            port: Serial device path, defaults to the one given at construction
            baudrate: Line speed, defaults to the one given at construction

        Raises:
            MaestroIOError: If the port cannot be opened
        """
        if port:
            self.port = port
        if baudrate is not None:
            self.baudrate = baudrate

        try:
            # pyserial configures POSIX ports without echo, canonical mode,
            # signal characters or output newline translation
            self._serial = serial.Serial(
                self.port, self.baudrate, timeout=self.read_timeout,
                bytesize=serial.EIGHTBITS, parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
            )
        except (serial.SerialException, OSError) as e:
            raise MaestroIOError(f"Failed to open {self.port}: {e}") from e

        logger.info(f"Opened {self.port} at {self.baudrate} baud")

    def close(self) -> None:
        """Close the serial port

        Raises:
            MaestroIOError: If closing fails
        """
        if self._serial is None:
            return
        try:
            self._serial.close()
        except (serial.SerialException, OSError) as e:
            raise MaestroIOError(f"Error closing {self.port}: {e}") from e
        finally:
            self._serial = None
        logger.info(f"Closed {self.port}")

    def write(self, data: bytes) -> int:
        """Write bytes to the port

        Returns:
            int: Number of bytes written

        Raises:
            MaestroIOError: If the port is closed or the write fails
        """
        port = self._require_open()
        logger.debug(f"TX {self.port}: {' '.join(f'{b:02X}' for b in data)}")
        try:
            written = port.write(data)
            port.flush()
        except (serial.SerialException, OSError) as e:
            raise MaestroIOError(f"Error writing to {self.port}: {e}") from e
        return len(data) if written is None else written

    def read(self, size: int) -> bytes:
        """Read up to size bytes, waiting at most read_timeout for them

        Raises:
            MaestroIOError: If the port is closed or the read fails
        """
        port = self._require_open()
        try:
            data = port.read(size)
        except (serial.SerialException, OSError) as e:
            raise MaestroIOError(f"Error reading from {self.port}: {e}") from e
        logger.debug(f"RX {self.port}: {' '.join(f'{b:02X}' for b in data) or '(none)'}")
        return bytes(data)

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """Wait until at least one byte is available to read

        Args:
            timeout: Deadline in seconds, None to wait indefinitely

        Returns:
            bool: True if data is available, False if the deadline elapsed

        Raises:
            MaestroIOError: If the port fails while waiting
        """
        port = self._require_open()
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            try:
                if port.in_waiting > 0:
                    return True
            except (serial.SerialException, OSError) as e:
                raise MaestroIOError(f"Error waiting on {self.port}: {e}") from e

            if deadline is None:
                time.sleep(self.poll_interval)
                continue

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            time.sleep(min(self.poll_interval, remaining))

    def _require_open(self) -> serial.Serial:
        if self._serial is None:
            raise MaestroIOError(f"Port {self.port} is not open")
        return self._serial


class MockSerialWrapper:
    """In-memory transport for tests and dry runs

    Written frames are recorded in ``writes``; queued replies are handed out
    one per readiness wait.
    """

    def __init__(self, replies: Optional[List[bytes]] = None,
                 short_write: Optional[int] = None):
        """Initialize mock transport

        Args:
            replies: Reply byte strings returned by successive reads
            short_write: If set, report at most this many bytes written
        """
        self.port = "mock"
        self.replies = list(replies or [])
        self.short_write = short_write
        self.writes: List[bytes] = []
        self._pending = b""
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self, port: Optional[str] = None, baudrate: Optional[int] = None) -> None:
        if port:
            self.port = port
        self._open = True
        logger.info(f"Opened mock port {self.port}")

    def close(self) -> None:
        self._open = False

    def queue_reply(self, data: bytes) -> None:
        self.replies.append(bytes(data))

    def write(self, data: bytes) -> int:
        self.writes.append(bytes(data))
        logger.debug(f"TX {self.port}: {' '.join(f'{b:02X}' for b in data)}")
        if self.short_write is not None:
            return min(self.short_write, len(data))
        return len(data)

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        if not self._pending and self.replies:
            self._pending = self.replies.pop(0)
        return bool(self._pending)

    def read(self, size: int) -> bytes:
        data, self._pending = self._pending[:size], self._pending[size:]
        return data
