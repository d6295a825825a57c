from typing import Dict, List, Optional, Any
import time
import json
from dataclasses import dataclass, asdict
from datetime import datetime
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class CommandLogEntry:
    """Log entry for a command written to the controller"""
    timestamp: float
    command_type: str        # set_target, get_position, etc.
    protocol: str            # pololu, compact or minissc
    device: Optional[int]    # Device number for the Pololu protocol
    frame: str               # Encoded bytes as hex


@dataclass
class ReplyLogEntry:
    """Log entry for a decoded reply"""
    timestamp: float
    command_type: str
    value: int


class MaestroLogger:
    """Session logger for Maestro commands and replies"""

    def __init__(self, log_dir: str = "maestro_logs"):
        """Initialize session logger

        Args:
            log_dir: Directory to store log files
        """
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        # Create session directory with timestamp
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.session_dir = self.log_dir / timestamp
        self.session_dir.mkdir(exist_ok=True)

        self.commands_path = self.session_dir / "commands.jsonl"
        self.replies_path = self.session_dir / "replies.jsonl"
        self.commands_path.touch()
        self.replies_path.touch()

        self.command_buffer: List[CommandLogEntry] = []
        self.reply_buffer: List[ReplyLogEntry] = []

        self.start_time = time.time()
        logger.info(f"Logging session started in {self.session_dir}")

    def log_command(self, command_type: str, protocol: str, device: Optional[int],
                    frame: bytes):
        """Log an encoded command

        Args:
            command_type: Name of the operation
            protocol: Protocol variant name
            device: Device number, None for unaddressed protocols
            frame: Bytes written to the transport
        """
        entry = CommandLogEntry(
            timestamp=time.time(),
            command_type=command_type,
            protocol=protocol,
            device=device,
            frame=frame.hex(' '),
        )
        self.command_buffer.append(entry)

        with open(self.commands_path, 'a') as f:
            json.dump(asdict(entry), f)
            f.write('\n')

    def log_reply(self, command_type: str, value: int):
        """Log a decoded reply value"""
        entry = ReplyLogEntry(
            timestamp=time.time(),
            command_type=command_type,
            value=value,
        )
        self.reply_buffer.append(entry)

        with open(self.replies_path, 'a') as f:
            json.dump(asdict(entry), f)
            f.write('\n')

    def save_metadata(self, metadata: Dict[str, Any]):
        """Save session metadata

        Args:
            metadata: Dictionary of metadata to save
        """
        metadata_path = self.session_dir / "metadata.json"
        with open(metadata_path, 'w') as f:
            json.dump(metadata, f, indent=2)

    def close(self):
        """Close the logger and write summary statistics"""
        counts: Dict[str, int] = {}
        for entry in self.command_buffer:
            counts[entry.command_type] = counts.get(entry.command_type, 0) + 1

        stats = {
            'duration': time.time() - self.start_time,
            'num_commands': len(self.command_buffer),
            'num_replies': len(self.reply_buffer),
            'commands_by_type': counts,
        }

        self.save_metadata({
            'statistics': stats,
            'timestamp': datetime.now().isoformat()
        })

        logger.info(f"Logging session completed: {stats}")
