"""Command-line tool for sending single commands to a Maestro controller.

Options are parsed once into an immutable CommandOptions value which is then
handed to dispatch(). Queries run first, then motion and configuration
commands, then script control.
"""

import argparse
import dataclasses
import logging
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional

from .maestro_exceptions import InvalidArgumentError, MaestroError
from .maestro_interface import MaestroConfig, MaestroController, load_config
from .maestro_logger import MaestroLogger
from .maestro_protocol import Protocol
from .maestro_protocol.messages import describe_errors
from .serial_wrapper import MockSerialWrapper
from .targets_file import load_targets, require_targets

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandOptions:
    """Parsed command-line options"""

    port: Optional[str] = None
    device: Optional[int] = None
    channel: int = 0
    target: Optional[int] = None
    ssc: bool = False
    speed: Optional[int] = None
    acceleration: Optional[int] = None
    pwm_ontime: Optional[int] = None
    pwm_period: Optional[int] = None
    mult_num: Optional[int] = None
    mult_first: int = 0
    file: Optional[str] = None
    get_position: bool = False
    is_moving: bool = False
    get_errors: bool = False
    go_home: bool = False
    stop: bool = False
    restart: Optional[int] = None
    parameter: Optional[int] = None
    is_stop: bool = False
    timeout: Optional[float] = None
    no_timeout: bool = False
    baudrate: Optional[int] = None
    config: Optional[str] = None
    log_dir: Optional[str] = None
    dry_run: bool = False
    verbose: bool = False


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="maestro-cmd",
        description="Send commands to a Maestro servo controller",
    )
    parser.add_argument('port', nargs='?', default=None,
                        help='Serial device (default from config, /dev/ttyACM0)')
    parser.add_argument('-d', '--device', type=int,
                        help='Device number; selects the Pololu protocol (default: Compact protocol)')
    parser.add_argument('-c', '--channel', type=int, default=0,
                        help='Channel number (default: 0)')
    parser.add_argument('-t', '--target', type=int,
                        help='Target in quarter-microseconds (0-16383)')
    parser.add_argument('--ssc', action='store_true',
                        help='Use the MiniSSC protocol for setting the target (8-bit target)')

    group = parser.add_argument_group('channel settings')
    group.add_argument('-s', '--speed', type=int,
                       help='Speed limit (0.25us/10ms units), 0 for unlimited')
    group.add_argument('-a', '--acceleration', type=int,
                       help='Acceleration limit (0.25us/10ms/80ms units), 0 for unlimited')
    group.add_argument('--pwm-ontime', type=int, help='PWM on time (1/48us units)')
    group.add_argument('--pwm-period', type=int, help='PWM period (1/48us units)')

    group = parser.add_argument_group('multiple targets')
    group.add_argument('--mult-num', type=int, help='Number of targets to set')
    group.add_argument('--mult-first', type=int, default=0,
                       help='First channel for the multiple targets command (default: 0)')
    group.add_argument('--file',
                       help='File with the list of targets; without it --target is used for every channel')

    group = parser.add_argument_group('queries')
    group.add_argument('--get-position', action='store_true', help='Print the current position of the channel')
    group.add_argument('--is-moving', action='store_true', help='Check whether any servo is moving')
    group.add_argument('--get-errors', action='store_true', help='Print and clear the error register')

    group = parser.add_argument_group('script')
    group.add_argument('--go-home', action='store_true', help='Send all servos home')
    group.add_argument('--stop', action='store_true', help='Stop the script')
    group.add_argument('--restart', type=int, metavar='NUM', help='Restart the script at subroutine NUM')
    group.add_argument('--parameter', type=int, help='Parameter for restarting the script (0-16383)')
    group.add_argument('--is-stop', action='store_true', help='Check whether the script is stopped')

    group = parser.add_argument_group('connection')
    group.add_argument('--timeout', type=float, help='Reply timeout in seconds')
    group.add_argument('--no-timeout', action='store_true', help='Wait for replies indefinitely')
    group.add_argument('--baudrate', type=int, help='Serial line speed')
    group.add_argument('--config', help='YAML configuration file')
    group.add_argument('--log-dir', help='Record commands and replies in this directory')
    group.add_argument('--dry-run', action='store_true',
                       help='Print encoded frames instead of opening the serial port')
    group.add_argument('-v', '--verbose', action='store_true', help='Log encoded frames')
    return parser


def parse_options(argv: Optional[List[str]] = None) -> CommandOptions:
    """Parse command-line arguments into an immutable CommandOptions"""
    args = build_parser().parse_args(argv)
    return CommandOptions(**vars(args))


def build_config(options: CommandOptions) -> MaestroConfig:
    """Combine the configuration file with command-line overrides"""
    config = load_config(options.config)

    overrides = {}
    if options.device is not None:
        overrides['device'] = options.device
    if options.port:
        overrides['port'] = options.port
    if options.baudrate is not None:
        overrides['baudrate'] = options.baudrate
    if options.no_timeout:
        overrides['timeout'] = None
    elif options.timeout is not None:
        overrides['timeout'] = options.timeout

    return dataclasses.replace(config, **overrides)


def has_queries(options: CommandOptions) -> bool:
    return options.get_position or options.get_errors or options.is_moving or options.is_stop


def check_options(options: CommandOptions):
    """Reject options that only take effect together with another option

    Raises:
        InvalidArgumentError: If an option would be ignored
    """
    if options.parameter is not None and options.restart is None:
        raise InvalidArgumentError("--parameter requires --restart")
    if options.file and options.mult_num is None:
        raise InvalidArgumentError("--file requires --mult-num")
    if options.ssc and options.mult_num is not None:
        raise InvalidArgumentError("--ssc applies to a single target and cannot be combined with --mult-num")
    if options.ssc and options.target is None:
        raise InvalidArgumentError("--ssc requires --target")


def _multiple_targets(options: CommandOptions) -> List[int]:
    if options.file:
        targets = load_targets(options.file)
    elif options.target is not None:
        targets = [options.target] * options.mult_num
    else:
        raise InvalidArgumentError("--mult-num requires --file or --target")
    return list(require_targets(targets, options.mult_num))


def dispatch(options: CommandOptions, controller: MaestroController) -> Dict[str, int]:
    """Run every operation requested by options

    Returns:
        Dict mapping query name to its raw reply value
    """
    check_options(options)

    results: Dict[str, int] = {}

    if options.get_position:
        results['position'] = controller.get_position(options.channel)
        print(f"Position of channel {options.channel}: {results['position']}")
    if options.get_errors:
        results['errors'] = controller.get_errors()
        info = describe_errors(results['errors']).description
        print(f"Errors: 0x{results['errors']:04X} ({info})")
    if options.is_moving:
        results['moving'] = controller.get_moving_state()
        print("Servos moving" if results['moving'] else "Servos not moving")
    if options.is_stop:
        results['script_stopped'] = controller.get_script_status()
        print("Script stopped" if results['script_stopped'] else "Script running")

    if options.speed is not None:
        controller.set_speed(options.channel, options.speed)
    if options.acceleration is not None:
        controller.set_acceleration(options.channel, options.acceleration)
    if options.pwm_ontime is not None or options.pwm_period is not None:
        controller.set_pwm(options.pwm_ontime or 0, options.pwm_period or 0)

    if options.mult_num is not None:
        controller.set_multiple_targets(
            options.mult_first, _multiple_targets(options), options.mult_num)
    elif options.target is not None:
        protocol = Protocol.MINISSC if options.ssc else None
        controller.set_target(options.channel, options.target, protocol)

    if options.go_home:
        controller.go_home()
    if options.stop:
        controller.stop_script()
    if options.restart is not None:
        controller.restart_script(options.restart, options.parameter)

    return results


def main(argv: Optional[List[str]] = None) -> int:
    options = parse_options(argv)
    logging.basicConfig(level=logging.DEBUG if options.verbose else logging.INFO)

    try:
        config = build_config(options)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    transport = None
    if options.dry_run:
        if has_queries(options):
            logger.error("Queries need a controller to reply and cannot be combined with --dry-run")
            return 1
        transport = MockSerialWrapper()
        transport.open(config.port)

    command_logger = MaestroLogger(options.log_dir) if options.log_dir else None
    try:
        with MaestroController(config, transport=transport,
                               command_logger=command_logger) as controller:
            dispatch(options, controller)
    except (MaestroError, FileNotFoundError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    finally:
        if command_logger:
            command_logger.close()

    if transport:
        for frame in transport.writes:
            print(frame.hex(' ').upper())

    return 0


if __name__ == '__main__':
    sys.exit(main())
