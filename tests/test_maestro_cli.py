import pytest
import yaml

from pymaestro.maestro_cli import parse_options, build_config, dispatch, main
from pymaestro.maestro_interface import MaestroController, MaestroConfig
from pymaestro.maestro_exceptions import InvalidArgumentError
from pymaestro.serial_wrapper import MockSerialWrapper


@pytest.fixture
def transport():
    transport = MockSerialWrapper()
    transport.open()
    return transport


def run(argv, transport, config=None):
    """Dispatch parsed arguments to a controller on the mock transport"""
    controller = MaestroController(config if config else MaestroConfig(), transport=transport)
    return dispatch(parse_options(argv), controller)


class TestOptions:
    """Test argument parsing and configuration overrides"""

    def test_defaults(self):
        options = parse_options([])
        assert options.port is None
        assert options.device is None
        assert options.channel == 0
        assert options.mult_first == 0
        assert not options.ssc

    def test_parse(self):
        options = parse_options(['/dev/ttyUSB0', '-d', '12', '-c', '3', '-t', '6000',
                                 '--pwm-ontime', '100', '--mult-num', '4', '--no-timeout'])
        assert options.port == '/dev/ttyUSB0'
        assert options.device == 12
        assert options.channel == 3
        assert options.target == 6000
        assert options.pwm_ontime == 100
        assert options.mult_num == 4
        assert options.no_timeout

    def test_config_without_overrides(self):
        config = build_config(parse_options([]))
        assert config == MaestroConfig()

    def test_overrides(self, tmp_path):
        config_file = tmp_path / "maestro.yaml"
        config_file.write_text(yaml.dump({
            "Maestro": {"port": "/dev/ttyACM3", "baudrate": 19200, "timeout": 2.0}
        }))

        config = build_config(parse_options([
            '/dev/ttyUSB0', '-d', '7', '--baudrate', '115200', '--timeout', '0.5',
            '--config', str(config_file)]))
        assert config.port == '/dev/ttyUSB0'
        assert config.device == 7
        assert config.baudrate == 115200
        assert config.timeout == 0.5

    def test_config_file_values_kept(self, tmp_path):
        config_file = tmp_path / "maestro.yaml"
        config_file.write_text(yaml.dump({
            "Maestro": {"port": "/dev/ttyACM3", "baudrate": 19200, "device": 2}
        }))

        config = build_config(parse_options(['--config', str(config_file)]))
        assert config.port == '/dev/ttyACM3'
        assert config.baudrate == 19200
        assert config.device == 2

    def test_no_timeout(self):
        config = build_config(parse_options(['--no-timeout', '--timeout', '3']))
        assert config.timeout is None


class TestDispatch:
    """Test which frames a command line produces"""

    def test_set_target(self, transport):
        run(['-c', '2', '-t', '6000'], transport)
        assert transport.writes == [bytes([0x84, 0x02, 0x70, 0x2E])]

    def test_pololu_device(self, transport):
        run(['-c', '2', '-t', '6000'], transport, MaestroConfig(device=1))
        assert transport.writes == [bytes([0xAA, 0x01, 0x04, 0x02, 0x70, 0x2E])]

    def test_ssc(self, transport):
        run(['-c', '5', '-t', '200', '--ssc'], transport, MaestroConfig(device=1))
        assert transport.writes == [bytes([0xFF, 0x05, 0xC8])]

    def test_pwm_defaults_missing_half_to_zero(self, transport):
        run(['--pwm-ontime', '1000'], transport)
        assert transport.writes == [bytes([0x8A, 0x68, 0x07, 0x00, 0x00])]

    def test_multiple_targets_from_target(self, transport):
        run(['--mult-num', '2', '--mult-first', '3', '-t', '6000'], transport)
        assert transport.writes == [bytes([0x9F, 0x02, 0x03, 0x70, 0x2E, 0x70, 0x2E])]

    def test_multiple_targets_from_file(self, transport, tmp_path):
        targets = tmp_path / "targets.txt"
        targets.write_text("6000\n1\n4000\n")

        run(['--mult-num', '2', '--file', str(targets)], transport)
        assert transport.writes == [bytes([0x9F, 0x02, 0x00, 0x70, 0x2E, 0x01, 0x00])]

    def test_multiple_targets_short_file(self, transport, tmp_path):
        targets = tmp_path / "targets.txt"
        targets.write_text("6000\n")

        with pytest.raises(InvalidArgumentError, match="at least 3 targets"):
            run(['--mult-num', '3', '--file', str(targets)], transport)
        assert transport.writes == []

    def test_multiple_targets_without_source(self, transport):
        with pytest.raises(InvalidArgumentError, match="--file or --target"):
            run(['--mult-num', '2'], transport)

    def test_queries(self, transport, capsys):
        for reply in (b'\x70\x17', b'\x09\x00', b'\x00', b'\x01'):
            transport.queue_reply(reply)

        results = run(['-c', '1', '--get-position', '--get-errors', '--is-moving', '--is-stop'],
                      transport)

        assert results == {'position': 6000, 'errors': 9, 'moving': 0, 'script_stopped': 1}
        assert transport.writes == [b'\x90\x01', b'\xA1', b'\x93', b'\xAE']
        out = capsys.readouterr().out
        assert "Position of channel 1: 6000" in out
        assert "Errors: 0x0009" in out
        assert "Servos not moving" in out
        assert "Script stopped" in out

    def test_operation_order(self, transport):
        """Queries run before settings, targets and script control"""
        transport.queue_reply(b'\x00\x00')
        run(['--go-home', '-t', '6000', '-s', '10', '--get-errors'], transport)

        assert transport.writes == [
            bytes([0xA1]),
            bytes([0x87, 0x00, 0x0A, 0x00]),
            bytes([0x84, 0x00, 0x70, 0x2E]),
            bytes([0xA2]),
        ]

    def test_script_control(self, transport):
        run(['--stop', '--restart', '1', '--parameter', '5'], transport)
        assert transport.writes == [bytes([0xA4]), bytes([0xA8, 0x01, 0x05, 0x00])]

    @pytest.mark.parametrize("argv,message", [
        (['--parameter', '5', '--stop'], "--parameter requires --restart"),
        (['--ssc', '--mult-num', '2', '-t', '100'], "cannot be combined with --mult-num"),
        (['--ssc', '--go-home'], "--ssc requires --target"),
        (['--file', 'targets.txt', '-t', '6000'], "--file requires --mult-num"),
    ])
    def test_ignored_options_rejected(self, transport, argv, message):
        """Options that would have no effect fail before anything is sent"""
        with pytest.raises(InvalidArgumentError, match=message):
            run(argv, transport)
        assert transport.writes == []


class TestMain:
    """Test exit status of the command-line entry point"""

    @pytest.fixture
    def mock_serial(self, monkeypatch):
        transport = MockSerialWrapper()
        monkeypatch.setattr("pymaestro.maestro_interface.SerialWrapper",
                            lambda **kwargs: transport)
        return transport

    def test_success(self, mock_serial):
        assert main(['-t', '6000']) == 0
        assert mock_serial.writes == [bytes([0x84, 0x00, 0x70, 0x2E])]
        assert not mock_serial.is_open

    def test_timeout(self, mock_serial):
        assert main(['--get-position', '--timeout', '0.01']) == 1

    def test_invalid_argument(self, mock_serial):
        assert main(['-t', '16384']) == 1
        assert mock_serial.writes == []

    def test_missing_config(self, tmp_path, mock_serial):
        assert main(['--config', str(tmp_path / "absent.yaml"), '-t', '6000']) == 1
        assert mock_serial.writes == []

    def test_ignored_option(self, mock_serial):
        assert main(['--parameter', '5']) == 1
        assert mock_serial.writes == []

    def test_malformed_config(self, tmp_path, mock_serial):
        config_file = tmp_path / "bad.yaml"
        config_file.write_text("Maestro: [port: x\n")

        assert main(['--config', str(config_file), '-t', '6000']) == 1
        assert mock_serial.writes == []

    def test_mistyped_config(self, tmp_path, mock_serial):
        config_file = tmp_path / "bad.yaml"
        config_file.write_text(yaml.dump({
            "Maestro": {"port": "/dev/ttyACM0", "baudrate": 9600, "device": "one"}
        }))

        assert main(['--config', str(config_file), '-t', '6000']) == 1
        assert mock_serial.writes == []

    def test_dry_run(self, mock_serial, capsys):
        assert main(['--dry-run', '-d', '1', '-c', '2', '-t', '6000']) == 0
        assert mock_serial.writes == []
        assert "AA 01 04 02 70 2E" in capsys.readouterr().out

    def test_dry_run_rejects_queries(self, mock_serial, capsys):
        assert main(['--dry-run', '--get-position']) == 1
        assert capsys.readouterr().out == ""

    def test_session_log(self, tmp_path, mock_serial):
        mock_serial.queue_reply(b'\x00\x00')
        assert main(['--get-errors', '--log-dir', str(tmp_path)]) == 0

        sessions = [p for p in tmp_path.iterdir() if p.is_dir()]
        assert len(sessions) == 1
        assert (sessions[0] / "metadata.json").exists()
        assert (sessions[0] / "commands.jsonl").read_text().count('\n') == 1


if __name__ == '__main__':
    pytest.main([__file__])
