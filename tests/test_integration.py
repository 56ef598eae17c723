"""
Integration Tests for curvefan

These tests run the real sampler, curve, actuator and metrics writer
together, with only the external commands mocked out.
"""

import pytest
import subprocess
from unittest.mock import Mock, patch

from curvefan.config import config_from_dict
from curvefan.control.manager import ControlManager, ControllerState

MOCK_SENSORS_62 = """
coretemp-isa-0000
Adapter: ISA adapter
Package id 0:  +62.0°C  (high = +80.0°C, crit = +100.0°C)
Core 0:        +70.0°C  (high = +80.0°C, crit = +100.0°C)
"""

@pytest.fixture
def config(tmp_path):
    """Create a configuration writing metrics under tmp_path"""
    return config_from_dict({
        "fans": {"bank_count": 2, "min_speed": 0, "max_speed": 100},
        "temperature": {"hysteresis": 1, "sample_count": 3, "sample_interval": 0},
        "control": {"cycle_period": 0, "max_step": 100},
        "metrics": {"path": str(tmp_path / "metrics.txt"), "host": "server01"},
        "curve": {60: 40, 65: 50}
    })

class FakeCommands:
    """Stands in for subprocess.run, recording ipmitool calls"""

    def __init__(self, sensors_output=MOCK_SENSORS_62, sensors_fail=False, ipmi_fail=False):
        self.sensors_output = sensors_output
        self.sensors_fail = sensors_fail
        self.ipmi_fail = ipmi_fail
        self.ipmi_calls = []

    def __call__(self, argv, **kwargs):
        if argv[0] == "sensors":
            if self.sensors_fail:
                raise subprocess.CalledProcessError(1, argv, stderr="No sensors found!")
            return Mock(stdout=self.sensors_output, returncode=0)
        self.ipmi_calls.append(argv)
        if self.ipmi_fail:
            raise subprocess.CalledProcessError(1, argv, stderr="Unable to send RAW command")
        return Mock(stdout="", returncode=0)

def test_end_to_end(config, tmp_path):
    """Test 62°C drives every bank to 44% and reports it"""
    fake = FakeCommands()
    with patch("subprocess.run", side_effect=fake):
        manager = ControlManager(config)
        state = manager.run(max_cycles=1)

    assert state.last_applied_speed == 44
    assert fake.ipmi_calls == [
        ["ipmitool", "raw", "0x3a", "0x01", "0x01", "0x2c", "0x01"],
        ["ipmitool", "raw", "0x3a", "0x01", "0x02", "0x2c", "0x01"]
    ]

    lines = (tmp_path / "metrics.txt").read_text().splitlines()
    assert lines == [
        "fan,host=server01 speed_percent=44",
        "fan,host=server01 speed_raw=2c"
    ]

def test_second_cycle_skips_dispatch(config, tmp_path):
    """Test unchanged speed is not re-dispatched but still reported"""
    fake = FakeCommands()
    with patch("subprocess.run", side_effect=fake):
        manager = ControlManager(config)
        manager.run(max_cycles=2)

    assert len(fake.ipmi_calls) == 2
    assert "speed_percent=44" in (tmp_path / "metrics.txt").read_text()

def test_fractional_step_reports_dispatched_speed(config, tmp_path):
    """Test a fractional max_step applies, reports and stores one integer"""
    config.max_step = 2.5
    fake = FakeCommands()
    with patch("subprocess.run", side_effect=fake):
        manager = ControlManager(config)
        state = manager.run_cycle(ControllerState(last_applied_speed=25))

    assert state.last_applied_speed == 27
    assert isinstance(state.last_applied_speed, int)
    assert [argv[-2] for argv in fake.ipmi_calls] == ["0x1b", "0x1b"]
    assert "speed_percent=27\n" in (tmp_path / "metrics.txt").read_text()

def test_sensor_partial_failure_keeps_reading(config, tmp_path):
    """Test a sensors exit status of 1 with readings does not fall back"""
    fake = FakeCommands()
    error = subprocess.CalledProcessError(1, ["sensors"], output=MOCK_SENSORS_62,
                                          stderr="ERROR: Can't get value of subfeature temp1_input")

    def run(argv, **kwargs):
        if argv[0] == "sensors":
            raise error
        return fake(argv, **kwargs)

    with patch("subprocess.run", side_effect=run):
        manager = ControlManager(config)
        state = manager.run_cycle(manager.state)

    assert state.last_temperature == 62.0
    assert state.last_applied_speed == 44

def test_sensor_failure_uses_fallback(config, tmp_path):
    """Test a failing sensor command reads as 0°C and drops to minimum"""
    fake = FakeCommands(sensors_fail=True)
    config.min_speed = 10
    with patch("subprocess.run", side_effect=fake):
        manager = ControlManager(config)
        state = manager.run_cycle(ControllerState(last_applied_speed=44))

    assert state.last_temperature == 0.0
    assert state.last_applied_speed == 10
    assert "speed_percent=10" in (tmp_path / "metrics.txt").read_text()

def test_actuation_failure_is_not_fatal(config, tmp_path):
    """Test ipmitool failures still let the cycle complete"""
    fake = FakeCommands(ipmi_fail=True)
    with patch("subprocess.run", side_effect=fake):
        manager = ControlManager(config)
        state = manager.run(max_cycles=1)

    assert state.last_applied_speed == 44
    assert (tmp_path / "metrics.txt").exists()
