"""
Configuration Module

This module loads the YAML configuration file and validates it into a
ControllerConfig used by every other part of curvefan.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/etc/curvefan/config.yaml"

# lm-sensors coretemp line, e.g. "Package id 0:  +62.0°C  (high = +80.0°C, crit = +100.0°C)"
DEFAULT_SENSOR_PATTERN = r"Package id \d+:\s+([+-]?\d+(?:\.\d+)?)"

DEFAULT_CURVE = {
    40: 20,
    55: 35,
    65: 50,
    75: 75,
    85: 100,
}


class CurvefanError(Exception):
    """Base exception for curvefan errors"""
    pass


class ConfigurationError(CurvefanError):
    """Raised when configuration is malformed or incomplete"""
    pass


CurveInput = Union[Dict[float, float], List[Tuple[float, float]], List[List[float]]]


@dataclass
class ControllerConfig:
    """Validated controller configuration.

    Attributes:
        bank_count: Number of fan banks to drive
        min_speed: Minimum duty cycle percentage (0-100)
        max_speed: Maximum duty cycle percentage (min_speed-100)
        cycle_period: Seconds to sleep between control cycles
        hysteresis: Offset in °C applied to breakpoint comparison
        max_step: Largest duty cycle change allowed per cycle
        min_temp_change: Parsed for compatibility, gates nothing
        sample_count: Raw reads averaged per cycle
        sample_interval: Seconds between raw reads
        sensor_fallback: Temperature used when the sensor yields nothing
        curve: (temperature, duty cycle) control points
    """
    bank_count: int = 2
    min_speed: int = 20
    max_speed: int = 100
    cycle_period: float = 10.0
    hysteresis: float = 2.0
    max_step: float = 5.0
    min_temp_change: float = 2.0
    sample_count: int = 5
    sample_interval: float = 1.0
    sensor_fallback: float = 0.0
    sensor_command: List[str] = field(default_factory=lambda: ["sensors"])
    sensor_pattern: str = DEFAULT_SENSOR_PATTERN
    fan_command: List[str] = field(default_factory=lambda: ["ipmitool", "raw"])
    protocol_group: Tuple[int, int] = (0x3a, 0x01)
    mode_byte: int = 0x01
    metrics_path: str = "/tmp/curvefan_metrics.txt"
    metrics_measurement: str = "fan"
    metrics_host: Optional[str] = None
    curve: List[Tuple[float, float]] = field(
        default_factory=lambda: sorted(DEFAULT_CURVE.items())
    )

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ConfigurationError: If any value is out of range
        """
        if self.bank_count < 1:
            raise ConfigurationError(f"Invalid bank_count {self.bank_count}, must be >= 1")
        if not 0 <= self.min_speed <= 100:
            raise ConfigurationError(f"Invalid min_speed {self.min_speed}%, must be 0-100")
        if not 0 <= self.max_speed <= 100:
            raise ConfigurationError(f"Invalid max_speed {self.max_speed}%, must be 0-100")
        if self.min_speed > self.max_speed:
            raise ConfigurationError(
                f"min_speed ({self.min_speed}%) cannot be greater than max_speed ({self.max_speed}%)"
            )
        if self.hysteresis < 0:
            raise ConfigurationError(f"Invalid hysteresis {self.hysteresis}, must be >= 0")
        if self.max_step < 0:
            raise ConfigurationError(f"Invalid max_step {self.max_step}, must be >= 0")
        if self.sample_count < 1:
            raise ConfigurationError(f"Invalid sample_count {self.sample_count}, must be >= 1")
        if self.sample_interval < 0:
            raise ConfigurationError(f"Invalid sample_interval {self.sample_interval}, must be >= 0")
        if self.cycle_period < 0:
            raise ConfigurationError(f"Invalid cycle_period {self.cycle_period}, must be >= 0")
        if len(self.protocol_group) != 2:
            raise ConfigurationError("protocol_group must be exactly two bytes")
        for value in list(self.protocol_group) + [self.mode_byte]:
            if not 0 <= value <= 0xff:
                raise ConfigurationError(f"Invalid byte value {value}, must be 0x00-0xff")
        if not self.sensor_command:
            raise ConfigurationError("sensor_command must not be empty")
        if not self.fan_command:
            raise ConfigurationError("fan command must not be empty")


def parse_curve(raw: CurveInput) -> List[Tuple[float, float]]:
    """Normalise curve configuration to a list of (temperature, duty) pairs.

    Accepts either a mapping of temperature to duty cycle or a list of
    two-element pairs, the latter being how YAML lists look once loaded.

    Raises:
        ConfigurationError: If an entry is not a numeric pair
    """
    if isinstance(raw, dict):
        items = list(raw.items())
    elif isinstance(raw, (list, tuple)):
        items = []
        for entry in raw:
            if not isinstance(entry, (list, tuple)) or len(entry) != 2:
                raise ConfigurationError(f"Invalid curve point {entry!r}, expected [temp, speed]")
            items.append((entry[0], entry[1]))
    else:
        raise ConfigurationError(f"Invalid curve definition: {raw!r}")

    points = []
    for temp, speed in items:
        try:
            points.append((float(temp), float(speed)))
        except (TypeError, ValueError):
            raise ConfigurationError(f"Non-numeric curve point ({temp!r}, {speed!r})")
    return points


def _to_int(value: Any, key: str) -> int:
    # 20.0 is fine, 20.7 and True are not
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid {key}: {value!r} is not an integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise ConfigurationError(f"Invalid {key}: {value!r} is not an integer")
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            raise ConfigurationError(f"Invalid {key}: {value!r} is not an integer")
    if not isinstance(value, int):
        raise ConfigurationError(f"Invalid {key}: {value!r} is not an integer")
    return value


def _to_byte(value: Any) -> int:
    # YAML gives ints for 0x3a but strings for "0x3a"
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError:
            raise ConfigurationError(f"Invalid byte value {value!r}")
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"Invalid byte value {value!r}")
    return value


def _to_argv(value: Any, name: str) -> List[str]:
    if isinstance(value, str):
        return value.split()
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    raise ConfigurationError(f"Invalid {name}: {value!r}")


def config_from_dict(data: Optional[Dict[str, Any]]) -> ControllerConfig:
    """Build a ControllerConfig from a loaded YAML document.

    Missing sections and keys fall back to the dataclass defaults.

    Raises:
        ConfigurationError: If a section has the wrong shape or a value is invalid
    """
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration root must be a mapping")

    sections = {}
    for name in ("fans", "temperature", "control", "metrics"):
        section = data.get(name) or {}
        if not isinstance(section, dict):
            raise ConfigurationError(f"Section '{name}' must be a mapping")
        sections[name] = section

    fans = sections["fans"]
    temperature = sections["temperature"]
    control = sections["control"]
    metrics = sections["metrics"]

    kwargs: Dict[str, Any] = {}
    try:
        if "bank_count" in fans:
            kwargs["bank_count"] = _to_int(fans["bank_count"], "fans.bank_count")
        if "min_speed" in fans:
            kwargs["min_speed"] = _to_int(fans["min_speed"], "fans.min_speed")
        if "max_speed" in fans:
            kwargs["max_speed"] = _to_int(fans["max_speed"], "fans.max_speed")
        if "command" in fans:
            kwargs["fan_command"] = _to_argv(fans["command"], "fans.command")
        if "protocol_group" in fans:
            kwargs["protocol_group"] = tuple(_to_byte(b) for b in fans["protocol_group"])
        if "mode_byte" in fans:
            kwargs["mode_byte"] = _to_byte(fans["mode_byte"])

        if "hysteresis" in temperature:
            kwargs["hysteresis"] = float(temperature["hysteresis"])
        if "min_temp_change" in temperature:
            kwargs["min_temp_change"] = float(temperature["min_temp_change"])
        if "sample_count" in temperature:
            kwargs["sample_count"] = _to_int(temperature["sample_count"], "temperature.sample_count")
        if "sample_interval" in temperature:
            kwargs["sample_interval"] = float(temperature["sample_interval"])
        if "sensor_fallback" in temperature:
            kwargs["sensor_fallback"] = float(temperature["sensor_fallback"])
        if "sensor_command" in temperature:
            kwargs["sensor_command"] = _to_argv(temperature["sensor_command"], "temperature.sensor_command")
        if "pattern" in temperature:
            kwargs["sensor_pattern"] = str(temperature["pattern"])

        if "cycle_period" in control:
            kwargs["cycle_period"] = float(control["cycle_period"])
        if "max_step" in control:
            kwargs["max_step"] = float(control["max_step"])

        if "path" in metrics:
            kwargs["metrics_path"] = str(metrics["path"])
        if "measurement" in metrics:
            kwargs["metrics_measurement"] = str(metrics["measurement"])
        if metrics.get("host"):
            kwargs["metrics_host"] = str(metrics["host"])
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid configuration value: {e}")

    if "curve" in data:
        kwargs["curve"] = parse_curve(data["curve"])

    return ControllerConfig(**kwargs)


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> ControllerConfig:
    """Load configuration from a YAML file.

    When the file does not exist the built-in defaults are used.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated ControllerConfig

    Raises:
        ConfigurationError: If the file cannot be parsed or is invalid
    """
    if not os.path.exists(config_path):
        logger.info(f"No configuration at {config_path}, using defaults")
        return ControllerConfig()

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read configuration {config_path}: {e}")

    config = config_from_dict(data)
    logger.info(f"Loaded configuration from {config_path}")
    return config
