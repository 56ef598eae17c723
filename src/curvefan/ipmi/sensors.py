"""
Temperature Sensor Module

This module reads CPU package temperatures from an external sensor command
and reduces repeated readings to a single averaged value per control cycle.
"""

import logging
import time
import re
import subprocess
from typing import List, Optional, Sequence
from dataclasses import dataclass
from statistics import mean

from ..config import CurvefanError, ControllerConfig, DEFAULT_SENSOR_PATTERN

logger = logging.getLogger(__name__)


class SensorError(CurvefanError):
    """Raised when the sensor command cannot produce a reading"""
    pass


class SensorParseError(SensorError):
    """Raised when sensor output contains no numeric temperature"""
    pass


@dataclass
class SensorReading:
    """A single temperature reading.

    Attributes:
        value: Temperature in °C (maximum across all matched packages)
        timestamp: Unix timestamp when reading was taken
        fallback: True if value came from the fallback temperature
    """
    value: float
    timestamp: float
    fallback: bool = False

    @property
    def age(self) -> float:
        return time.time() - self.timestamp


class TemperatureSource:
    """Base class for anything that can report a CPU temperature."""

    def read(self) -> float:
        """Return the current temperature in °C.

        Raises:
            SensorError: If no reading is available
        """
        raise NotImplementedError


class CommandTemperatureSource(TemperatureSource):
    """Reads package temperatures from a command such as lm-sensors' ``sensors``.

    Every match of the pattern in the command output is a candidate reading;
    the hottest one wins. Lines that do not match are ignored.

    Example output:
        coretemp-isa-0000
        Adapter: ISA adapter
        Package id 0:  +62.0°C  (high = +80.0°C, crit = +100.0°C)
        Core 0:        +58.0°C  (high = +80.0°C, crit = +100.0°C)
    """

    def __init__(self, command: Sequence[str] = ("sensors",),
                 pattern: str = DEFAULT_SENSOR_PATTERN):
        self.command = list(command)
        self.pattern = re.compile(pattern)

    def parse(self, output: str) -> float:
        """Extract the maximum temperature from command output.

        Raises:
            SensorParseError: If no numeric temperature matched
        """
        values = []
        for match in self.pattern.finditer(output):
            try:
                values.append(float(match.group(1)))
            except (ValueError, IndexError):
                logger.debug(f"Could not parse value from: {match.group(0)}")

        if not values:
            raise SensorParseError("No package temperature found in sensor output")

        logger.debug(f"Package temperatures: {values}")
        return max(values)

    def read(self) -> float:
        """Run the command and parse its output.

        lm-sensors exits non-zero when a single subfeature fails, so output
        from a failed run is still parsed and only rejected if it holds no
        package temperature.
        """
        try:
            result = subprocess.run(
                self.command,
                capture_output=True,
                text=True,
                check=True
            )
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            logger.warning(f"Sensor command exited with {e.returncode}: {stderr}")
            try:
                return self.parse(e.stdout or "")
            except SensorParseError:
                raise SensorError(f"Sensor command failed with {e.returncode}: {stderr}")
        except OSError as e:
            raise SensorError(f"Failed to run {self.command[0]}: {e}")

        return self.parse(result.stdout)


class TemperatureSampler:
    """Produces one representative temperature per control cycle.

    A failed read degrades to ``fallback`` (0°C unless configured otherwise).
    That treats a missing sensor as a cold CPU, which lets fans spin down
    during a real outage, so every fallback is logged as a warning.
    """

    def __init__(self, source: TemperatureSource, fallback: float = 0.0, sleep=time.sleep):
        """Initialize sampler

        Args:
            source: Temperature source to read from
            fallback: Temperature used when the source fails
            sleep: Sleep function used between samples
        """
        self.source = source
        self.fallback = fallback
        self._sleep = sleep
        self.last_reading: Optional[SensorReading] = None

    @classmethod
    def from_config(cls, config: ControllerConfig) -> "TemperatureSampler":
        source = CommandTemperatureSource(config.sensor_command, config.sensor_pattern)
        return cls(source, fallback=config.sensor_fallback)

    def read_once(self) -> float:
        """Take one reading, falling back on sensor errors.

        Returns:
            Temperature in °C
        """
        try:
            value = self.source.read()
            self.last_reading = SensorReading(value=value, timestamp=time.time())
        except SensorError as e:
            logger.warning(f"Sensor read failed, using fallback {self.fallback}°C: {e}")
            self.last_reading = SensorReading(value=self.fallback, timestamp=time.time(), fallback=True)
        return self.last_reading.value

    def read_averaged(self, count: int, interval: float) -> float:
        """Average several readings taken interval seconds apart.

        Args:
            count: Number of readings (>= 1)
            interval: Seconds to wait between readings

        Returns:
            Arithmetic mean in °C

        Raises:
            ValueError: If count is less than 1
        """
        if count < 1:
            raise ValueError(f"Sample count must be >= 1, got {count}")

        readings: List[float] = []
        for i in range(count):
            if i > 0 and interval > 0:
                self._sleep(interval)
            readings.append(self.read_once())

        average = mean(readings)
        logger.debug(f"Samples {readings} -> average {average:.2f}°C")
        return average
