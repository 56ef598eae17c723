"""
Hardware Access Package for curvefan

This package wraps the external commands curvefan depends on: a sensor
command for CPU package temperatures and ipmitool for fan duty cycles.

Key Components:
- IPMICommander: Builds and runs raw fan speed commands
- FanActuator: Clamps a duty cycle and dispatches it to every fan bank
- CommandTemperatureSource: Parses package temperatures from sensor output
- TemperatureSampler: Averages several readings into one per cycle

Example Usage:
    >>> from curvefan.ipmi import IPMICommander, FanActuator
    >>> actuator = FanActuator(IPMICommander(), min_speed=20, max_speed=100)
    >>> actuator.apply(44, bank_count=2)

Note:
    This package requires:
    - ipmitool for fan control
    - lm-sensors (or another command printing package temperatures)
"""

from .commander import IPMICommander, FanActuator, IPMIError, ActuationDispatchError
from .sensors import (
    TemperatureSource,
    CommandTemperatureSource,
    TemperatureSampler,
    SensorReading,
    SensorError,
    SensorParseError,
)

__all__ = [
    'IPMICommander',
    'FanActuator',
    'IPMIError',
    'ActuationDispatchError',
    'TemperatureSource',
    'CommandTemperatureSource',
    'TemperatureSampler',
    'SensorReading',
    'SensorError',
    'SensorParseError',
]
