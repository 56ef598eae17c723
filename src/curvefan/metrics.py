"""
Metrics Output Module

Writes the current duty cycle to a file polled by an external monitoring
agent, in a line-protocol-like format:

    fan,host=server01 speed_percent=44
    fan,host=server01 speed_raw=2c
"""

import logging
import socket
from typing import Optional

from .config import CurvefanError, ControllerConfig

logger = logging.getLogger(__name__)


class MetricsWriteError(CurvefanError):
    """Raised when the metrics file cannot be written"""
    pass


class MetricsWriter:
    """Truncates and rewrites the metrics file every cycle"""

    def __init__(self, path: str, measurement: str = "fan", host: Optional[str] = None):
        self.path = path
        self.measurement = measurement
        self.host = host or socket.gethostname()

    @classmethod
    def from_config(cls, config: ControllerConfig) -> "MetricsWriter":
        return cls(config.metrics_path, config.metrics_measurement, config.metrics_host)

    def format(self, speed_percent: int) -> str:
        prefix = f"{self.measurement},host={self.host}"
        return (
            f"{prefix} speed_percent={speed_percent}\n"
            f"{prefix} speed_raw={speed_percent:x}\n"
        )

    def write(self, speed_percent: float) -> None:
        """Write the duty cycle record.

        Raises:
            MetricsWriteError: If the file cannot be written
        """
        content = self.format(int(speed_percent))
        try:
            with open(self.path, "w") as f:
                f.write(content)
        except OSError as e:
            raise MetricsWriteError(f"Failed to write metrics to {self.path}: {e}")
        logger.debug(f"Metrics written to {self.path}")
