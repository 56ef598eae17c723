"""Fan curve implementations."""

from typing import List, Tuple, Dict, Optional, Union
from dataclasses import dataclass
import math
import logging

from ..config import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Segment:
    """Linear rule between two consecutive control points.

    Attributes:
        lower: Temperature where the segment starts applying
        upper: Temperature of the next control point
        slope: Duty cycle change per °C
        intercept: Duty cycle at 0°C
    """
    lower: float
    upper: float
    slope: float
    intercept: float

    def evaluate(self, temp: float) -> float:
        return self.slope * temp + self.intercept


def build_segments(points: Union[Dict[float, float], List[Tuple[float, float]]]) -> List[Segment]:
    """Derive linear segments from control points.

    Args:
        points: Mapping or list of (temperature, duty cycle) pairs

    Returns:
        Segments ordered by ascending temperature, one per adjacent pair

    Raises:
        ConfigurationError: If fewer than two points or a duplicate temperature
    """
    items = list(points.items()) if isinstance(points, dict) else list(points)
    if len(items) < 2:
        raise ConfigurationError(f"Must provide at least two curve points, got {len(items)}")

    # Sort points by temperature
    try:
        items = sorted((float(t), float(d)) for t, d in items)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Non-numeric curve point: {e}")

    temps = set()
    for temp, _ in items:
        if temp in temps:
            raise ConfigurationError(f"Duplicate temperature {temp}°C")
        temps.add(temp)

    segments = []
    for (t0, d0), (t1, d1) in zip(items, items[1:]):
        slope = (d1 - d0) / (t1 - t0)
        intercept = d1 - slope * t1
        segments.append(Segment(lower=t0, upper=t1, slope=slope, intercept=intercept))
        logger.debug(f"Segment {t0}°C-{t1}°C: slope {slope:.3f}, intercept {intercept:.3f}")

    return segments


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    if value < 0:
        return -math.floor(-value + 0.5)
    return math.floor(value + 0.5)


def clamp(value: float, min_speed: float, max_speed: float) -> float:
    return max(min_speed, min(max_speed, value))


class FanCurve:
    """Piecewise-linear fan curve with a flat hysteresis offset.

    Segment selection scans breakpoints from highest to lowest and picks the
    first one with ``temp >= breakpoint - hysteresis``. The offset is the same
    whether the temperature is rising or falling, so a temperature hovering
    within ``hysteresis`` of a breakpoint still follows that breakpoint's
    segment.
    """

    def __init__(self, points: Union[Dict[float, float], List[Tuple[float, float]]],
                 hysteresis: float = 0.0, min_speed: float = 0, max_speed: float = 100):
        """Initialize with temperature/speed points.

        Args:
            points: (temperature, speed) control points
            hysteresis: Offset in °C subtracted from each breakpoint
            min_speed: Minimum fan speed percentage (0-100)
            max_speed: Maximum fan speed percentage (0-100)
        """
        # Validate speed limits
        if not 0 <= min_speed <= 100:
            raise ConfigurationError(f"Invalid min_speed {min_speed}%, must be 0-100")
        if not 0 <= max_speed <= 100:
            raise ConfigurationError(f"Invalid max_speed {max_speed}%, must be 0-100")
        if min_speed > max_speed:
            raise ConfigurationError(f"min_speed ({min_speed}%) cannot be greater than max_speed ({max_speed}%)")
        if hysteresis < 0:
            raise ConfigurationError(f"Invalid hysteresis {hysteresis}, must be >= 0")

        self.segments = build_segments(points)
        self.hysteresis = hysteresis
        self.min_speed = min_speed
        self.max_speed = max_speed

    def select_segment(self, temp: float) -> Optional[Segment]:
        """Return the segment that applies at temp, or None below the curve."""
        for segment in reversed(self.segments):
            if temp >= segment.lower - self.hysteresis:
                return segment
        return None

    def get_speed(self, temp: float) -> int:
        """Get fan speed for temperature.

        Args:
            temp: Averaged temperature in Celsius

        Returns:
            Fan speed percentage clamped to [min_speed, max_speed]
        """
        segment = self.select_segment(temp)
        if segment is None:
            logger.debug(f"{temp:.1f}°C below curve, using minimum {self.min_speed}%")
            return int(self.min_speed)

        speed = round_half_up(segment.evaluate(temp))
        return int(clamp(speed, self.min_speed, self.max_speed))
