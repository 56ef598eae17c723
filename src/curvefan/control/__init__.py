"""
Control package for curvefan

This package provides modules for fan speed control logic,
including fan curves, rate limiting and the control loop.
"""

from .curve import FanCurve, Segment, build_segments
from .limiter import limit_step
from .manager import ControlManager, ControllerState, LoopPhase

__all__ = [
    'FanCurve',
    'Segment',
    'build_segments',
    'limit_step',
    'ControlManager',
    'ControllerState',
    'LoopPhase'
]
