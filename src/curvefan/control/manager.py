"""
Fan Control Manager Module

This module provides the main control loop logic for managing
fan speeds based on temperature readings.
"""

import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional

from ..config import ControllerConfig, CurvefanError
from ..ipmi import IPMICommander, FanActuator, TemperatureSampler
from ..metrics import MetricsWriter, MetricsWriteError
from .curve import FanCurve, clamp, round_half_up
from .limiter import limit_step

logger = logging.getLogger(__name__)


class LoopPhase(Enum):
    """Control loop phases, visited in order every cycle"""
    IDLE = "idle"
    SAMPLING = "sampling"
    SELECTING = "selecting"
    LIMITING = "limiting"
    ACTUATING = "actuating"
    REPORTING = "reporting"
    SLEEPING = "sleeping"


@dataclass(frozen=True)
class ControllerState:
    """State carried from one control cycle to the next.

    Attributes:
        last_applied_speed: Duty cycle most recently dispatched
        last_temperature: Averaged temperature seen on the last cycle
    """
    last_applied_speed: int
    last_temperature: float = 0.0


class ControlManager:
    """Runs the sample, select, limit, actuate, report cycle"""

    def __init__(self, config: ControllerConfig,
                 sampler: Optional[TemperatureSampler] = None,
                 actuator: Optional[FanActuator] = None,
                 metrics: Optional[MetricsWriter] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """Initialize control manager

        Args:
            config: Validated controller configuration
            sampler: Temperature sampler (built from config if None)
            actuator: Fan actuator (built from config if None)
            metrics: Metrics writer (built from config if None)
            sleep: Sleep function used between cycles

        Raises:
            ConfigurationError: If the curve cannot be built
        """
        self.config = config
        self.curve = FanCurve(
            config.curve,
            hysteresis=config.hysteresis,
            min_speed=config.min_speed,
            max_speed=config.max_speed,
        )
        self.sampler = sampler or TemperatureSampler.from_config(config)
        self.actuator = actuator or FanActuator(
            IPMICommander.from_config(config),
            min_speed=config.min_speed,
            max_speed=config.max_speed,
        )
        self.metrics = metrics or MetricsWriter.from_config(config)
        self._sleep = sleep

        self.state = self.initial_state()
        self.phase = LoopPhase.IDLE
        self.cycles = 0
        self._running = False

        if config.min_temp_change:
            logger.debug(f"min_temp_change={config.min_temp_change} is accepted but not used")
        logger.info(
            f"Control manager initialized: {len(self.curve.segments)} segments, "
            f"{config.bank_count} banks, speed {config.min_speed}-{config.max_speed}%"
        )

    def initial_state(self) -> ControllerState:
        return ControllerState(last_applied_speed=self.config.min_speed, last_temperature=0.0)

    def _to_duty(self, speed: float, last_applied: float) -> int:
        """Convert a bounded speed to the integer duty cycle to dispatch.

        Rounds half away from zero, but steps one back toward last_applied
        when rounding would move further than max_step.
        """
        duty = round_half_up(speed)
        if abs(duty - last_applied) > self.config.max_step:
            duty += 1 if duty < last_applied else -1
        return int(clamp(duty, self.config.min_speed, self.config.max_speed))

    def run_cycle(self, state: ControllerState) -> ControllerState:
        """Run one control cycle.

        Args:
            state: State left by the previous cycle

        Returns:
            State for the next cycle
        """
        config = self.config

        self.phase = LoopPhase.SAMPLING
        temperature = self.sampler.read_averaged(config.sample_count, config.sample_interval)

        self.phase = LoopPhase.SELECTING
        desired = self.curve.get_speed(temperature)

        self.phase = LoopPhase.LIMITING
        bounded = limit_step(desired, state.last_applied_speed, config.max_step)
        bounded = clamp(bounded, config.min_speed, config.max_speed)
        bounded = self._to_duty(bounded, state.last_applied_speed)
        logger.info(f"Temperature {temperature:.1f}°C -> target {desired}%, applying {bounded}%")

        self.phase = LoopPhase.ACTUATING
        if bounded != state.last_applied_speed:
            self.actuator.apply(bounded, config.bank_count)
        else:
            logger.debug(f"Fan speed unchanged at {bounded}%, skipping dispatch")
        new_state = replace(state, last_applied_speed=bounded, last_temperature=temperature)

        self.phase = LoopPhase.REPORTING
        try:
            self.metrics.write(new_state.last_applied_speed)
        except MetricsWriteError as e:
            logger.error(f"Metrics lost: {e}")

        return new_state

    def run(self, max_cycles: Optional[int] = None) -> ControllerState:
        """Run the control loop.

        Runs until stop() is called or max_cycles have completed; with no
        limit it runs until the process is killed.

        Returns:
            Final controller state
        """
        self._running = True
        completed = 0
        logger.info("Control loop started")
        while self._running:
            try:
                self.state = self.run_cycle(self.state)
            except CurvefanError as e:
                logger.error(f"Control cycle failed: {e}")
            except Exception as e:
                logger.exception(f"Control loop error: {e}")
            completed += 1
            self.cycles += 1

            if max_cycles is not None and completed >= max_cycles:
                break
            if not self._running:
                break

            self.phase = LoopPhase.SLEEPING
            self._sleep(self.config.cycle_period)

        self._running = False
        self.phase = LoopPhase.IDLE
        logger.info("Control loop stopped")
        return self.state

    def stop(self) -> None:
        """Ask the loop to exit once the current cycle or sleep ends"""
        self._running = False

    def get_status(self) -> Dict[str, Any]:
        """Get current control status

        Returns:
            Dictionary with current status information
        """
        return {
            "running": self._running,
            "phase": self.phase.value,
            "cycles": self.cycles,
            "temperature": self.state.last_temperature,
            "fan_speed": self.state.last_applied_speed,
        }
