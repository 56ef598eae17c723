"""
Performance Tests for curvefan

These tests verify the control loop stays cheap and does not grow
over a long run.
"""

import gc
import time
import psutil
import pytest
from unittest.mock import Mock

from curvefan.config import ControllerConfig
from curvefan.control.manager import ControlManager
from curvefan.ipmi import FanActuator, TemperatureSampler, TemperatureSource
from curvefan.metrics import MetricsWriter


class SweepSource(TemperatureSource):
    """Temperature source sweeping 30-90°C"""

    def __init__(self):
        self.count = 0

    def read(self) -> float:
        self.count += 1
        return 30.0 + (self.count % 61)

@pytest.fixture
def manager(tmp_path):
    """Create a manager with an in-process sensor and mocked actuator"""
    config = ControllerConfig(sample_count=2, sample_interval=0, cycle_period=0,
                              metrics_path=str(tmp_path / "metrics.txt"),
                              metrics_host="perf")
    sampler = TemperatureSampler(SweepSource(), sleep=Mock())
    return ControlManager(config, sampler=sampler,
                          actuator=Mock(spec=FanActuator),
                          metrics=MetricsWriter.from_config(config),
                          sleep=Mock())

class TestResponseTime:
    """Test control cycle response times"""

    def test_cycle_time(self, manager):
        """Test a cycle without hardware waits completes quickly"""
        start_time = time.time()
        manager.run(max_cycles=100)
        elapsed = time.time() - start_time

        # 100 cycles within one second
        assert elapsed < 1.0

class TestResourceUsage:
    """Test resource usage"""

    def test_memory_usage(self, manager):
        """Test memory does not grow across many cycles"""
        process = psutil.Process()
        manager.run(max_cycles=200)
        gc.collect()
        baseline = process.memory_info().rss

        manager.run(max_cycles=2000)
        gc.collect()
        growth = process.memory_info().rss - baseline

        # Less than 5MB growth
        assert growth < 5 * 1024 * 1024

    def test_speed_stays_in_range(self, manager):
        """Test applied speed stays within limits over a temperature sweep"""
        state = manager.state
        for _ in range(500):
            previous = state.last_applied_speed
            state = manager.run_cycle(state)
            assert manager.config.min_speed <= state.last_applied_speed <= manager.config.max_speed
            assert abs(state.last_applied_speed - previous) <= manager.config.max_step
