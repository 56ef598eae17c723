"""
IPMI Command Execution Module

This module provides a wrapper around ipmitool for sending raw fan speed
commands, and the FanActuator that drives every fan bank with them.
"""

import subprocess
import logging
import time
from typing import List, Optional, Sequence, Tuple

from ..config import CurvefanError, ControllerConfig

logger = logging.getLogger(__name__)


class IPMIError(CurvefanError):
    """Base exception for IPMI-related errors"""
    pass


class ActuationDispatchError(IPMIError):
    """Raised when the fan command cannot be run or exits non-zero"""
    pass


def format_byte(value: int) -> str:
    """Format a byte the way ipmitool raw expects it (e.g. 0x2c)."""
    if not 0 <= value <= 0xff:
        raise IPMIError(f"Byte value out of range: {value}")
    return f"0x{value:02x}"


class IPMICommander:
    """Builds and executes raw fan speed commands"""

    def __init__(self, command: Sequence[str] = ("ipmitool", "raw"),
                 protocol_group: Tuple[int, int] = (0x3a, 0x01),
                 mode_byte: int = 0x01, retries: int = 2, retry_delay: float = 0.5):
        """Initialize commander

        Args:
            command: Base argv, e.g. ["ipmitool", "raw"]
            protocol_group: Fixed two-byte group prefix of the fan command
            mode_byte: Fixed trailing byte of the fan command
            retries: Attempts per command when the device reports busy
            retry_delay: Delay between retries in seconds
        """
        self.command = list(command)
        self.protocol_group = tuple(protocol_group)
        self.mode_byte = mode_byte
        self.retries = retries
        self.retry_delay = retry_delay

    @classmethod
    def from_config(cls, config: ControllerConfig) -> "IPMICommander":
        return cls(
            command=config.fan_command,
            protocol_group=config.protocol_group,
            mode_byte=config.mode_byte,
        )

    def build_speed_command(self, bank: int, speed_percent: int) -> List[str]:
        """Build argv for setting one bank's duty cycle.

        Args:
            bank: 1-based fan bank index
            speed_percent: Duty cycle percentage (0-100)

        Returns:
            Full argv list

        Raises:
            ValueError: If bank or speed is out of range

        Examples:
            >>> IPMICommander().build_speed_command(1, 44)
            ['ipmitool', 'raw', '0x3a', '0x01', '0x01', '0x2c', '0x01']
        """
        if bank < 1:
            raise ValueError(f"Fan bank must be >= 1, got {bank}")
        if not 0 <= speed_percent <= 100:
            raise ValueError("Fan speed must be between 0 and 100")

        params = [*self.protocol_group, bank, speed_percent, self.mode_byte]
        return self.command + [format_byte(p) for p in params]

    def _execute_command(self, argv: List[str]) -> str:
        """Execute a command and return its output

        Raises:
            ActuationDispatchError: If the command cannot be run or keeps failing
        """
        last_error = None
        for attempt in range(self.retries):
            if attempt > 0:
                time.sleep(self.retry_delay)
                logger.debug(f"Retrying fan command (attempt {attempt + 1}/{self.retries})")

            try:
                result = subprocess.run(
                    argv,
                    capture_output=True,
                    text=True,
                    check=True
                )
                return result.stdout.strip()
            except subprocess.CalledProcessError as e:
                last_error = e
                if e.stderr and "Device or resource busy" in e.stderr:
                    logger.debug(f"IPMI device busy, retrying... ({attempt + 1}/{self.retries})")
                    continue
                raise ActuationDispatchError(
                    f"Command {' '.join(argv)} exited with {e.returncode}: {(e.stderr or '').strip()}"
                )
            except OSError as e:
                raise ActuationDispatchError(f"Failed to run {argv[0]}: {e}")

        raise ActuationDispatchError(f"Command failed after {self.retries} attempts: {last_error}")

    def set_bank_speed(self, bank: int, speed_percent: int) -> None:
        """Set fan speed for one bank.

        Args:
            bank: 1-based fan bank index
            speed_percent: Duty cycle percentage (0-100)

        Raises:
            ValueError: If parameters are invalid
            ActuationDispatchError: If the command fails
        """
        argv = self.build_speed_command(bank, speed_percent)
        logger.debug(f"Dispatching: {' '.join(argv)}")
        self._execute_command(argv)
        logger.debug(f"Bank {bank} fan speed set to {speed_percent}%")


class FanActuator:
    """Applies a duty cycle to every fan bank.

    Dispatch failures are logged and otherwise ignored. The hardware's own
    thermal protection is the backstop if a write silently fails.
    """

    def __init__(self, commander: IPMICommander, min_speed: int = 0, max_speed: int = 100):
        self.commander = commander
        self.min_speed = min_speed
        self.max_speed = max_speed
        self.last_failure: Optional[Exception] = None

    def apply(self, speed_percent: float, bank_count: int) -> int:
        """Clamp and dispatch speed to banks 1..bank_count.

        Args:
            speed_percent: Duty cycle percentage
            bank_count: Number of fan banks

        Returns:
            Number of banks dispatched without error
        """
        speed = int(round(max(self.min_speed, min(self.max_speed, speed_percent))))
        if speed != speed_percent:
            logger.debug(f"Clamped {speed_percent}% to {speed}%")

        succeeded = 0
        for bank in range(1, bank_count + 1):
            try:
                self.commander.set_bank_speed(bank, speed)
                succeeded += 1
            except ActuationDispatchError as e:
                self.last_failure = e
                logger.warning(f"Failed to set bank {bank} to {speed}%: {e}")

        logger.info(f"Fan speed set to {speed}% on {succeeded}/{bank_count} banks")
        return succeeded
