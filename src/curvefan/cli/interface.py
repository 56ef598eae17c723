"""
Command Line Interface Module

This module provides the command-line entry point that loads the
configuration and runs the fan control loop until the process is stopped.
"""

import argparse
import logging
import signal
import sys
from typing import List, Optional

from ..config import DEFAULT_CONFIG_PATH, ConfigurationError, load_config
from ..control import ControlManager

logger = logging.getLogger(__name__)


class CLI:
    """Command-line interface handler"""

    def __init__(self):
        """Initialize CLI handler"""
        self.parser = self._create_parser()
        self.manager: Optional[ControlManager] = None

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create command-line argument parser

        Returns:
            Configured argument parser
        """
        parser = argparse.ArgumentParser(
            description="curvefan - curve-based CPU fan control"
        )

        parser.add_argument(
            "-c", "--config",
            help="Path to configuration file",
            default=DEFAULT_CONFIG_PATH
        )

        parser.add_argument(
            "--debug",
            action="store_true",
            help="Enable debug logging"
        )

        return parser

    def _handle_signal(self, signum, frame) -> None:
        if self.manager:
            logger.info(
                f"Received signal {signum}, stopping once the current cycle or "
                f"sleep ends (up to {self.manager.config.cycle_period}s)"
            )
            self.manager.stop()
        else:
            logger.info(f"Received signal {signum}")

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Run the CLI interface

        Returns:
            Process exit status
        """
        args = self.parser.parse_args(argv)

        if args.debug:
            logging.getLogger("curvefan").setLevel(logging.DEBUG)

        try:
            config = load_config(args.config)
            self.manager = ControlManager(config)
        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            return 1

        signal.signal(signal.SIGTERM, self._handle_signal)

        try:
            self.manager.run()
        except KeyboardInterrupt:
            print("\nExiting...")

        return 0


def main() -> None:
    """Main entry point"""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
