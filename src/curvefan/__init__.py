"""curvefan - curve-based CPU fan control over IPMI"""

import logging
import sys

__version__ = "0.1.0"

# Configure root logger
logging.basicConfig(
    level=logging.INFO,
    stream=sys.stdout,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
