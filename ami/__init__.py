"""AMI: versioned long-term memory for autonomous agents."""

import logging
import os
import sys

__version__ = "0.7.0"

# Configure logging to stderr (keep stdout clean for robot mode JSON)
_log_level = os.environ.get("AMI_LOG_LEVEL", "WARNING").upper()
logging.basicConfig(
    level=getattr(logging, _log_level, logging.WARNING),
    format="%(levelname)s: %(name)s: %(message)s",
    stream=sys.stderr,
)
