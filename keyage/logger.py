"""
Logging
Configures the "keyage" logger for the command line.

Library modules only call logging.getLogger(__name__); nothing is printed
until the CLI installs a handler here.
"""

import logging
import sys

# Index = verbosity: quiet, default, -v, -vv, -vvv
_LEVELS = [logging.CRITICAL + 1, logging.ERROR, logging.WARNING, logging.INFO, logging.DEBUG]


def configure_logging(verbosity: int = 0, stream=None) -> logging.Logger:
    """
    Set up the "keyage" logger for command-line use.

    `verbosity` counts -v flags; -q passes -1 to silence logging entirely.
    Calling this again only adjusts the level.
    """
    level = _LEVELS[max(0, min(verbosity + 1, len(_LEVELS) - 1))]

    logger = logging.getLogger("keyage")
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        logger.addHandler(handler)
        logger.propagate = False

    return logger
