# os_autopilot/utils/logger.py
import logging
import os
import sys

# Package logger; every module logs through a child of it
log = logging.getLogger("os_autopilot")
log.setLevel(os.getenv("OS_AUTOPILOT_LOG_LEVEL", "DEBUG").upper())

# Console handler
ch = logging.StreamHandler(sys.stdout)
ch.setLevel(logging.DEBUG)

# Formatter
formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s")
ch.setFormatter(formatter)

log.addHandler(ch)


def set_level(level: str) -> None:
    """Change the verbosity of the whole package (used by the CLI)."""
    log.setLevel(level.upper())
