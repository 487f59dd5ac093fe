"""
core/logging.py -- Process-wide logging setup.

Called once by api/main.py and main.py. Every module gets its own named
logger (vrccms.<area>) via logging.getLogger; only this function touches
the root configuration.
"""

import logging

from core.config import get_settings

_LOG_FORMAT = "%(asctime)s %(levelname)-5s %(name)s %(message)s"
_configured = False


def configure_logging() -> None:
    """Configure root logging from LOG_LEVEL. Safe to call more than once."""
    global _configured
    if _configured:
        return
    level = getattr(logging, get_settings().log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    _configured = True
