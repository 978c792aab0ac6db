import os
import logging
from typing import Optional

VALID_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: Optional[str] = None) -> str:
    """
    Configure root logging from ``level`` or the LOG_LEVEL environment variable.

    Unknown levels fall back to INFO. Returns the level actually applied.
    """
    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    invalid = log_level not in VALID_LEVELS
    if invalid:
        requested, log_level = log_level, 'INFO'

    logging.basicConfig(level=getattr(logging, log_level), format=LOG_FORMAT)

    if invalid:
        logging.getLogger(__name__).warning(
            f"Invalid LOG_LEVEL '{requested}', using INFO instead. Valid levels: {', '.join(VALID_LEVELS)}"
        )
    return log_level


__all__ = [
    "configure_logging",
]
