"""Console logging shared by the scanner and analysis command-line tools.

Normal mode prints progress messages bare and prefixes warnings and errors
with a timestamp and level. Verbose mode logs everything, including DEBUG
output from the scan loop, with timestamps and logger names.
"""

import logging
from typing import Optional

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ConsoleFormatter(logging.Formatter):
    """Print INFO messages bare and everything else with time and level."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if record.levelno == logging.INFO:
            return message
        return f"{self.formatTime(record, self.datefmt)} - {record.levelname} - {message}"


class _ConsoleHandler(logging.StreamHandler):
    """Marker type so repeated setup replaces the handler instead of stacking."""


def setup_logging(verbose: bool = False, logger: Optional[logging.Logger] = None) -> None:
    """Configure console logging for a command-line run.

    Calling it again (e.g. several CLI invocations in one process) replaces
    the previously installed console handler.

    Args:
        verbose: If True, log DEBUG and above with timestamps and logger
                 names. If False, log INFO bare and WARNING/ERROR with
                 timestamps.
        logger: Logger to configure. Defaults to the root logger.
    """
    logger = logger or logging.getLogger()
    for handler in [h for h in logger.handlers if isinstance(h, _ConsoleHandler)]:
        logger.removeHandler(handler)

    handler = _ConsoleHandler()
    if verbose:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(levelname)s - %(name)s - %(message)s", datefmt=DATE_FORMAT,
        ))
        logger.setLevel(logging.DEBUG)
    else:
        handler.setFormatter(ConsoleFormatter(datefmt=DATE_FORMAT))
        logger.setLevel(logging.INFO)
    logger.addHandler(handler)
