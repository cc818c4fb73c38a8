"""Process logging setup."""

import logging
import sys

from core.config import LOG_FORMAT, LOG_LEVEL

# Chatty transport loggers that drown out the export's own progress lines
NOISY_LOGGERS = ("azure", "httpx", "httpcore", "msal", "urllib3")


def configure_logging(level: str | None = None) -> None:
    """
    Send log records to stderr.

    stdout is reserved for the export itself when the output is "-".
    """
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format=LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
