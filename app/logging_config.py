"""
Logging configuration for the Funding Bank API.

Every module logs through `logging.getLogger(__name__)`, so all records
land under the "app" logger hierarchy. `setup_logging` attaches a single
stream handler to that logger, either with a plain text format for local
development or one JSON object per line for log shippers.

Never log plaintext passwords, JWTs, or full funding-source numbers; log
ids and last-four digits only.
"""

import json
import logging
from datetime import datetime, timezone

APP_LOGGER = "app"

PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """Render a record as a single-line JSON object."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO", json_output: bool = False) -> logging.Logger:
    """
    Configure the "app" logger.

    Safe to call more than once: existing handlers are replaced rather
    than stacked, so reloading the app doesn't duplicate every line.
    """
    logger = logging.getLogger(APP_LOGGER)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False

    return logger
