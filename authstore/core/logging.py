"""
Logging setup for processes embedding the authentication store.
"""

import logging
import sys
from typing import Iterable

_AWS_LOGGERS = ("boto3", "botocore", "urllib3")


def configure_logging(level: str = "INFO", *, quiet: Iterable[str] = _AWS_LOGGERS) -> None:
    """Configure root logging; AWS SDK chatter is capped at WARNING."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["configure_logging"]
