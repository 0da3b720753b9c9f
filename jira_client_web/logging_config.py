"""
Logging setup for the client web app: one stdout handler, one line per record.
"""
import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger. httpx logs every request URL at INFO, so keep it at WARNING."""
    level_value = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=level_value, format=LOG_FORMAT, stream=sys.stdout)
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(max(level_value, logging.WARNING))
