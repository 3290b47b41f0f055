"""Process-wide logging setup."""

import logging

from tradeguard.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def setup_logging(level: str | None = None):
    """Configure the root logger. Safe to call more than once."""
    level_name = (level or settings.log_level).upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT, force=True)

    # SQL echo and HTTP client chatter stay quiet unless explicitly debugging
    for noisy in ("sqlalchemy.engine", "httpx", "urllib3", "apscheduler.executors"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
