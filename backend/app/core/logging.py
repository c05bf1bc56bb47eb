"""Logging setup shared by the API and the workers."""
import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger once per process."""
    global _configured
    if _configured:
        return

    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=level_name, format=LOG_FORMAT)

    # SQLAlchemy engine logging is driven by DEBUG through create_engine(echo=...)
    logging.getLogger("sqlalchemy.engine").propagate = True
    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
