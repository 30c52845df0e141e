# carebook/core/logging_setup.py
import logging
import sys

from carebook.core.config import settings


def setup_logging(level: str | None = None) -> None:
    """Configure root logging once for the API process and the reminder worker."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # SQL echo is controlled by DB_ECHO, keep the engine logger quiet otherwise
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
