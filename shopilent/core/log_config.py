import logging

from shopilent.core.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = LOG_LEVEL) -> None:
    """Configures root logging once per process (API server or standalone worker)."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
