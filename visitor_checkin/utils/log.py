# =======================================================================================
# visitor_checkin/utils/log.py - Logging setup
# =======================================================================================
import logging
from typing import Optional
from ..config import config

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the root logger once; DEBUG when API_DEBUG is on."""
    if level is None:
        level = "DEBUG" if config.API_DEBUG else config.LOG_LEVEL
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("visitor_checkin").setLevel(level)
