import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured = False


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """Configure root logging once per process.

    Writes to stdout and, when `log_file` is given, to that file as well.
    """
    global _configured
    if _configured:
        return
    level = getattr(logging, str(log_level).upper(), logging.INFO)
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=DATE_FORMAT, handlers=handlers)
    # asyncio is noisy at DEBUG
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
