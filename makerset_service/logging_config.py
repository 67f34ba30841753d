"""
logging_config.py — Log Setup for the Checkout Service

`setup_logging()` is called once when the app module is imported; every
other module just asks for a logger by name. Records go to the log file and
to stdout, tagged with the process ID and the logger name so the cart,
checkout and backend-client lines can be told apart.

httpx and httpcore log each request at INFO; they are kept at WARNING so the
service's own `[Cart]` / `[Checkout]` lines stay readable.
"""

import logging
import sys

from .config import LOG_FILE


def setup_logging(log_file: str = LOG_FILE):
    """
    Installs the file and stdout handlers on the root logger at INFO.

    Args:
        log_file (str): Path of the log file (LOG_FILE, 'makerset_service.log' by default).
    """
    log_format = '%(asctime)s - %(levelname)s - [PID:%(process)d] - %(name)s - %(message)s'

    logging.basicConfig(
        level=logging.INFO,
        format=log_format,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stdout)
        ]
    )

    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name):
    """Logger for a module, e.g. `get_logger(__name__)`."""
    return logging.getLogger(name)
