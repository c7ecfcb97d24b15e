"""Logging bootstrap shared by the server entry point and scripts."""

import logging
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the root logger once for the process.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional path; when set, records are also appended there

    Returns:
        The ``DriveConnector`` logger
    """
    handlers: list = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(os.path.abspath(log_file), mode="a"))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    # httpx logs every request line at INFO, including signed download URLs.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return logging.getLogger("DriveConnector")
