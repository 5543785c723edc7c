"""
Process-wide logging setup for the API and the operator scripts.

Everything logs through the root logger with one format.  Access lines
come from ``enigma_api.access`` (see ``middleware.access_log_middleware``),
so uvicorn's own access logger is turned down to avoid printing every
request twice.
"""

import logging
from pathlib import Path
from typing import Optional

ACCESS_LOGGER_NAME = "enigma_api.access"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO", logfile: Optional[str] = None) -> None:
    """Attach console (and optional file) handlers to the root logger.

    Does nothing when the root logger already has handlers, e.g. under
    pytest or when ``create_app`` runs twice in one process.  Unknown
    level names fall back to ``INFO``.
    """
    root = logging.getLogger()
    if root.handlers:
        return

    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    handlers = [logging.StreamHandler()]
    if logfile:
        handlers.append(logging.FileHandler(Path(logfile).resolve(), encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
