from __future__ import annotations
import logging
import sys
from logging.handlers import RotatingFileHandler

from .config import get_settings

def setup_logging() -> None:
    """Configure root logging: stdout always, rotating file when LOG_FILE is set."""
    settings = get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if settings.log_file:
        try:
            file_handler = RotatingFileHandler(
                settings.log_file,
                maxBytes=10485760,  # 10MB
                backupCount=5,
            )
        except OSError:
            root.warning("Cannot open log file %s, logging to stdout only", settings.log_file)
        else:
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)

    # Silence noisy libraries
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
