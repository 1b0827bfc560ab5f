"""
Logging setup for the daemon.

Everything goes through the root logger: stdout always, plus a rotating log
file when configured. Per-frame TX/RX lines from the protocol package have
their own level so they can be enabled without making the rest of the
daemon chatty.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler

from smc100cc_ctrl.config.models import LoggingConfig


LOG_FORMAT = "[%(asctime)s] %(levelname)s [%(name)s]: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

PROTOCOL_LOGGER = "smc100cc_ctrl.protocol"

# uvicorn installs its own handlers; route its records through ours instead
UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def _file_handler(config: LoggingConfig, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        config.file,
        maxBytes=config.max_file_mb * 1024 * 1024,
        backupCount=config.backup_count,
        encoding="utf-8"
    )
    handler.setFormatter(formatter)
    return handler


def setup_logging(config: LoggingConfig) -> None:
    """
    Configure the root logger from the logging section of config.json.

    Args:
        config: Logging configuration.
    """
    root = logging.getLogger()
    root.setLevel(config.level)
    root.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    root.addHandler(console)

    if config.file:
        try:
            root.addHandler(_file_handler(config, formatter))
        except OSError as e:
            root.error(f"Failed to open log file {config.file}: {e}")
        else:
            root.info(f"Logging to file: {config.file}")

    logging.getLogger(PROTOCOL_LOGGER).setLevel(config.protocol_level)

    for name in UVICORN_LOGGERS:
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.propagate = True

    root.info(f"Logging initialized at level {config.level} (protocol frames: {config.protocol_level})")
