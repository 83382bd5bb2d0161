"""
UTC timestamp logging for the update engine.

Provides a formatter that prefixes every entry with the record's creation
time in UTC, and ``setup_logging`` which wires handlers from configuration.
"""

import datetime
import logging
import os
from typing import Optional

from src.update_engine.utils.verbosity_logger import LevelSetFilter

DEFAULT_FORMAT = "%(levelname)s: %(name)s: %(message)s"


class UTCTimestampFormatter(logging.Formatter):
    """
    Formatter that adds UTC timestamps in square brackets.

    Format: [YYYY-MM-DD HH:MM:SS.sss UTC] LEVEL: message
    """

    def format(self, record):
        created = datetime.datetime.fromtimestamp(
            record.created, tz=datetime.timezone.utc
        )
        timestamp = created.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        return f"[{timestamp} UTC] {super().format(record)}"


def setup_logging(config, log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the ``src.update_engine`` logger from a ConfigManager.

    Output goes to the configured log file when one is set, and to the
    console when UPDATE_ENGINE_LOG_CONSOLE is set or no file is configured.
    """
    level_filter = LevelSetFilter(config.get_log_level())
    formatter = UTCTimestampFormatter(config.get_log_format() or DEFAULT_FORMAT)

    engine_logger = logging.getLogger("src.update_engine")
    for handler in engine_logger.handlers[:]:
        engine_logger.removeHandler(handler)
    engine_logger.setLevel(level_filter.lowest_level)

    log_file = log_file or config.get_log_file()
    handlers = []
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    if not log_file or os.environ.get("UPDATE_ENGINE_LOG_CONSOLE", "").lower() in (
        "1",
        "true",
        "yes",
    ):
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(level_filter)
        engine_logger.addHandler(handler)

    return engine_logger
