"""
Flexible level filtering for update engine logging.

Supports pipe-separated level configuration such as ``"INFO|ERROR"``,
which enables exactly those levels rather than a threshold.
"""

import logging
from typing import Set

DEFAULT_LEVELS = "INFO|WARNING|ERROR|CRITICAL"


def parse_enabled_levels(level_config: str) -> Set[int]:
    """Parse pipe-separated levels into a set of logging constants."""
    enabled_levels = set()
    for level_name in (level_config or "").split("|"):
        level_name = level_name.strip().upper()
        level = logging.getLevelName(level_name)
        if isinstance(level, int):
            enabled_levels.add(level)

    if not enabled_levels:
        return {logging.INFO, logging.WARNING, logging.ERROR, logging.CRITICAL}
    return enabled_levels


class LevelSetFilter(logging.Filter):
    """
    Handler filter that passes only the configured levels.

    Examples:
    - "DEBUG" - Only debug messages
    - "INFO|ERROR" - Only info and error messages
    - "WARNING|ERROR|CRITICAL" - Only warnings, errors, and critical messages
    """

    def __init__(self, level_config: str = DEFAULT_LEVELS):
        super().__init__()
        self.enabled_levels = parse_enabled_levels(level_config)

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno in self.enabled_levels

    @property
    def lowest_level(self) -> int:
        return min(self.enabled_levels)
