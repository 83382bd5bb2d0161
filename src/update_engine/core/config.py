"""
Configuration management for the update engine.
Reads YAML configuration files and provides configuration data.
"""

import copy
import logging
import os
import tempfile
from typing import Any, Dict, List, Optional

import yaml

from src.i18n import _

CONFIG_FILENAME = "sysupdate-engine.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "detection": {
        "timeout": 60,
        "install_module": False,
        "methods": {
            "driver": ["module", "native", "device_enumeration"],
            "system": ["module", "native", "softwareupdate"],
        },
    },
    "service": {
        "name": "wuauserv",
        "query_timeout": 5,
        "start_timeout": 30,
    },
    "restore_point": {
        "enabled": True,
        "timeout": 30,
        "description": None,
    },
    "install": {
        "timeout": 1800,
        "require_elevation": True,
        "temp_dir": None,
    },
    "lanes": {
        "busy_policy": "reject",
    },
    "logging": {
        "level": "INFO|WARNING|ERROR|CRITICAL",
        "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        "file": None,
    },
    "i18n": {
        "language": "en",
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigManager:
    """Manages configuration for the update engine."""

    def __init__(self, config_file: Optional[str] = None):
        self.logger = logging.getLogger(__name__)

        self.explicit = config_file is not None
        self.config_file = self._determine_config_path(config_file or CONFIG_FILENAME)
        self.config_data: Dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)
        self.load_config()

    def _determine_config_path(self, default_filename: str) -> str:
        """
        Determine configuration file path.

        Priority order:
        1. Absolute path provided by the caller
        2. Platform-specific system config location
        3. ./sysupdate-engine.yaml (local config)
        """
        if os.path.isabs(default_filename):
            return default_filename

        if os.name == "nt":  # Windows
            system_config = os.path.join(
                r"C:\ProgramData\SysUpdateEngine", CONFIG_FILENAME
            )
        else:
            system_config = os.path.join("/etc", CONFIG_FILENAME)

        if os.path.exists(system_config):
            return system_config
        if os.path.exists(default_filename):
            return default_filename
        return system_config

    def load_config(self) -> None:
        """Load configuration from YAML file, keeping defaults for missing keys."""
        if not os.path.exists(self.config_file):
            if self.explicit:
                raise FileNotFoundError(
                    _("Configuration file '%s' not found") % self.config_file
                )
            self.logger.debug(
                "No configuration file at %s, using defaults", self.config_file
            )
            return

        try:
            with open(self.config_file, "r", encoding="utf-8") as file:
                loaded = yaml.safe_load(file) or {}
        except yaml.YAMLError as e:
            raise ValueError(_("Invalid YAML in configuration file: %s") % e) from e
        except OSError as e:
            raise RuntimeError(_("Failed to load configuration file: %s") % e) from e

        if not isinstance(loaded, dict):
            raise ValueError(
                _("Configuration file '%s' must contain a mapping") % self.config_file
            )
        self.config_data = _merge(DEFAULT_CONFIG, loaded)

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key_path: Dot-separated path to the configuration key (e.g., 'install.timeout')
            default: Default value if key is not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split(".")
        value = self.config_data

        try:
            for key in keys:
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default

    def get_detection_timeout(self) -> float:
        """Get per-method detection timeout in seconds."""
        return float(self.get("detection.timeout", 60))

    def should_install_module(self) -> bool:
        """Check whether a missing PSWindowsUpdate module may be installed."""
        return bool(self.get("detection.install_module", False))

    def get_detection_methods(self, kind: str) -> List[str]:
        """Get the ordered detection method names for an update kind."""
        return list(self.get(f"detection.methods.{kind}", []) or [])

    def get_service_name(self) -> str:
        return self.get("service.name", "wuauserv")

    def get_service_query_timeout(self) -> float:
        return float(self.get("service.query_timeout", 5))

    def get_service_start_timeout(self) -> float:
        return float(self.get("service.start_timeout", 30))

    def is_restore_point_enabled(self) -> bool:
        return bool(self.get("restore_point.enabled", True))

    def get_restore_point_timeout(self) -> float:
        return float(self.get("restore_point.timeout", 30))

    def get_restore_point_description(self, kind: str = "driver") -> str:
        """Get the restore point label; defaults to one naming the update kind."""
        configured = self.get("restore_point.description")
        if configured:
            return str(configured)
        if kind == "system":
            return "Before System Updates"
        return "Before Driver Updates"

    def get_install_timeout(self) -> float:
        """Get download/install timeout in seconds (30 minutes by default)."""
        return float(self.get("install.timeout", 1800))

    def is_elevation_required(self) -> bool:
        return bool(self.get("install.require_elevation", True))

    def get_temp_dir(self) -> str:
        """Get the writable directory used for transient install scripts."""
        return self.get("install.temp_dir") or tempfile.gettempdir()

    def get_lane_busy_policy(self) -> str:
        """Get how a busy lane is handled: 'reject' or 'queue'."""
        policy = str(self.get("lanes.busy_policy", "reject")).lower()
        if policy not in ("reject", "queue"):
            self.logger.warning(
                _("Unknown lane busy policy '%s', falling back to 'reject'"), policy
            )
            return "reject"
        return policy

    def get_log_level(self) -> str:
        return self.get("logging.level", "INFO")

    def get_log_file(self) -> Optional[str]:
        return self.get("logging.file")

    def get_log_format(self) -> str:
        return self.get(
            "logging.format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    def get_language(self) -> str:
        return self.get("i18n.language", "en")
