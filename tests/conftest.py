"""
Pytest configuration and shared fixtures for update engine tests.
"""

# pylint: disable=redefined-outer-name

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import yaml

from src.update_engine.core.config import ConfigManager
from src.update_engine.core.models import (
    DetectionSession,
    ServiceState,
    ServiceStatus,
    UpdateCandidate,
    UpdateKind,
)

from tests.engine_test_helpers import DRIVER_A, DRIVER_B, DRIVER_C


@pytest.fixture
def config_data(tmp_path):
    """Configuration values used by most tests."""
    return {
        "detection": {
            "timeout": 5,
            "methods": {
                "driver": ["module", "native", "device_enumeration"],
                "system": ["module", "native", "softwareupdate"],
            },
        },
        "service": {"query_timeout": 2, "start_timeout": 5},
        "restore_point": {"enabled": True, "timeout": 5},
        "install": {"timeout": 60, "require_elevation": True, "temp_dir": str(tmp_path)},
        "lanes": {"busy_policy": "reject"},
        "logging": {"level": "INFO"},
    }


@pytest.fixture
def config(tmp_path, config_data):
    """Create a ConfigManager backed by a temporary YAML file."""
    config_path = tmp_path / "sysupdate-engine.yaml"
    config_path.write_text(yaml.safe_dump(config_data), encoding="utf-8")
    return ConfigManager(str(config_path))


@pytest.fixture
def windows():
    """Pretend the host runs Windows."""
    with patch("platform.system", return_value="Windows"):
        yield


@pytest.fixture
def macos():
    """Pretend the host runs macOS."""
    with patch("platform.system", return_value="Darwin"):
        yield


@pytest.fixture
def linux():
    """Pretend the host runs Linux."""
    with patch("platform.system", return_value="Linux"):
        yield


@pytest.fixture
def driver_session():
    """A driver detection session with three installable candidates."""
    return DetectionSession(
        kind=UpdateKind.DRIVER,
        method="native",
        candidates=[
            UpdateCandidate(id=DRIVER_A, title="Intel - Display - 31.0.101.4502"),
            UpdateCandidate(id=DRIVER_B, title="Realtek - Audio - 6.0.9600.1"),
            UpdateCandidate(id=DRIVER_C, title="Intel - Net - 22.250.1.2"),
        ],
    )


@pytest.fixture
def running_service():
    """A service controller mock reporting a running update service."""
    controller = MagicMock()
    controller.query_service_status = AsyncMock(
        return_value=ServiceStatus(ServiceState.RUNNING, "Windows Update service is running")
    )
    controller.ensure_service_running = AsyncMock(
        return_value=ServiceStatus(ServiceState.RUNNING, "Windows Update service is running")
    )
    return controller
