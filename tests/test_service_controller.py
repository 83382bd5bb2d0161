"""
Tests for update service control.
"""

# pylint: disable=redefined-outer-name,unused-argument

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from src.update_engine.core.models import ServiceState
from src.update_engine.operations.service_controller import ServiceController

from tests.engine_test_helpers import process_result

RUN_COMMAND = "src.update_engine.operations.service_controller.run_command_async"

SC_RUNNING = """
SERVICE_NAME: wuauserv
        TYPE               : 20  WIN32_SHARE_PROCESS
        STATE              : 4  RUNNING
"""
SC_STOPPED = """
SERVICE_NAME: wuauserv
        TYPE               : 20  WIN32_SHARE_PROCESS
        STATE              : 1  STOPPED
"""
SC_START_PENDING = """
SERVICE_NAME: wuauserv
        TYPE               : 20  WIN32_SHARE_PROCESS
        STATE              : 2  START_PENDING
"""
SC_QC_DEMAND = "        START_TYPE         : 3   DEMAND_START\n"
SC_QC_DISABLED = "        START_TYPE         : 4   DISABLED\n"


@pytest.fixture
def controller(config):
    return ServiceController(config)


class TestQueryServiceStatus:
    """Tests for ServiceController.query_service_status."""

    @pytest.mark.asyncio
    async def test_not_windows(self, controller, linux):
        """Test non-Windows hosts report unavailable without running sc."""
        with patch(RUN_COMMAND, AsyncMock()) as mock_run:
            status = await controller.query_service_status()

        assert status.state == ServiceState.UNAVAILABLE
        assert status.reason == "Not Windows"
        mock_run.assert_not_called()

    @pytest.mark.asyncio
    async def test_running(self, controller, windows):
        """Test a running service."""
        with patch(RUN_COMMAND, AsyncMock(return_value=process_result(stdout=SC_RUNNING))):
            status = await controller.query_service_status()

        assert status.state == ServiceState.RUNNING
        assert status.available is True

    @pytest.mark.asyncio
    async def test_stopped(self, controller, windows):
        """Test a stopped but startable service."""
        mock_run = AsyncMock(
            side_effect=[
                process_result(stdout=SC_STOPPED),
                process_result(stdout=SC_QC_DEMAND),
            ]
        )
        with patch(RUN_COMMAND, mock_run):
            status = await controller.query_service_status()

        assert status.state == ServiceState.STOPPED
        assert mock_run.call_args_list[1][0][0] == ["sc", "qc", "wuauserv"]

    @pytest.mark.asyncio
    async def test_disabled(self, controller, windows):
        """Test a disabled service includes guidance."""
        mock_run = AsyncMock(
            side_effect=[
                process_result(stdout=SC_STOPPED),
                process_result(stdout=SC_QC_DISABLED),
            ]
        )
        with patch(RUN_COMMAND, mock_run):
            status = await controller.query_service_status()

        assert status.state == ServiceState.DISABLED
        assert "enable it in Windows Services" in status.reason

    @pytest.mark.asyncio
    async def test_missing_service(self, controller, windows):
        """Test a service that does not exist."""
        result = process_result(
            returncode=1060,
            stdout="[SC] EnumQueryServicesStatus:OpenService FAILED 1060:\n"
            "The specified service does not exist as an installed service.",
        )
        with patch(RUN_COMMAND, AsyncMock(return_value=result)):
            status = await controller.query_service_status()

        assert status.state == ServiceState.UNAVAILABLE

    @pytest.mark.asyncio
    async def test_timeout_never_raises(self, controller, windows):
        """Test a timed out status query becomes an ERROR status."""
        with patch(RUN_COMMAND, AsyncMock(side_effect=asyncio.TimeoutError())):
            status = await controller.query_service_status()

        assert status.state == ServiceState.ERROR

    @pytest.mark.asyncio
    async def test_missing_sc_never_raises(self, controller, windows):
        """Test a missing sc executable becomes an ERROR status."""
        with patch(RUN_COMMAND, AsyncMock(side_effect=FileNotFoundError("sc"))):
            status = await controller.query_service_status()

        assert status.state == ServiceState.ERROR
        assert "Unable to check" in status.reason

    def test_invalid_service_name(self, config):
        """Test service names are restricted to a safe charset."""
        config.config_data["service"]["name"] = "wuauserv & calc"
        with pytest.raises(ValueError):
            ServiceController(config)


class TestEnsureServiceRunning:
    """Tests for ServiceController.ensure_service_running."""

    @pytest.mark.asyncio
    async def test_already_running(self, controller, windows):
        """Test nothing is started when the service runs."""
        mock_run = AsyncMock(return_value=process_result(stdout=SC_RUNNING))
        with patch(RUN_COMMAND, mock_run):
            status = await controller.ensure_service_running()

        assert status.state == ServiceState.RUNNING
        assert mock_run.await_count == 1

    @pytest.mark.asyncio
    async def test_starts_stopped_service_once(self, controller, windows):
        """Test exactly one sc start for a stopped service."""
        mock_run = AsyncMock(
            side_effect=[
                process_result(stdout=SC_STOPPED),
                process_result(stdout=SC_QC_DEMAND),
                process_result(stdout="SERVICE_NAME: wuauserv\n STATE : 2 START_PENDING"),
                process_result(stdout=SC_START_PENDING),
            ]
        )
        with patch(RUN_COMMAND, mock_run):
            status = await controller.ensure_service_running()

        assert status.state == ServiceState.RUNNING
        start_calls = [
            call for call in mock_run.call_args_list if call[0][0][:2] == ["sc", "start"]
        ]
        assert len(start_calls) == 1
        assert mock_run.call_args_list[-1][0][0] == ["sc", "query", "wuauserv"]
        assert status.reason == "Windows Update service started"

    @pytest.mark.asyncio
    async def test_start_not_confirmed(self, controller, windows):
        """Test the fresh query decides the state after an accepted start."""
        mock_run = AsyncMock(
            side_effect=[
                process_result(stdout=SC_STOPPED),
                process_result(stdout=SC_QC_DEMAND),
                process_result(stdout=""),
                process_result(stdout=SC_STOPPED),
                process_result(stdout=SC_QC_DEMAND),
            ]
        )
        with patch(RUN_COMMAND, mock_run):
            status = await controller.ensure_service_running()

        assert status.state == ServiceState.STOPPED
        start_calls = [
            call for call in mock_run.call_args_list if call[0][0][:2] == ["sc", "start"]
        ]
        assert len(start_calls) == 1

    @pytest.mark.asyncio
    async def test_start_reports_disabled(self, controller, windows):
        """Test exit code 1058 from sc start is reported as disabled."""
        mock_run = AsyncMock(
            side_effect=[
                process_result(stdout=SC_STOPPED),
                process_result(stdout=SC_QC_DEMAND),
                process_result(
                    returncode=1058,
                    stdout="[SC] StartService FAILED 1058:\n\nThe service cannot be started, "
                    "either because it is disabled or because it has no enabled devices "
                    "associated with it.",
                ),
            ]
        )
        with patch(RUN_COMMAND, mock_run):
            status = await controller.ensure_service_running()

        assert status.state == ServiceState.DISABLED
        assert "enable it in Windows Services" in status.reason
        assert mock_run.await_count == 3

    @pytest.mark.asyncio
    async def test_disabled_not_started(self, controller, windows):
        """Test a disabled service is returned unchanged."""
        mock_run = AsyncMock(
            side_effect=[
                process_result(stdout=SC_STOPPED),
                process_result(stdout=SC_QC_DISABLED),
            ]
        )
        with patch(RUN_COMMAND, mock_run):
            status = await controller.ensure_service_running()

        assert status.state == ServiceState.DISABLED
        assert mock_run.await_count == 2

    @pytest.mark.asyncio
    async def test_start_access_denied(self, controller, windows):
        """Test access denied on start asks for Administrator."""
        mock_run = AsyncMock(
            side_effect=[
                process_result(stdout=SC_STOPPED),
                process_result(stdout=SC_QC_DEMAND),
                process_result(returncode=5, stdout="[SC] StartService: OpenService FAILED 5"),
            ]
        )
        with patch(RUN_COMMAND, mock_run):
            status = await controller.ensure_service_running()

        assert status.state == ServiceState.ERROR
        assert "Administrator" in status.reason

    @pytest.mark.asyncio
    async def test_start_timeout(self, controller, windows):
        """Test a timed out start attempt."""
        mock_run = AsyncMock(
            side_effect=[
                process_result(stdout=SC_STOPPED),
                process_result(stdout=SC_QC_DEMAND),
                asyncio.TimeoutError(),
            ]
        )
        with patch(RUN_COMMAND, mock_run):
            status = await controller.ensure_service_running()

        assert status.state == ServiceState.ERROR
