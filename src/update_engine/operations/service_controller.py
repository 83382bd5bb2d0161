"""
Native update service control for the update engine.

On Windows the detection chain depends on the Windows Update service
(wuauserv). This module queries its state with ``sc`` and makes at most one
start attempt when it is stopped. A disabled service is never started:
re-enabling it is an administrative decision outside this engine.
"""

import asyncio
import logging
import re

from src.i18n import _
from src.update_engine.core.async_utils import run_command_async
from src.update_engine.core.models import PlatformTag, ServiceState, ServiceStatus
from src.update_engine.core.platform_resolver import resolve_platform

logger = logging.getLogger(__name__)

SC_EXIT_SERVICE_DOES_NOT_EXIST = 1060
SC_EXIT_ACCESS_DENIED = 5
SC_EXIT_SERVICE_DISABLED = 1058
SC_EXIT_ALREADY_RUNNING = 1056

_SERVICE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")
_STATE_PATTERN = re.compile(r"STATE\s*:\s*\d+\s+(\w+)")
_START_TYPE_PATTERN = re.compile(r"START_TYPE\s*:\s*\d+\s+(\w+)")

DISABLED_MESSAGE = (
    "Windows Update service is disabled. Please enable it in "
    "Windows Services (set its startup type to Manual or Automatic)."
)


class ServiceController:
    """Queries and starts the native update service."""

    def __init__(self, config):
        self.config = config
        self.service_name = config.get_service_name()
        if not _SERVICE_NAME_PATTERN.match(self.service_name):
            raise ValueError(_("Invalid service name: %s") % self.service_name)

    async def query_service_status(self) -> ServiceStatus:
        """
        Probe the update service. Never raises.

        A missing service is reported as UNAVAILABLE, a present but stopped
        one as STOPPED (or DISABLED when its start type is disabled).
        """
        if resolve_platform() != PlatformTag.WINDOWS:
            return ServiceStatus(ServiceState.UNAVAILABLE, _("Not Windows"))

        timeout = self.config.get_service_query_timeout()
        try:
            result = await run_command_async(
                ["sc", "query", self.service_name], timeout=timeout
            )
        except asyncio.TimeoutError:
            return ServiceStatus(
                ServiceState.ERROR,
                _("Timed out querying the Windows Update service"),
            )
        except OSError as error:
            return ServiceStatus(
                ServiceState.ERROR,
                _("Unable to check Windows Update service: %s") % error,
            )

        output = result.stdout or ""
        if (
            result.returncode == SC_EXIT_SERVICE_DOES_NOT_EXIST
            or "does not exist" in output.lower()
        ):
            return ServiceStatus(
                ServiceState.UNAVAILABLE,
                _("Windows Update service is not installed"),
            )

        if result.returncode != 0:
            return ServiceStatus(
                ServiceState.ERROR,
                _("Unable to check Windows Update service: %s")
                % ((result.stderr or output).strip() or result.returncode),
            )

        state_match = _STATE_PATTERN.search(output)
        state = state_match.group(1).upper() if state_match else ""
        if state in ("RUNNING", "START_PENDING"):
            return ServiceStatus(
                ServiceState.RUNNING, _("Windows Update service is running")
            )

        if await self._is_disabled(timeout):
            return ServiceStatus(ServiceState.DISABLED, _(DISABLED_MESSAGE))

        return ServiceStatus(
            ServiceState.STOPPED, _("Windows Update service is not running")
        )

    async def _is_disabled(self, timeout: float) -> bool:
        """Read the configured start type of the service."""
        try:
            result = await run_command_async(
                ["sc", "qc", self.service_name], timeout=timeout
            )
        except (asyncio.TimeoutError, OSError) as error:
            logger.debug("Could not read service start type: %s", error)
            return False

        match = _START_TYPE_PATTERN.search(result.stdout or "")
        return bool(match and match.group(1).upper() == "DISABLED")

    async def ensure_service_running(self) -> ServiceStatus:
        """
        Make sure the update service runs, with at most one start attempt.

        Only the STOPPED state triggers a start. DISABLED, UNAVAILABLE and
        ERROR are returned unchanged. An accepted start is confirmed with a
        fresh query; START_PENDING counts as running.
        """
        status = await self.query_service_status()
        if status.state != ServiceState.STOPPED:
            if status.state == ServiceState.DISABLED:
                logger.warning(_("Not starting disabled service: %s"), status.reason)
            return status

        logger.info(_("Starting Windows Update service '%s'"), self.service_name)
        try:
            result = await run_command_async(
                ["sc", "start", self.service_name],
                timeout=self.config.get_service_start_timeout(),
            )
        except asyncio.TimeoutError:
            return ServiceStatus(
                ServiceState.ERROR,
                _("Timed out starting the Windows Update service"),
            )
        except OSError as error:
            return ServiceStatus(
                ServiceState.ERROR,
                _("Failed to start Windows Update service: %s") % error,
            )

        if result.returncode == SC_EXIT_ACCESS_DENIED:
            return ServiceStatus(
                ServiceState.ERROR,
                _(
                    "Permission denied starting the Windows Update service. "
                    "Please re-run the application as Administrator."
                ),
            )

        if result.returncode == SC_EXIT_SERVICE_DISABLED:
            # Start type changed to disabled after the query
            return ServiceStatus(ServiceState.DISABLED, _(DISABLED_MESSAGE))

        if result.returncode not in (0, SC_EXIT_ALREADY_RUNNING):
            detail = (result.stderr or result.stdout or "").strip()
            return ServiceStatus(
                ServiceState.ERROR,
                _("Failed to start Windows Update service: %s")
                % (detail or result.returncode),
            )

        status = await self.query_service_status()
        if status.state == ServiceState.RUNNING:
            logger.info(_("Windows Update service started"))
            return ServiceStatus(ServiceState.RUNNING, _("Windows Update service started"))
        logger.warning(
            _("Windows Update service did not reach running state: %s"), status.reason
        )
        return status
