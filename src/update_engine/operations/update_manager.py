"""
Update Manager module for the update engine.

Public entry point: detection, installation and update service control.
Results are returned as plain dicts with a ``success`` flag so callers on
the other side of a process boundary can consume them directly.

Driver and system updates run in separate lanes. Each lane handles one
operation at a time because the platform update session is not safe for
concurrent use; the lanes themselves may run concurrently.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Iterable, Optional, Union

from src.i18n import _, set_language
from src.update_engine.collection.detection_chain import DetectionChain
from src.update_engine.core.config import ConfigManager
from src.update_engine.core.errors import LaneBusy, UpdateEngineError, ValidationError
from src.update_engine.core.models import (
    DetectionSession,
    InstallationRequest,
    ProgressEvent,
    UpdateKind,
)
from src.update_engine.operations.installer_pipeline import InstallerPipeline
from src.update_engine.operations.progress import ProgressReporter
from src.update_engine.operations.service_controller import ServiceController


def _failure(error: UpdateEngineError, **extra) -> Dict[str, Any]:
    result = {"success": False, "error": error.message, "error_type": error.error_type}
    result.update(extra)
    return result


def _install_data(updated=None, failed=None, reboot_required=False) -> Dict[str, Any]:
    return {
        "updated": list(updated or []),
        "failed": list(failed or []),
        "reboot_required": reboot_required,
    }


class UpdateManager:
    """Coordinates detection sessions, installation lanes and service control."""

    def __init__(self, config: Optional[ConfigManager] = None):
        self.config = config or ConfigManager()
        self.logger = logging.getLogger(__name__)
        set_language(self.config.get_language())

        self.service_controller = ServiceController(self.config)
        self.detection_chain = DetectionChain(self.config, self.service_controller)
        self.sessions: Dict[UpdateKind, DetectionSession] = {}
        self._lanes = {kind: asyncio.Lock() for kind in UpdateKind}

    @asynccontextmanager
    async def _lane(self, kind: UpdateKind):
        """Hold the lane for ``kind``; reject or queue FIFO when it is busy."""
        lock = self._lanes[kind]
        if lock.locked() and self.config.get_lane_busy_policy() == "reject":
            raise LaneBusy(
                _("Another %s update operation is already in progress") % kind.value
            )
        async with lock:
            yield

    @staticmethod
    def _kind(kind: Union[UpdateKind, str]) -> UpdateKind:
        try:
            return UpdateKind(kind)
        except ValueError as error:
            raise ValidationError(_("Unknown update kind: %s") % kind) from error

    async def detect_updates(
        self,
        kind: Union[UpdateKind, str],
        progress_callback: Optional[Callable[[ProgressEvent], None]] = None,
    ) -> Dict[str, Any]:
        """
        Detect pending updates of ``kind``.

        Returns:
            {"success": True, "count", "candidates", "message", "kind", "method"}
            or {"success": False, "error", "error_type"}
        """
        try:
            update_kind = self._kind(kind)
            async with self._lane(update_kind):
                try:
                    session = await self.detection_chain.detect(
                        update_kind, ProgressReporter(progress_callback)
                    )
                except UpdateEngineError:
                    self.sessions.pop(update_kind, None)
                    raise
                self.sessions[update_kind] = session
        except UpdateEngineError as error:
            self.logger.error("%s (%s)", error.message, error.error_type)
            return _failure(error)

        return {
            "success": True,
            "count": session.count,
            "candidates": [candidate.to_dict() for candidate in session.candidates],
            "message": _("Found %d %s update(s) available")
            % (session.count, update_kind.value),
            "kind": update_kind.value,
            "method": session.method,
        }

    async def install_updates(
        self,
        update_ids: Iterable[str],
        kind: Union[UpdateKind, str] = UpdateKind.DRIVER,
        progress_callback: Optional[Callable[[ProgressEvent], None]] = None,
    ) -> Dict[str, Any]:
        """
        Install the selected ids from the last detection of ``kind``.

        Returns:
            {"success", "data": {"updated", "failed", "reboot_required"},
             "message", "result_code", "result_text"} on completion, or
            {"success": False, "error", "error_type", "data"} when the request
            was rejected
        """
        if isinstance(update_ids, str):
            update_ids = [update_ids]
        requested = list(update_ids or [])
        try:
            update_kind = self._kind(kind)
            async with self._lane(update_kind):
                result = await InstallerPipeline(self.config).run(
                    InstallationRequest(kind=update_kind, ids=requested),
                    self.sessions.get(update_kind),
                    ProgressReporter(progress_callback),
                )
        except UpdateEngineError as error:
            self.logger.error(
                _("Update installation rejected (%s): %s"), error.error_type, error.message
            )
            return _failure(error, data=_install_data(failed=requested))

        response = {
            "success": result.success,
            "data": _install_data(
                result.updated_ids, result.failed_ids, result.reboot_required
            ),
            "message": result.message,
            "result_code": result.result_code,
            "result_text": result.result_text,
        }
        if not result.success:
            response["error"] = result.message
            response["error_type"] = result.error_type
        return response

    async def query_service_status(self) -> Dict[str, Any]:
        """Report whether the native update service is available. Never raises."""
        status = await self.service_controller.query_service_status()
        return {
            "available": status.available,
            "status": status.state.value,
            "reason": status.reason,
        }

    async def ensure_service_running(self) -> Dict[str, Any]:
        """Start the native update service if it is stopped."""
        status = await self.service_controller.ensure_service_running()
        if status.available:
            return {"status": status.state.value}
        return {"status": status.state.value, "reason": status.reason}
