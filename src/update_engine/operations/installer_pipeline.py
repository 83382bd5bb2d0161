"""
Installer pipeline for the update engine.

Runs strictly in order:
Validating -> CreatingRestorePoint -> Preparing -> DownloadingInstalling
-> Interpreting -> Completed | Failed

Validation problems are raised before any external process starts. Every
accepted request produces exactly one InstallationResult.
"""

import asyncio
import logging
from typing import List, Optional

from src.i18n import _
from src.update_engine.core.async_utils import run_command_async
from src.update_engine.core.errors import (
    InstallationFailure,
    OperationTimeout,
    PermissionDenied,
    ValidationError,
)
from src.update_engine.core.models import (
    DetectionSession,
    InstallationRequest,
    InstallationResult,
    PipelineStage,
    PlatformTag,
    UpdateKind,
)
from src.update_engine.core.platform_resolver import is_elevated, require_supported
from src.update_engine.operations.install_script import validate_ids
from src.update_engine.operations.installer_macos import MacOSInstallBackend
from src.update_engine.operations.installer_windows import WindowsInstallBackend
from src.update_engine.operations.progress import ProgressReporter
from src.update_engine.operations.restore_point import create_restore_point
from src.update_engine.operations.result_interpreter import interpret, split_ids

logger = logging.getLogger(__name__)

PERMISSION_MESSAGE = (
    "Permission denied. Please run the application as Administrator "
    "to install updates."
)
TIMEOUT_MESSAGE = (
    "Installation timed out. Large updates may take longer. "
    "Please try again or install updates individually."
)
SERVICE_MESSAGE = (
    "Windows Update service is not available. Please enable it in Windows Services."
)
FAILURE_HINT = (
    "Please check if Windows Update is enabled and you have administrator privileges."
)


def friendly_error(message: str) -> str:
    """Map raw external error text onto actionable guidance."""
    lowered = (message or "").lower()
    if "timeout" in lowered or "timed out" in lowered:
        return _(TIMEOUT_MESSAGE)
    if "access" in lowered or "permission" in lowered:
        return _(PERMISSION_MESSAGE)
    if "windows update" in lowered:
        return _(SERVICE_MESSAGE)
    return message


def _noun(kind: UpdateKind) -> str:
    return _("driver(s)") if kind == UpdateKind.DRIVER else _("update(s)")


class InstallerPipeline:
    """One-shot state machine that installs a validated selection."""

    def __init__(self, config):
        self.config = config
        self.stage: Optional[PipelineStage] = None

    def _enter(self, stage: PipelineStage) -> None:
        logger.debug("Installer stage: %s -> %s", self.stage, stage.value)
        self.stage = stage

    def _backend(self, platform_tag: PlatformTag):
        if platform_tag == PlatformTag.MACOS:
            return MacOSInstallBackend(self.config)
        return WindowsInstallBackend(self.config)

    def validate(
        self,
        request: InstallationRequest,
        session: Optional[DetectionSession],
        backend,
    ) -> List[str]:
        """
        Check the selection against the last detection session.

        Raises:
            ValidationError: empty, unknown, informational-only or malformed ids
            PermissionDenied: when an elevated context is required but missing
        """
        self._enter(PipelineStage.VALIDATING)
        if not request.ids:
            raise ValidationError(_("No update IDs provided"))

        update_ids = list(dict.fromkeys(request.ids))
        if session is None or session.kind != request.kind:
            raise ValidationError(
                _("No %s detection results available; run detection first")
                % request.kind.value
            )

        unknown = [update_id for update_id in update_ids if session.get(update_id) is None]
        if unknown:
            raise ValidationError(
                _("Update IDs not found in the last detection: %s") % ", ".join(unknown)
            )

        informational = [
            update_id for update_id in update_ids if session.get(update_id).informational_only
        ]
        if informational:
            raise ValidationError(
                _("Updates can only be listed, not installed: %s") % ", ".join(informational)
            )

        validate_ids(update_ids, backend.id_pattern)

        if self.config.is_elevation_required() and not is_elevated():
            raise PermissionDenied(_(PERMISSION_MESSAGE))

        return update_ids

    async def run(
        self,
        request: InstallationRequest,
        session: Optional[DetectionSession],
        progress: Optional[ProgressReporter] = None,
    ) -> InstallationResult:
        """
        Install the requested subset of ``session``.

        Raises:
            PlatformUnsupported, ValidationError, PermissionDenied: before any
            external process is started
        """
        platform_tag = require_supported(request.kind)
        backend = self._backend(platform_tag)
        progress = progress or ProgressReporter()
        progress.emit(
            PipelineStage.VALIDATING.value,
            _("Validating selected updates..."),
            0,
            len(dict.fromkeys(request.ids or [])) + 2,
        )
        update_ids = self.validate(request, session, backend)
        total = len(update_ids) + 2
        noun = _noun(request.kind)

        logger.info(
            _("Installing %d selected %s update(s): %s"),
            len(update_ids),
            request.kind.value,
            ", ".join(update_ids),
        )

        self._enter(PipelineStage.CREATING_RESTORE_POINT)
        progress.emit(self.stage.value, _("Creating system restore point..."), 0, total)
        await self._create_restore_point(backend, request.kind)

        self._enter(PipelineStage.PREPARING)
        progress.emit(self.stage.value, _("Preparing updates..."), 1, total)
        try:
            async with backend.prepare(update_ids, request.kind) as command:
                self._enter(PipelineStage.DOWNLOADING_INSTALLING)
                progress.emit(
                    self.stage.value,
                    _("Installing updates (this may take 10-30 minutes)..."),
                    2,
                    total,
                )
                process_result = await self._execute(command)
        except OperationTimeout as error:
            return self._finish_failed(progress, update_ids, total, error.message, error.error_type)
        except OSError as error:
            logger.error(_("Failed to run installer: %s"), error)
            return self._finish_failed(
                progress,
                update_ids,
                total,
                friendly_error(str(error)),
                InstallationFailure.error_type,
            )

        self._enter(PipelineStage.INTERPRETING)
        progress.emit(self.stage.value, _("Checking installation results..."), 2, total)
        report = backend.interpret(process_result)
        outcome = interpret(report.result_code)
        placement = split_ids(update_ids, report)

        if process_result.stderr and process_result.stderr.strip():
            logger.warning(_("Installer stderr: %s"), process_result.stderr.strip()[:2000])

        if outcome.success:
            self._enter(PipelineStage.COMPLETED)
            message = _("Successfully updated %d %s.") % (len(placement["updated"]), noun)
            if placement["failed"]:
                message += " " + _("%d could not be installed.") % len(placement["failed"])
            if report.reboot_required:
                message += " " + _("Please restart your computer to complete the installation.")
        else:
            self._enter(PipelineStage.FAILED)
            detail = report.error or (process_result.stderr or "").strip() or _(FAILURE_HINT)
            message = _("Update failed: %s. %s") % (outcome.label, detail)

        logger.info(
            _("Installation finished with result %d (%s): %d updated, %d failed"),
            outcome.code,
            outcome.label,
            len(placement["updated"]),
            len(placement["failed"]),
        )
        progress.emit(
            self.stage.value,
            _("Updates completed") if outcome.success else _("Update failed"),
            total,
            total,
        )

        return InstallationResult(
            success=outcome.success,
            updated_ids=placement["updated"],
            failed_ids=placement["failed"],
            reboot_required=bool(report.reboot_required) if outcome.success else False,
            result_code=outcome.code,
            result_text=outcome.label,
            message=message,
            error_type=None if outcome.success else InstallationFailure.error_type,
        )

    async def _create_restore_point(self, backend, kind: UpdateKind) -> None:
        if not self.config.is_restore_point_enabled():
            logger.info(_("Restore point creation disabled by configuration"))
            return
        if not backend.supports_restore_point:
            logger.info(_("Restore points are not supported by the %s backend"), backend.name)
            return
        try:
            await create_restore_point(
                self.config.get_restore_point_description(kind.value),
                timeout=self.config.get_restore_point_timeout(),
            )
        except Exception as error:  # pylint: disable=broad-exception-caught
            logger.warning(_("Failed to create restore point: %s"), error)

    async def _execute(self, command: List[str]):
        timeout = self.config.get_install_timeout()
        try:
            return await run_command_async(command, timeout=timeout)
        except asyncio.TimeoutError as error:
            logger.error(_("Installation timed out after %d seconds"), timeout)
            raise OperationTimeout(_(TIMEOUT_MESSAGE)) from error

    def _finish_failed(
        self,
        progress: ProgressReporter,
        update_ids: List[str],
        total: int,
        message: str,
        error_type: str,
    ) -> InstallationResult:
        self._enter(PipelineStage.FAILED)
        progress.emit(self.stage.value, _("Update failed"), total, total)
        return InstallationResult(
            success=False,
            failed_ids=list(update_ids),
            message=message,
            error_type=error_type,
        )
