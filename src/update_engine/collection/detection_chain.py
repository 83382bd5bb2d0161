#!/usr/bin/env python3
"""
Detection Chain Module for the update engine.

Tries the detection methods for an update kind in a fixed priority order
and returns the first clean result. A method that throws, times out or
produces unparsable output is recorded and the next method is tried. A
clean result with zero candidates is a valid answer and ends the chain.
"""

import logging
from typing import Dict, List, Optional, Type

from src.i18n import _
from src.update_engine.collection.detection_base import DetectionMethod
from src.update_engine.collection.detection_macos import SoftwareUpdateDetection
from src.update_engine.collection.detection_windows import (
    DeviceEnumerationDetection,
    ModuleBasedDetection,
    NativeApiDetection,
)
from src.update_engine.core.errors import (
    DetectionFailure,
    OperationTimeout,
    ServiceUnavailable,
)
from src.update_engine.core.models import (
    DetectionSession,
    PlatformTag,
    ServiceState,
    ServiceStatus,
    UpdateKind,
)
from src.update_engine.core.platform_resolver import require_supported
from src.update_engine.operations.progress import ProgressReporter
from src.update_engine.operations.service_controller import ServiceController

logger = logging.getLogger(__name__)

METHOD_REGISTRY: Dict[str, Type[DetectionMethod]] = {
    ModuleBasedDetection.name: ModuleBasedDetection,
    NativeApiDetection.name: NativeApiDetection,
    DeviceEnumerationDetection.name: DeviceEnumerationDetection,
    SoftwareUpdateDetection.name: SoftwareUpdateDetection,
}

STAGE_DETECTING = "Detecting"


class DetectionChain:
    """Ordered fallback over detection methods for one update kind."""

    def __init__(self, config, service_controller: Optional[ServiceController] = None):
        self.config = config
        self.service_controller = service_controller or ServiceController(config)

    def methods_for(self, kind: UpdateKind, platform_tag: PlatformTag) -> List[DetectionMethod]:
        """Instantiate the configured methods that apply to ``kind`` on this host."""
        methods = []
        for method_name in self.config.get_detection_methods(kind.value):
            method_class = METHOD_REGISTRY.get(method_name)
            if method_class is None:
                logger.warning(_("Unknown detection method '%s' ignored"), method_name)
                continue
            method = method_class(self.config)
            if method.applies_to(kind, platform_tag):
                methods.append(method)
        return methods

    async def _service_status(self, methods: List[DetectionMethod]) -> Optional[ServiceStatus]:
        """Make sure the update service runs when a method depends on it."""
        if not any(method.requires_service for method in methods):
            return None

        status = await self.service_controller.query_service_status()
        if status.state == ServiceState.STOPPED:
            logger.info(_("Windows Update service is stopped, attempting one start"))
            status = await self.service_controller.ensure_service_running()
        if status.state != ServiceState.RUNNING:
            logger.warning(
                _("Update service not running (%s): %s"),
                status.state.value,
                status.reason,
            )
        return status

    async def detect(
        self, kind: UpdateKind, progress: Optional[ProgressReporter] = None
    ) -> DetectionSession:
        """
        Run the detection chain for ``kind``.

        Raises:
            PlatformUnsupported: when the host has no strategy for ``kind``
            DetectionFailure: when every method failed
        """
        platform_tag = require_supported(kind)
        progress = progress or ProgressReporter()

        methods = self.methods_for(kind, platform_tag)
        if not methods:
            raise DetectionFailure(_("No detection method configured for %s updates") % kind.value)

        total = len(methods) + 1
        progress.emit(
            STAGE_DETECTING,
            _("Scanning for outdated drivers...")
            if kind == UpdateKind.DRIVER
            else _("Checking for system updates..."),
            0,
            total,
        )

        service_status = await self._service_status(methods)
        timeout = self.config.get_detection_timeout()
        reasons = []
        last_error = None

        for position, method in enumerate(methods, start=1):
            if (
                method.requires_service
                and service_status is not None
                and service_status.state != ServiceState.RUNNING
            ):
                error = ServiceUnavailable(
                    service_status.reason,
                    retriable=service_status.state == ServiceState.STOPPED,
                )
                last_error = error
                reasons.append(f"{method.name}: {error.message}")
                logger.info(_("Skipping detection method '%s': %s"), method.name, error.message)
                continue

            progress.emit(
                STAGE_DETECTING,
                _("Trying detection method '%s'") % method.name,
                position,
                total,
            )
            try:
                outcome = await method.detect(kind, timeout)
            except Exception as error:  # pylint: disable=broad-exception-caught
                last_error = error
                message = getattr(error, "message", None) or str(error)
                reasons.append(f"{method.name}: {message}")
                logger.warning(
                    _("Detection method '%s' failed, falling back: %s"),
                    method.name,
                    message,
                )
                continue

            candidates = outcome.candidates
            if outcome.informational_only or method.informational_only:
                for candidate in candidates:
                    candidate.informational_only = True

            session = DetectionSession(kind=kind, method=method.name, candidates=candidates)
            logger.info(
                _("Detection completed with method '%s': %d %s update(s) found"),
                method.name,
                session.count,
                kind.value,
            )
            progress.emit(
                STAGE_DETECTING,
                _("Found %d update(s)") % session.count,
                total,
                total,
            )
            return session

        last_reason = reasons[-1] if reasons else _("no detection method ran")
        logger.error(_("All detection methods failed for %s updates: %s"), kind.value, "; ".join(reasons))
        progress.emit(STAGE_DETECTING, _("Update detection failed"), total, total)
        raise DetectionFailure(
            _("Update detection failed: %s") % last_reason,
            reasons=reasons,
            error_type=last_error.error_type
            if isinstance(last_error, (OperationTimeout, ServiceUnavailable))
            else None,
        )
