"""
Error taxonomy for the update engine.

Every error carries a human-readable message and a machine-checkable
``error_type`` so the operations layer can return
``{"success": False, "error": ..., "error_type": ...}`` without guessing.
"""

from typing import List, Optional


class UpdateEngineError(Exception):
    """Base class for all update engine failures."""

    error_type = "UpdateEngineError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PlatformUnsupported(UpdateEngineError):
    """The host platform has no strategy for the requested update kind."""

    error_type = "PlatformUnsupported"


class ServiceUnavailable(UpdateEngineError):
    """The native update service is disabled, missing or not running."""

    error_type = "ServiceUnavailable"

    def __init__(self, message: str, retriable: bool = False):
        super().__init__(message)
        self.retriable = retriable


class DetectionMethodFailure(UpdateEngineError):
    """A single detection method failed; the chain falls back to the next one."""

    error_type = "DetectionMethodFailure"


class ParseFailure(DetectionMethodFailure):
    """A detection method produced output that could not be parsed."""

    error_type = "ParseFailure"


class DetectionFailure(UpdateEngineError):
    """
    Every detection method for a kind failed.

    ``error_type`` is "Timeout" or "ServiceUnavailable" when the last
    method failed that way, so callers can tell a slow or stopped update
    service from a broken one.
    """

    error_type = "DetectionFailure"

    def __init__(
        self,
        message: str,
        reasons: Optional[List[str]] = None,
        error_type: Optional[str] = None,
    ):
        super().__init__(message)
        self.reasons = reasons or []
        if error_type:
            self.error_type = error_type


class ValidationError(UpdateEngineError):
    """An installation request was empty, unknown or not installable."""

    error_type = "ValidationError"


class OperationTimeout(UpdateEngineError):
    """An external process exceeded its time bound and was terminated."""

    error_type = "Timeout"


class PermissionDenied(UpdateEngineError):
    """The operation needs an elevated execution context."""

    error_type = "PermissionDenied"


class InstallationFailure(UpdateEngineError):
    """The platform reported a failed installation."""

    error_type = "InstallationFailure"


class LaneBusy(UpdateEngineError):
    """Another operation is already running in the same update lane."""

    error_type = "LaneBusy"
