"""
Platform resolution for the update engine.

Every public operation consults this module first; an unsupported
platform fails immediately without contacting any external service.
"""

import ctypes
import os
import platform

from src.i18n import _
from src.update_engine.core.errors import PlatformUnsupported
from src.update_engine.core.models import PlatformTag, UpdateKind

_SUPPORTED_PLATFORMS = {
    UpdateKind.DRIVER: (PlatformTag.WINDOWS,),
    UpdateKind.SYSTEM: (PlatformTag.WINDOWS, PlatformTag.MACOS),
}


def resolve_platform() -> PlatformTag:
    """Identify the host OS family."""
    system = platform.system().lower()
    if system == "windows":
        return PlatformTag.WINDOWS
    if system == "darwin":
        return PlatformTag.MACOS
    if system == "linux":
        return PlatformTag.LINUX
    return PlatformTag.UNKNOWN


def supports(kind: UpdateKind, platform_tag: PlatformTag) -> bool:
    """Check whether updates of ``kind`` can be handled on ``platform_tag``."""
    return platform_tag in _SUPPORTED_PLATFORMS.get(kind, ())


def unsupported_message(kind: UpdateKind) -> str:
    if kind == UpdateKind.DRIVER:
        return _("Driver updates are only available on Windows")
    return _("System updates not supported on this platform")


def require_supported(kind: UpdateKind) -> PlatformTag:
    """
    Resolve the platform and fail fast when ``kind`` is not supported there.

    Raises:
        PlatformUnsupported: if the host has no strategy for ``kind``
    """
    platform_tag = resolve_platform()
    if not supports(kind, platform_tag):
        raise PlatformUnsupported(unsupported_message(kind))
    return platform_tag


def is_elevated() -> bool:
    """Check whether the process runs with administrative privileges."""
    if resolve_platform() == PlatformTag.WINDOWS:
        try:
            return bool(ctypes.windll.shell32.IsUserAnAdmin())  # type: ignore[attr-defined]
        except (AttributeError, OSError):
            return False
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0
