"""
System restore point creation before an installation.

Creation is best effort: the result is logged and returned as a boolean,
never raised, and the installer continues either way.
"""

import asyncio
import logging
import re

from src.i18n import _
from src.update_engine.core.async_utils import powershell_command, run_command_async
from src.update_engine.core.models import PlatformTag
from src.update_engine.core.platform_resolver import resolve_platform

logger = logging.getLogger(__name__)

_DESCRIPTION_PATTERN = re.compile(r"[^A-Za-z0-9 ._-]")


def _sanitize_description(description: str) -> str:
    cleaned = _DESCRIPTION_PATTERN.sub("", description or "").strip()
    return cleaned[:64] or "Before Updates"


async def create_restore_point(description: str, timeout: float = 30.0) -> bool:
    """
    Request a system restore point from the host platform.

    Returns:
        True when the platform confirmed the checkpoint, False otherwise
    """
    if resolve_platform() != PlatformTag.WINDOWS:
        logger.info(_("System restore points are only available on Windows, skipping"))
        return False

    script = f"""
try {{
    Checkpoint-Computer -Description '{_sanitize_description(description)}' -RestorePointType MODIFY_SETTINGS -ErrorAction Stop
    Write-Output "SUCCESS"
}} catch {{
    Write-Output "FAILED: $($_.Exception.Message)"
    exit 1
}}
"""
    try:
        result = await run_command_async(powershell_command(script), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(_("Restore point creation timed out after %d seconds"), timeout)
        return False
    except OSError as error:
        logger.warning(_("Could not create restore point: %s"), error)
        return False

    if "SUCCESS" not in (result.stdout or ""):
        logger.warning(
            _("Could not create restore point: %s"),
            (result.stdout or result.stderr or "").strip() or result.returncode,
        )
        return False

    logger.info(_("System restore point created"))
    return True
