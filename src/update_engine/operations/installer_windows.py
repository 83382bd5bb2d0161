"""
Windows install backend.

Installs exactly the selected Windows Update identities through a generated
PowerShell script that downloads and installs in one elevated run.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List

from src.update_engine.core.async_utils import AsyncProcessResult, powershell_file_command
from src.update_engine.core.models import UpdateKind
from src.update_engine.operations.install_script import (
    WINDOWS_UPDATE_ID_PATTERN,
    render_windows_install_script,
    temporary_script,
)
from src.update_engine.operations.result_interpreter import (
    InstallReport,
    parse_install_output,
)

logger = logging.getLogger(__name__)


class WindowsInstallBackend:
    """Windows Update Agent install backend."""

    name = "windows-update"
    id_pattern = WINDOWS_UPDATE_ID_PATTERN
    supports_restore_point = True

    def __init__(self, config):
        self.config = config

    @asynccontextmanager
    async def prepare(self, update_ids: List[str], kind: UpdateKind) -> AsyncIterator[List[str]]:
        """Generate the install script and yield the command that runs it."""
        script = render_windows_install_script(update_ids, kind)
        async with temporary_script(
            script, self.config.get_temp_dir(), prefix=f"{kind.value}-update"
        ) as script_path:
            yield powershell_file_command(script_path)

    def interpret(self, result: AsyncProcessResult) -> InstallReport:
        report = parse_install_output(result.stdout)
        if not report.reboot_required and "Reboot Required: True" in (result.stdout or ""):
            report.reboot_required = True
        return report
