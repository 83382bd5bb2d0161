"""
macOS install backend.

Runs ``softwareupdate --install`` with the selected labels as an argument
vector, never ``--all``.
"""

import logging
import re
from contextlib import asynccontextmanager
from typing import AsyncIterator, List

from src.update_engine.core.async_utils import AsyncProcessResult
from src.update_engine.core.models import UpdateKind
from src.update_engine.operations.install_script import (
    MACOS_LABEL_PATTERN,
    build_macos_install_command,
)
from src.update_engine.operations.result_interpreter import (
    RESULT_FAILED,
    RESULT_SUCCEEDED,
    RESULT_SUCCEEDED_WITH_ERRORS,
    InstallReport,
)

logger = logging.getLogger(__name__)

_NOT_FOUND_PATTERN = re.compile(r"^(.+?):\s*No such update", re.MULTILINE)


class MacOSInstallBackend:
    """softwareupdate install backend."""

    name = "softwareupdate"
    id_pattern = MACOS_LABEL_PATTERN
    supports_restore_point = False

    def __init__(self, config):
        self.config = config
        self._labels: List[str] = []

    @asynccontextmanager
    async def prepare(self, update_ids: List[str], kind: UpdateKind) -> AsyncIterator[List[str]]:
        self._labels = list(update_ids)
        yield build_macos_install_command(update_ids)

    def interpret(self, result: AsyncProcessResult) -> InstallReport:
        output = f"{result.stdout or ''}\n{result.stderr or ''}"
        unmatched = [
            label.strip()
            for label in _NOT_FOUND_PATTERN.findall(output)
            if label.strip() in self._labels
        ]
        matched = [label for label in self._labels if label not in unmatched]

        if result.returncode == 0 and matched:
            code = RESULT_SUCCEEDED_WITH_ERRORS if unmatched else RESULT_SUCCEEDED
        else:
            code = RESULT_FAILED

        return InstallReport(
            result_code=code,
            reboot_required="restart" in output.lower(),
            matched_ids=matched,
            unmatched_ids=unmatched,
        )
