#!/usr/bin/env python3
"""
macOS Detection Method for the update engine.

System updates come from Software Update (``softwareupdate --list``). The
label of each entry is the identifier ``softwareupdate --install`` accepts.
"""

import logging
import re
from typing import List

from src.i18n import _
from src.update_engine.collection.detection_base import (
    DetectionMethod,
    MethodOutcome,
    unique_candidates,
)
from src.update_engine.core.models import PlatformTag, UpdateCandidate, UpdateKind

logger = logging.getLogger(__name__)

NO_UPDATES_MARKER = "No new software available"

_LABEL_PATTERN = re.compile(r"^\s*\*\s+Label:\s+(.+)$")
_LEGACY_LABEL_PATTERN = re.compile(r"^\s*\*\s+(.+)$")
_TITLE_PATTERN = re.compile(r"Title:\s*([^,]+)")
_VERSION_PATTERN = re.compile(r"Version:\s*([^,]+)")
_SIZE_PATTERN = re.compile(r"Size:\s*(\d+)\s*K")


def parse_softwareupdate_list(output: str) -> List[UpdateCandidate]:
    """
    Parse ``softwareupdate --list`` output.

    Handles the current two-line format::

        * Label: macOS Sonoma 14.2-23C64
            Title: macOS Sonoma 14.2, Version: 14.2, Size: 3215679KiB, Recommended: YES, Action: restart,

    and the older one-line ``* <label>`` format.
    """
    candidates = []
    lines = (output or "").splitlines()
    index = 0
    while index < len(lines):
        line = lines[index]
        label_match = _LABEL_PATTERN.match(line) or _LEGACY_LABEL_PATTERN.match(line)
        index += 1
        if not label_match:
            continue

        label = label_match.group(1).strip()
        details = ""
        if index < len(lines) and lines[index].strip().startswith("Title:"):
            details = lines[index].strip()
            index += 1
        elif index < len(lines) and lines[index].startswith("\t"):
            # Older format: indented description line
            details = "Title: " + lines[index].strip()
            index += 1

        title_match = _TITLE_PATTERN.search(details)
        version_match = _VERSION_PATTERN.search(details)
        size_match = _SIZE_PATTERN.search(details)

        description = _("macOS System Update")
        if version_match:
            description = _("Version %s") % version_match.group(1).strip()

        candidates.append(
            UpdateCandidate(
                id=label,
                title=title_match.group(1).strip() if title_match else label,
                category=_("Recommended") if "Recommended: YES" in details else _("Optional"),
                publisher="Apple",
                description=description,
                size_estimate=int(size_match.group(1)) * 1024 if size_match else None,
                reboot_required="Action: restart" in details or "[restart]" in details,
            )
        )
    return candidates


class SoftwareUpdateDetection(DetectionMethod):
    """Detect macOS system updates with softwareupdate."""

    name = "softwareupdate"
    platform = PlatformTag.MACOS
    kinds = (UpdateKind.SYSTEM,)

    async def detect(self, kind: UpdateKind, timeout: float) -> MethodOutcome:
        logger.debug(_("Checking for macOS updates"))
        output = await self._run(["softwareupdate", "--list"], timeout)
        if NO_UPDATES_MARKER in output:
            return MethodOutcome()
        return MethodOutcome(candidates=unique_candidates(parse_softwareupdate_list(output)))
