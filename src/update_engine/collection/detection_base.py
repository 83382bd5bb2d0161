#!/usr/bin/env python3
"""
Base Detection Method Module for the update engine.

A detection method is one strategy for enumerating pending updates of a
given kind. Every method returns the same ``MethodOutcome`` shape so the
detection chain does not care which strategy produced the candidates.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from src.i18n import _
from src.update_engine.core.async_utils import powershell_command, run_command_async
from src.update_engine.core.errors import (
    DetectionMethodFailure,
    OperationTimeout,
    ParseFailure,
)
from src.update_engine.core.models import PlatformTag, UpdateCandidate, UpdateKind

logger = logging.getLogger(__name__)

ABSENCE_MARKER = "null"


@dataclass
class MethodOutcome:
    """Uniform result of one detection method."""

    candidates: List[UpdateCandidate] = field(default_factory=list)
    informational_only: bool = False


def normalize_records(output: str) -> List[Dict[str, Any]]:
    """
    Normalize raw JSON output into a list of records.

    Empty output and the literal ``null`` yield an empty list, a single
    object yields a one-element list, an array is returned as is.

    Raises:
        ParseFailure: if the output is not valid JSON or has an unexpected shape
    """
    text = (output or "").strip()
    if not text or text == ABSENCE_MARKER:
        return []

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as error:
        raise ParseFailure(_("Failed to parse update list: %s") % error) from error

    if parsed is None:
        return []
    if isinstance(parsed, dict):
        return [parsed]
    if isinstance(parsed, list):
        return [record for record in parsed if isinstance(record, dict)]
    raise ParseFailure(
        _("Unexpected update list shape: %s") % type(parsed).__name__
    )


def unique_candidates(candidates: Sequence[UpdateCandidate]) -> List[UpdateCandidate]:
    """Drop candidates whose id was already seen, keeping the first one."""
    seen = set()
    unique = []
    for candidate in candidates:
        if not candidate.id or candidate.id in seen:
            if candidate.id:
                logger.debug("Dropping duplicate candidate id %s", candidate.id)
            continue
        seen.add(candidate.id)
        unique.append(candidate)
    return unique


class DetectionMethod:
    """
    Base class for detection strategies.

    Subclasses set the class attributes and implement ``detect``.
    """

    name = "base"
    platform = PlatformTag.UNKNOWN
    kinds = ()
    requires_service = False
    informational_only = False

    def __init__(self, config):
        self.config = config

    def applies_to(self, kind: UpdateKind, platform_tag: PlatformTag) -> bool:
        return kind in self.kinds and platform_tag == self.platform

    async def detect(self, kind: UpdateKind, timeout: float) -> MethodOutcome:
        raise NotImplementedError

    async def _run(self, cmd: List[str], timeout: float) -> str:
        """
        Run one external detection command and return its stdout.

        Raises:
            OperationTimeout: if the command exceeded ``timeout`` (it was killed)
            DetectionMethodFailure: if the command could not run or failed
        """
        try:
            result = await run_command_async(cmd, timeout=timeout)
        except asyncio.TimeoutError as error:
            raise OperationTimeout(
                _("%s detection timed out after %d seconds") % (self.name, timeout)
            ) from error
        except OSError as error:
            raise DetectionMethodFailure(
                _("%s detection could not start: %s") % (self.name, error)
            ) from error

        output = (result.stdout or "").strip()
        if output.startswith("ERROR:"):
            raise DetectionMethodFailure(output[len("ERROR:"):].strip())
        if result.returncode != 0:
            detail = (result.stderr or "").strip() or output
            raise DetectionMethodFailure(
                _("%s detection failed with exit code %d: %s")
                % (self.name, result.returncode, detail[:500])
            )
        if result.stderr and result.stderr.strip():
            logger.debug("%s detection stderr: %s", self.name, result.stderr.strip())
        return output

    async def _run_powershell(self, script: str, timeout: float) -> str:
        return await self._run(powershell_command(script), timeout)
