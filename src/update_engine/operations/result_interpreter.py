"""
Result interpretation for platform install status codes.

Windows Update reports an OperationResultCode for downloads and installs.
Unknown codes are classified as failures, never as success.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from src.i18n import _

logger = logging.getLogger(__name__)

RESULT_NOT_STARTED = 0
RESULT_IN_PROGRESS = 1
RESULT_SUCCEEDED = 2
RESULT_SUCCEEDED_WITH_ERRORS = 3
RESULT_FAILED = 4
RESULT_ABORTED = 5

RESULT_CODES = {
    RESULT_NOT_STARTED: "Not Started",
    RESULT_IN_PROGRESS: "In Progress",
    RESULT_SUCCEEDED: "Succeeded",
    RESULT_SUCCEEDED_WITH_ERRORS: "Succeeded with Errors",
    RESULT_FAILED: "Failed",
    RESULT_ABORTED: "Aborted",
}

UNKNOWN_LABEL = "Unknown"

SUCCESS_CODES = (RESULT_SUCCEEDED, RESULT_SUCCEEDED_WITH_ERRORS)

_RESULT_JSON_PATTERN = re.compile(r"\{.*\"ResultCode\".*\}")


@dataclass
class Outcome:
    """Classified result of one install attempt."""

    code: int
    label: str
    success: bool


@dataclass
class InstallReport:
    """Structured data emitted by an install script."""

    result_code: int
    reboot_required: bool = False
    matched_ids: List[str] = field(default_factory=list)
    unmatched_ids: List[str] = field(default_factory=list)
    per_update_codes: Dict[str, int] = field(default_factory=dict)
    error: Optional[str] = None


def interpret(code: Any) -> Outcome:
    """Map a platform result code onto the shared outcome taxonomy."""
    try:
        numeric = int(code)
    except (TypeError, ValueError):
        return Outcome(code=RESULT_FAILED, label=UNKNOWN_LABEL, success=False)

    label = RESULT_CODES.get(numeric)
    if label is None:
        return Outcome(code=numeric, label=UNKNOWN_LABEL, success=False)
    return Outcome(code=numeric, label=label, success=numeric in SUCCESS_CODES)


def _as_list(value: Any) -> List[str]:
    # ConvertTo-Json renders one-element arrays as scalars
    if value is None:
        return []
    if isinstance(value, list):
        return [str(item) for item in value if item is not None]
    return [str(value)]


def parse_install_output(stdout: str) -> InstallReport:
    """
    Extract the structured result block from install script output.

    Output without a parsable result block is reported as Failed.
    """
    report_data = None
    for line in reversed((stdout or "").splitlines()):
        match = _RESULT_JSON_PATTERN.search(line)
        if not match:
            continue
        try:
            report_data = json.loads(match.group(0))
            break
        except json.JSONDecodeError as error:
            logger.warning(_("Failed to parse install result JSON: %s"), error)

    if not isinstance(report_data, dict):
        return InstallReport(
            result_code=RESULT_FAILED,
            error=_("Install output did not contain a result block"),
        )

    per_update_codes = {}
    for entry in report_data.get("Updates") or []:
        if isinstance(entry, dict) and entry.get("UpdateID") is not None:
            try:
                per_update_codes[str(entry["UpdateID"])] = int(entry.get("ResultCode"))
            except (TypeError, ValueError):
                per_update_codes[str(entry["UpdateID"])] = RESULT_FAILED

    try:
        code = int(report_data.get("ResultCode"))
    except (TypeError, ValueError):
        code = RESULT_FAILED

    return InstallReport(
        result_code=code,
        reboot_required=bool(report_data.get("RebootRequired", False)),
        matched_ids=_as_list(report_data.get("MatchedIDs")),
        unmatched_ids=_as_list(report_data.get("UnmatchedIDs")),
        per_update_codes=per_update_codes,
        error=report_data.get("Error"),
    )


def split_ids(
    requested_ids: Iterable[str], report: InstallReport
) -> Dict[str, List[str]]:
    """
    Place every requested id into ``updated`` or ``failed``.

    A failed overall outcome fails every id. On success, unmatched ids and
    ids with an explicit failing per-update code are failed.
    """
    requested = list(requested_ids)
    outcome = interpret(report.result_code)
    if not outcome.success:
        return {"updated": [], "failed": requested}

    unmatched = set(report.unmatched_ids)
    updated = []
    failed = []
    for update_id in requested:
        if update_id in unmatched:
            failed.append(update_id)
            continue
        per_update = report.per_update_codes.get(update_id)
        if per_update is not None and not interpret(per_update).success:
            failed.append(update_id)
            continue
        updated.append(update_id)
    return {"updated": updated, "failed": failed}
