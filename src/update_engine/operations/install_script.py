"""
Install target preparation.

Caller-selected ids reach external tools only after validation against a
strict character set. The generated Windows install script is a scoped
resource: ``temporary_script`` writes it and always removes it on exit.
"""

import logging
import os
import re
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, List, Pattern

from src.i18n import _
from src.update_engine.core.async_utils import remove_file_async, write_file_async
from src.update_engine.core.errors import ValidationError
from src.update_engine.core.models import UpdateKind

logger = logging.getLogger(__name__)

# Windows Update identities are GUIDs
WINDOWS_UPDATE_ID_PATTERN = re.compile(r"^[A-Za-z0-9-]{1,64}$")
# softwareupdate labels: printable, no leading option dash
MACOS_LABEL_PATTERN = re.compile(r"^[^\-\x00-\x1f\x7f][^\x00-\x1f\x7f]{0,255}$")

_SEARCH_TYPES = {
    UpdateKind.DRIVER: "Driver",
    UpdateKind.SYSTEM: "Software",
}

WINDOWS_INSTALL_TEMPLATE = r"""
# Installs ONLY the selected updates; anything not listed is left alone
$TargetIDs = @(__TARGET_IDS__)
$ErrorActionPreference = "Stop"

function Write-Result($Code, $Reboot, $Matched, $Unmatched, $Updates, $Message) {
    $Result = [ordered]@{
        ResultCode = $Code
        RebootRequired = [bool]$Reboot
        MatchedIDs = @($Matched)
        UnmatchedIDs = @($Unmatched)
        Updates = @($Updates)
        Error = $Message
    }
    Write-Output ($Result | ConvertTo-Json -Compress -Depth 4)
}

try {
    Write-Host "=== Starting Update Process ==="
    Write-Host "Target updates: $($TargetIDs.Count)"

    $Session = New-Object -ComObject Microsoft.Update.Session
    $Searcher = $Session.CreateUpdateSearcher()
    $SearchResult = $Searcher.Search("IsInstalled=0 and Type='__SEARCH_TYPE__'")
    Write-Host "Found $($SearchResult.Updates.Count) available updates"

    $UpdatesToInstall = New-Object -ComObject Microsoft.Update.UpdateColl
    $Matched = @()
    foreach ($Update in $SearchResult.Updates) {
        $UpdateID = $Update.Identity.UpdateID
        if (($TargetIDs -contains $UpdateID) -and ($Matched -notcontains $UpdateID)) {
            if (-not $Update.EulaAccepted) { $Update.AcceptEula() }
            $UpdatesToInstall.Add($Update) | Out-Null
            $Matched += $UpdateID
            Write-Host "Selected: $($Update.Title)"
        }
    }
    $Unmatched = @($TargetIDs | Where-Object { $Matched -notcontains $_ })

    if ($UpdatesToInstall.Count -eq 0) {
        Write-Result 4 $false $Matched $Unmatched @() "None of the selected updates were found in available updates"
        exit 4
    }

    Write-Host "=== Downloading $($UpdatesToInstall.Count) update(s) ==="
    $Downloader = $Session.CreateUpdateDownloader()
    $Downloader.Updates = $UpdatesToInstall
    $DownloadResult = $Downloader.Download()
    Write-Host "Download Result Code: $($DownloadResult.ResultCode)"
    if (($DownloadResult.ResultCode -ne 2) -and ($DownloadResult.ResultCode -ne 3)) {
        Write-Result 4 $false $Matched $Unmatched @() "Download failed with code $($DownloadResult.ResultCode)"
        exit 4
    }

    Write-Host "=== Installing update(s) ==="
    $Installer = $Session.CreateUpdateInstaller()
    $Installer.Updates = $UpdatesToInstall
    $InstallResult = $Installer.Install()
    Write-Host "Installation Result Code: $($InstallResult.ResultCode)"
    Write-Host "Reboot Required: $($InstallResult.RebootRequired)"

    $PerUpdate = @()
    for ($i = 0; $i -lt $UpdatesToInstall.Count; $i++) {
        $PerUpdate += [ordered]@{
            UpdateID = $UpdatesToInstall.Item($i).Identity.UpdateID
            ResultCode = $InstallResult.GetUpdateResult($i).ResultCode
        }
    }

    Write-Result $InstallResult.ResultCode $InstallResult.RebootRequired $Matched $Unmatched $PerUpdate $null
    exit $InstallResult.ResultCode
} catch {
    Write-Result 4 $false @() $TargetIDs @() $_.Exception.Message
    exit 4
}
"""


def validate_ids(update_ids: Iterable[str], pattern: Pattern) -> List[str]:
    """
    Check every id against ``pattern``.

    Raises:
        ValidationError: naming the first id outside the allowed character set
    """
    validated = []
    for update_id in update_ids:
        if not isinstance(update_id, str) or not pattern.match(update_id):
            raise ValidationError(
                _("Update id contains characters that are not allowed: %r") % (update_id,)
            )
        validated.append(update_id)
    return validated


def render_windows_install_script(update_ids: Iterable[str], kind: UpdateKind) -> str:
    """Render the install script for exactly ``update_ids``."""
    ids = validate_ids(update_ids, WINDOWS_UPDATE_ID_PATTERN)
    if not ids:
        raise ValidationError(_("No update IDs provided"))
    target_ids = ",".join(f"'{update_id}'" for update_id in ids)
    return WINDOWS_INSTALL_TEMPLATE.replace("__TARGET_IDS__", target_ids).replace(
        "__SEARCH_TYPE__", _SEARCH_TYPES[kind]
    )


def build_macos_install_command(labels: Iterable[str]) -> List[str]:
    """Build the softwareupdate argument vector for exactly ``labels``."""
    validated = validate_ids(labels, MACOS_LABEL_PATTERN)
    if not validated:
        raise ValidationError(_("No update IDs provided"))
    return ["softwareupdate", "--install", *validated]


@asynccontextmanager
async def temporary_script(
    content: str, temp_dir: str, prefix: str = "update-install", suffix: str = ".ps1"
) -> AsyncIterator[str]:
    """
    Write ``content`` to a uniquely named file and remove it on every exit path.

    Removal failures are logged and never replace the operation's outcome.
    """
    script_path = os.path.join(temp_dir, f"{prefix}-{uuid.uuid4().hex}{suffix}")
    try:
        await write_file_async(script_path, content)
        logger.debug("Install script written to %s", script_path)
        yield script_path
    finally:
        try:
            await remove_file_async(script_path)
        except FileNotFoundError:
            pass
        except OSError as error:
            logger.warning(_("Failed to delete temporary script %s: %s"), script_path, error)
