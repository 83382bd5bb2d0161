#!/usr/bin/env python3
"""
Windows Detection Methods for the update engine.

Three strategies, from most to least capable:
- PSWindowsUpdate module (Get-WUList)
- Windows Update Agent COM API (Microsoft.Update.Session searcher)
- Problem-device enumeration (Win32_PnPEntity with a non-zero error code),
  which can list devices that need a driver but cannot install anything
"""

import logging
from typing import Any, Dict

from src.i18n import _
from src.update_engine.collection.detection_base import (
    DetectionMethod,
    MethodOutcome,
    normalize_records,
    unique_candidates,
)
from src.update_engine.core.models import PlatformTag, UpdateCandidate, UpdateKind

logger = logging.getLogger(__name__)

# Projection applied to every IUpdate object, whichever API returned it
_UPDATE_RECORD_SCRIPT = """
function ConvertTo-UpdateRecord($Update) {
    $categories = @()
    if ($Update.Categories) {
        foreach ($cat in $Update.Categories) { $categories += $cat.Name }
    }
    [pscustomobject]@{
        UpdateID = $Update.Identity.UpdateID
        Title = $Update.Title
        Description = $Update.Description
        Categories = ($categories -join ', ')
        DriverClass = $Update.DriverClass
        DriverProvider = $Update.DriverProvider
        DriverManufacturer = $Update.DriverManufacturer
        SizeInBytes = $Update.MaxDownloadSize
        IsDownloaded = $Update.IsDownloaded
        RebootRequired = ($Update.InstallationBehavior.RebootBehavior -ne 0)
    }
}
"""

_EMIT_RECORDS_SCRIPT = """
    $records = @()
    foreach ($update in $updates) { $records += ConvertTo-UpdateRecord $update }
    if ($records.Count -eq 0) { Write-Output "null" }
    else { ConvertTo-Json -InputObject $records -Depth 3 -Compress }
"""

_UPDATE_TYPES = {
    UpdateKind.DRIVER: "Driver",
    UpdateKind.SYSTEM: "Software",
}


def candidate_from_update_record(record: Dict[str, Any], kind: UpdateKind) -> UpdateCandidate:
    """Build an UpdateCandidate from a projected IUpdate record."""
    if kind == UpdateKind.DRIVER:
        category = record.get("DriverClass") or record.get("Categories") or "Driver"
        publisher = record.get("DriverProvider") or record.get("DriverManufacturer") or ""
    else:
        category = record.get("Categories") or "Windows Update"
        publisher = "Microsoft"

    size = record.get("SizeInBytes")
    try:
        size = int(size) if size is not None else None
    except (TypeError, ValueError):
        size = None

    is_downloaded = record.get("IsDownloaded")
    return UpdateCandidate(
        id=str(record.get("UpdateID") or ""),
        title=record.get("Title") or _("Unknown Update"),
        category=str(category),
        publisher=str(publisher),
        description=record.get("Description") or "",
        size_estimate=size,
        reboot_required=bool(record.get("RebootRequired", False)),
        download_state=(
            None
            if is_downloaded is None
            else ("downloaded" if is_downloaded else "not_downloaded")
        ),
    )


class ModuleBasedDetection(DetectionMethod):
    """Detect updates through the PSWindowsUpdate PowerShell module."""

    name = "module"
    platform = PlatformTag.WINDOWS
    kinds = (UpdateKind.DRIVER, UpdateKind.SYSTEM)
    requires_service = True

    def build_script(self, kind: UpdateKind) -> str:
        if self.config.should_install_module():
            ensure_module = """
        Install-PackageProvider -Name NuGet -MinimumVersion 2.8.5.201 -Force -Scope AllUsers | Out-Null
        Install-Module -Name PSWindowsUpdate -Force -Scope AllUsers -AllowClobber | Out-Null
"""
        else:
            ensure_module = """
        Write-Output "ERROR: PSWindowsUpdate module is not installed"
        exit 1
"""
        return f"""
$ErrorActionPreference = "Stop"
{_UPDATE_RECORD_SCRIPT}
try {{
    if (-not (Get-Module -ListAvailable -Name PSWindowsUpdate)) {{{ensure_module}    }}
    Import-Module PSWindowsUpdate
    $updates = Get-WUList -MicrosoftUpdate -UpdateType {_UPDATE_TYPES[kind]}
{_EMIT_RECORDS_SCRIPT}
}} catch {{
    Write-Output "ERROR: $($_.Exception.Message)"
}}
"""

    async def detect(self, kind: UpdateKind, timeout: float) -> MethodOutcome:
        logger.debug(_("Detecting %s updates with PSWindowsUpdate"), kind.value)
        output = await self._run_powershell(self.build_script(kind), timeout)
        records = normalize_records(output)
        candidates = [candidate_from_update_record(r, kind) for r in records]
        return MethodOutcome(candidates=unique_candidates(candidates))


class NativeApiDetection(DetectionMethod):
    """Detect updates through the Windows Update Agent COM API."""

    name = "native"
    platform = PlatformTag.WINDOWS
    kinds = (UpdateKind.DRIVER, UpdateKind.SYSTEM)
    requires_service = True

    def build_script(self, kind: UpdateKind) -> str:
        criteria = f"IsInstalled=0 and IsHidden=0 and Type='{_UPDATE_TYPES[kind]}'"
        return f"""
$ErrorActionPreference = "Stop"
{_UPDATE_RECORD_SCRIPT}
try {{
    $session = New-Object -ComObject Microsoft.Update.Session
    $searcher = $session.CreateUpdateSearcher()
    $searcher.Online = $true
    $updates = $searcher.Search("{criteria}").Updates
{_EMIT_RECORDS_SCRIPT}
}} catch {{
    Write-Output "ERROR: $($_.Exception.Message)"
}}
"""

    async def detect(self, kind: UpdateKind, timeout: float) -> MethodOutcome:
        logger.debug(_("Detecting %s updates with the Windows Update API"), kind.value)
        output = await self._run_powershell(self.build_script(kind), timeout)
        records = normalize_records(output)
        candidates = [candidate_from_update_record(r, kind) for r in records]
        return MethodOutcome(candidates=unique_candidates(candidates))


class DeviceEnumerationDetection(DetectionMethod):
    """List devices reporting a driver problem. Enumeration only."""

    name = "device_enumeration"
    platform = PlatformTag.WINDOWS
    kinds = (UpdateKind.DRIVER,)
    informational_only = True

    SCRIPT = """
$ErrorActionPreference = "Stop"
try {
    $devices = Get-CimInstance -ClassName Win32_PnPEntity |
        Where-Object { $_.ConfigManagerErrorCode -ne 0 }
    $records = @()
    foreach ($device in $devices) {
        $records += [pscustomobject]@{
            DeviceID = $device.PNPDeviceID
            Name = $device.Name
            PNPClass = $device.PNPClass
            Manufacturer = $device.Manufacturer
            ErrorCode = $device.ConfigManagerErrorCode
        }
    }
    if ($records.Count -eq 0) { Write-Output "null" }
    else { ConvertTo-Json -InputObject $records -Depth 2 -Compress }
} catch {
    Write-Output "ERROR: $($_.Exception.Message)"
}
"""

    async def detect(self, kind: UpdateKind, timeout: float) -> MethodOutcome:
        logger.debug(_("Enumerating devices with driver problems"))
        output = await self._run_powershell(self.SCRIPT, timeout)
        candidates = []
        for record in normalize_records(output):
            name = record.get("Name") or _("Unknown device")
            candidates.append(
                UpdateCandidate(
                    id=str(record.get("DeviceID") or ""),
                    title=name,
                    category=record.get("PNPClass") or _("Unknown"),
                    publisher=record.get("Manufacturer") or "",
                    description=_("Device reports problem code %s")
                    % record.get("ErrorCode"),
                    informational_only=True,
                )
            )
        return MethodOutcome(
            candidates=unique_candidates(candidates), informational_only=True
        )
