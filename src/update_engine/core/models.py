"""
Data model shared by the detection chain and the installer pipeline.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class UpdateKind(str, Enum):
    """Update lanes: device drivers and operating-system updates."""

    DRIVER = "driver"
    SYSTEM = "system"


class PlatformTag(str, Enum):
    """Host operating system families the engine knows about."""

    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"
    UNKNOWN = "unknown"


class ServiceState(str, Enum):
    """Observable states of the native update service."""

    RUNNING = "running"
    STOPPED = "stopped"
    DISABLED = "disabled"
    UNAVAILABLE = "unavailable"
    ERROR = "error"


class PipelineStage(str, Enum):
    """Installer pipeline states, in execution order."""

    VALIDATING = "Validating"
    CREATING_RESTORE_POINT = "CreatingRestorePoint"
    PREPARING = "Preparing"
    DOWNLOADING_INSTALLING = "DownloadingInstalling"
    INTERPRETING = "Interpreting"
    COMPLETED = "Completed"
    FAILED = "Failed"


@dataclass
class UpdateCandidate:  # pylint: disable=too-many-instance-attributes
    """An update discovered but not yet installed."""

    id: str
    title: str
    category: str = ""
    publisher: str = ""
    description: str = ""
    size_estimate: Optional[int] = None
    reboot_required: bool = False
    download_state: Optional[str] = None
    informational_only: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "category": self.category,
            "publisher": self.publisher,
            "description": self.description,
            "size_estimate": self.size_estimate,
            "reboot_required": self.reboot_required,
            "download_state": self.download_state,
            "informational_only": self.informational_only,
        }


@dataclass
class DetectionSession:
    """All candidates produced by one successful detection call."""

    kind: UpdateKind
    method: str
    candidates: List[UpdateCandidate] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.candidates)

    def get(self, candidate_id: str) -> Optional[UpdateCandidate]:
        for candidate in self.candidates:
            if candidate.id == candidate_id:
                return candidate
        return None

    def ids(self) -> List[str]:
        return [candidate.id for candidate in self.candidates]


@dataclass
class ServiceStatus:
    """Fresh snapshot of the native update service."""

    state: ServiceState
    reason: str = ""

    @property
    def available(self) -> bool:
        return self.state == ServiceState.RUNNING


@dataclass
class InstallationRequest:
    """The caller's selection of candidate ids for one lane."""

    kind: UpdateKind
    ids: List[str]


@dataclass
class InstallationResult:  # pylint: disable=too-many-instance-attributes
    """Terminal outcome of one installation request."""

    success: bool
    updated_ids: List[str] = field(default_factory=list)
    failed_ids: List[str] = field(default_factory=list)
    reboot_required: bool = False
    result_code: Optional[int] = None
    result_text: str = ""
    message: str = ""
    error_type: Optional[str] = None


@dataclass
class ProgressEvent:
    """Checkpoint notification delivered to an optional progress sink."""

    stage: str
    status: str
    current: Optional[int] = None
    total: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "status": self.status,
            "current": self.current,
            "total": self.total,
        }
