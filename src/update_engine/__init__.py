"""
Update orchestration engine.

Detects pending driver and operating-system updates, keeps the native
update service running, and installs a caller-selected subset of the
detected updates behind a best-effort restore point.
"""

from src.update_engine.core.models import UpdateKind
from src.update_engine.operations.update_manager import UpdateManager

__all__ = ["UpdateKind", "UpdateManager"]
