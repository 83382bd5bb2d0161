"""
Progress reporting for detection and installation runs.

A reporter wraps an optional callback. Delivery is guarded: a missing sink
is a no-op and an exception raised by the sink is logged, never propagated,
so subscribers cannot alter control flow or outcome.
"""

import logging
from typing import Callable, Optional

from src.i18n import _
from src.update_engine.core.models import ProgressEvent

logger = logging.getLogger(__name__)

ProgressSink = Callable[[ProgressEvent], None]


class ProgressReporter:
    """Delivers ProgressEvents for a single pipeline or detection run."""

    def __init__(self, sink: Optional[ProgressSink] = None):
        self.sink = sink
        self._last_current = 0

    def emit(
        self,
        stage: str,
        status: str,
        current: Optional[int] = None,
        total: Optional[int] = None,
    ) -> None:
        """Send a checkpoint event; ``current`` never moves backwards within a run."""
        if current is not None:
            current = max(current, self._last_current)
            self._last_current = current

        if self.sink is None:
            return

        event = ProgressEvent(stage=stage, status=status, current=current, total=total)
        try:
            self.sink(event)
        except Exception as error:  # pylint: disable=broad-exception-caught
            logger.warning(_("Progress subscriber raised an error: %s"), error)
