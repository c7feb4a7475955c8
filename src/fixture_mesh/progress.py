"""Progress callback plumbing shared by the long-running operations."""

from typing import Callable, List, Optional, Tuple

import logging

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, float, str], None]

STAGES = ("analyzing", "repairing", "decimating", "smoothing", "complete")


def emit(
    on_progress: Optional[ProgressCallback],
    stage: str,
    percent: float,
    message: str,
) -> None:
    """Invoke *on_progress* if given; callback errors never abort processing."""
    if on_progress is None:
        return
    percent = float(min(100.0, max(0.0, percent)))
    try:
        on_progress(stage, percent, message)
    except Exception as exc:
        logger.warning("Progress callback failed at %s %.0f%%: %s", stage, percent, exc)


class ProgressLog:
    """Callable collector of ``(stage, percent, message)`` events."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, float, str]] = []

    def __call__(self, stage: str, percent: float, message: str) -> None:
        self.events.append((stage, percent, message))

    def percents(self, stage: str) -> List[float]:
        return [p for s, p, _ in self.events if s == stage]

    def is_monotonic(self, stage: str) -> bool:
        values = self.percents(stage)
        return all(a <= b for a, b in zip(values, values[1:]))
