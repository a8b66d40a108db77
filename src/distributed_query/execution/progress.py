from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from distributed_query.logging.logger import get_logger


log = get_logger("execution.progress")

ProgressCallback = Callable[[int], None]


def completion_percent(completed: int, total: int) -> int:
    if total <= 0:
        return 100
    return min(100, completed * 100 // total)


@dataclass(frozen=True)
class ProgressReporter:
    """Forwards completion percentages to an optional caller callback.

    No buffering and no retries: without a callback, reports are dropped. A
    callback that raises is logged and ignored so it cannot disturb dispatch.
    """

    callback: Optional[ProgressCallback] = None

    def report(self, percent: int) -> None:
        if self.callback is None:
            return
        try:
            self.callback(percent)
        except Exception:
            log.exception("Progress callback failed", extra={"percent": percent})
