"""Pure domain layer: count values, workflows, clock.  No I/O."""

from count_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from count_kernel.domain.count import (
    AreaStatus,
    CountArea,
    CountItem,
    CountSession,
    CountStatus,
    CountType,
)
from count_kernel.domain.workflow import AREA_WORKFLOW, SESSION_WORKFLOW, Workflow

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "AreaStatus",
    "CountArea",
    "CountItem",
    "CountSession",
    "CountStatus",
    "CountType",
    "Workflow",
    "SESSION_WORKFLOW",
    "AREA_WORKFLOW",
]
