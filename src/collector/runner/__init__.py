"""
Runner module for orchestrating collection runs.
"""

from .context import AtomicCounter, CollectionContext
from .scheduler import TaskScheduler, WorkUnit, UnitResult, BarrierResult
from .collection_runner import (
    CollectionRunner, CollectionReport, COLLECT_DATA_CHOICES, record_types_for,
)

__all__ = [
    "AtomicCounter",
    "CollectionContext",
    "TaskScheduler",
    "WorkUnit",
    "UnitResult",
    "BarrierResult",
    "CollectionRunner",
    "CollectionReport",
    "COLLECT_DATA_CHOICES",
    "record_types_for",
]
