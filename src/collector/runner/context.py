"""
Collection context shared by all work units of one collection run.
"""

import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping

from ..core.models import BucketDescriptor, BucketKey


class AtomicCounter:
    """Integer counter that can be incremented from many threads."""

    def __init__(self, initial: int = 0):
        self._value = initial
        self._lock = threading.Lock()

    def add(self, amount: int) -> int:
        """Add to the counter and return the new value."""
        with self._lock:
            self._value += amount
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


@dataclass(frozen=True)
class CollectionContext:
    """
    Run descriptor shared by the work units of one collection run.

    The descriptor itself never changes after construction: every document
    produced during the run carries ``collection_time``. Only the record
    counter and the pending-handle queue are mutated while the run is live.

    Attributes:
        namespace: Namespace being collected
        collection_time: Point-in-time stamp of the run
        bucket_catalog: Buckets to collect, by key
        executor: Worker pool the units run on
        record_count: Records collected so far across all units
        pending: Completion handles in submission order
    """
    namespace: str
    collection_time: datetime
    bucket_catalog: Mapping[BucketKey, BucketDescriptor]
    executor: ThreadPoolExecutor
    record_count: AtomicCounter = field(default_factory=AtomicCounter)
    pending: "queue.Queue" = field(default_factory=queue.Queue)

    @classmethod
    def create(
        cls,
        namespace: str,
        collection_time: datetime,
        bucket_catalog: Mapping[BucketKey, BucketDescriptor],
        max_workers: int,
    ) -> "CollectionContext":
        """Create a context with a fresh worker pool of ``max_workers`` threads."""
        executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=f"collector-{namespace}",
        )
        return cls(
            namespace=namespace,
            collection_time=collection_time,
            bucket_catalog=dict(bucket_catalog),
            executor=executor,
        )

    def close(self) -> None:
        """Shut the worker pool down, waiting for running units."""
        self.executor.shutdown(wait=True)
