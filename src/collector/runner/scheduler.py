"""
Task scheduler for collection work units.

One work unit collects one record type for one bucket (or one namespace
for billing data). Units run on the context's worker pool; the submitting
thread only enqueues completion handles and, at the end, waits on all of
them in the barrier.
"""

import logging
import queue
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Tuple

from ..core.exceptions import CollectorError, RecordSourceError
from ..core.models import BucketKey, RecordType
from ..core.source import RecordSource
from ..storage.ingest_writer import IngestWriter
from .context import CollectionContext


logger = logging.getLogger(__name__)


@dataclass
class WorkUnit:
    """One bucket x one record type collection job."""
    bucket_key: BucketKey
    record_type: RecordType
    context: CollectionContext

    def __str__(self) -> str:
        return f"{self.record_type.value}:{self.bucket_key}"


@dataclass
class UnitResult:
    """Outcome of a completed work unit."""
    bucket_key: BucketKey
    record_type: RecordType
    pages: int = 0
    records: int = 0
    rejected: int = 0
    duration_ms: int = 0


@dataclass
class BarrierResult:
    """
    Aggregate outcome of all work units of a run.

    Attributes:
        completed: Results of the units that finished without error
        failures: (unit, error) pairs in submission order
    """
    completed: List[UnitResult] = field(default_factory=list)
    failures: List[Tuple[WorkUnit, BaseException]] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    @property
    def first_failure(self) -> Optional[BaseException]:
        return self.failures[0][1] if self.failures else None

    @property
    def records(self) -> int:
        return sum(r.records for r in self.completed)

    @property
    def rejected(self) -> int:
        return sum(r.rejected for r in self.completed)


class TaskScheduler:
    """
    Fans collection work out over a worker pool.

    Each unit pages through the record source registered for its record
    type and hands every non-empty page to the ingest writer, in source
    order. A unit that raises is not retried; its handle completes in a
    failed state and the barrier reports it.
    """

    def __init__(
        self,
        sources: Mapping[RecordType, RecordSource],
        writer: IngestWriter,
    ):
        """
        Initialize the scheduler.

        Args:
            sources: Record source per record type
            writer: Ingest writer shared by all units
        """
        self.sources = dict(sources)
        self.writer = writer

    def submit(
        self,
        bucket_key: BucketKey,
        record_type: RecordType,
        context: CollectionContext,
    ) -> Future:
        """
        Submit a work unit to the context's pool.

        Never blocks: units beyond the pool size wait in the pool's queue.

        Returns:
            Completion handle of the unit
        """
        unit = WorkUnit(bucket_key=bucket_key, record_type=record_type, context=context)
        future = context.executor.submit(self._run_unit, unit)
        context.pending.put((unit, future))
        logger.debug(f"Submitted work unit {unit}")
        return future

    def await_all(self, context: CollectionContext) -> BarrierResult:
        """
        Wait for every submitted unit of the run.

        All units are allowed to finish; failures are collected, never
        short-circuited.

        Returns:
            BarrierResult with completed units and failures
        """
        result = BarrierResult()

        while True:
            try:
                unit, future = context.pending.get_nowait()
            except queue.Empty:
                break

            try:
                result.completed.append(future.result())
            except Exception as e:
                result.failures.append((unit, e))

        if result.failures:
            logger.error(
                f"{result.failed_count} of {result.failed_count + len(result.completed)} "
                f"work units failed; first failure: {result.first_failure}",
                extra={"namespace": context.namespace},
            )

        return result

    def _run_unit(self, unit: WorkUnit) -> UnitResult:
        """Run one work unit on a worker thread."""
        log_extra = {
            "namespace": unit.bucket_key.namespace,
            "bucket": unit.bucket_key.bucket or None,
            "record_type": unit.record_type.value,
        }
        source = self.sources.get(unit.record_type)
        if source is None:
            raise CollectorError(f"No record source registered for {unit.record_type.value}")

        context = unit.context
        result = UnitResult(bucket_key=unit.bucket_key, record_type=unit.record_type)
        start_time = time.time()
        token = None

        logger.info(f"Collecting {unit} from {source.get_name()}", extra=log_extra)

        try:
            while True:
                page = source.list_page(unit.bucket_key, unit.record_type, token)

                if page.records:
                    write_result = self.writer.write_records(
                        unit.record_type,
                        unit.bucket_key,
                        page.records,
                        context.collection_time,
                    )
                    context.record_count.add(len(page.records))
                    result.pages += 1
                    result.records += len(page.records)
                    result.rejected += write_result.failed

                    if write_result.failed:
                        logger.warning(
                            f"{write_result.failed} documents rejected for {unit}",
                            extra=log_extra,
                        )

                if page.next_token is None:
                    break
                if page.next_token == token:
                    raise RecordSourceError(
                        f"Continuation token did not advance for {unit}: {token}",
                        source=source.get_name(),
                    )
                token = page.next_token
        except Exception as e:
            logger.error(f"Work unit {unit} failed: {e}", extra=log_extra)
            raise

        result.duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Collected {result.records} records in {result.pages} pages for {unit} "
            f"({result.duration_ms}ms)",
            extra=log_extra,
        )
        return result
