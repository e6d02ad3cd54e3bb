"""
Collection runner: one collection run per namespace.

Bootstraps the destination indices, builds the run context, plans and
submits the work units, waits on the barrier and reports.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from ..config.config_loader import SchedulerConfig
from ..core.models import BucketDescriptor, BucketKey, RecordType
from ..storage.ingest_writer import IngestWriter
from ..storage.mappings import schemas_for
from .context import CollectionContext
from .scheduler import BarrierResult, TaskScheduler


logger = logging.getLogger(__name__)


BILLING_RECORD_TYPES = [
    RecordType.NAMESPACE_BILLING,
    RecordType.BUCKET_BILLING,
    RecordType.BUCKET,
]

COLLECT_DATA_CHOICES: Dict[str, List[RecordType]] = {
    "objects": [RecordType.OBJECT],
    "object-versions": [RecordType.OBJECT_VERSION],
    "query-objects": [RecordType.QUERY_OBJECT],
    "billing": BILLING_RECORD_TYPES,
    "all": BILLING_RECORD_TYPES + [RecordType.OBJECT, RecordType.OBJECT_VERSION],
}


def record_types_for(collect_data: str) -> List[RecordType]:
    """Map a --collect-data choice to the record types it collects."""
    try:
        return list(COLLECT_DATA_CHOICES[collect_data])
    except KeyError:
        raise ValueError(
            f"Unsupported data collection action: {collect_data} "
            f"(expected one of {', '.join(COLLECT_DATA_CHOICES)})"
        )


@dataclass
class CollectionReport:
    """Summary of one collection run."""
    run_id: str
    namespace: str
    collection_time: datetime
    units_submitted: int
    record_count: int
    failed_count: int
    rejected_count: int = 0
    first_failure: Optional[BaseException] = None
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.failed_count == 0


class CollectionRunner:
    """
    Runs collection for a namespace.

    Destination indices are bootstrapped before any work unit starts, so a
    bootstrap failure aborts the run without touching the record sources.
    """

    def __init__(
        self,
        scheduler: TaskScheduler,
        writer: IngestWriter,
        catalog_provider,
        config: Optional[SchedulerConfig] = None,
    ):
        """
        Initialize the collection runner.

        Args:
            scheduler: Task scheduler to fan units out with
            writer: Ingest writer used for schema bootstrap
            catalog_provider: Object with ``list_buckets(namespace)``
            config: Worker pool configuration (defaults if not provided)
        """
        self.scheduler = scheduler
        self.writer = writer
        self.catalog_provider = catalog_provider
        self.config = config or SchedulerConfig()

    def collect(
        self,
        namespace: str,
        record_types: Sequence[RecordType],
        collection_time: Optional[datetime] = None,
        run_id: Optional[str] = None,
    ) -> CollectionReport:
        """
        Run one collection for a namespace.

        Args:
            namespace: Namespace to collect
            record_types: Record types to collect
            collection_time: Stamp for every document of the run (now if not given)
            run_id: Optional run identifier (auto-generated if not provided)

        Returns:
            CollectionReport for the run

        Raises:
            SchemaBootstrapError if a destination cannot be created
            RecordSourceError if the bucket catalog cannot be fetched
        """
        run_id = run_id or str(uuid.uuid4())
        if collection_time is None:
            collection_time = datetime.now(timezone.utc).replace(microsecond=0)
        log_extra = {"run_id": run_id, "namespace": namespace}

        logger.info(
            f"Starting collection run {run_id} for namespace {namespace}: "
            f"{[rt.value for rt in record_types]} at {collection_time.isoformat()}",
            extra=log_extra,
        )
        start_time = time.time()

        for schema in schemas_for(record_types):
            self.writer.ensure_schema(schema)

        catalog = self._load_catalog(namespace, record_types)
        context = CollectionContext.create(
            namespace=namespace,
            collection_time=collection_time,
            bucket_catalog=catalog,
            max_workers=self.config.max_workers,
        )

        submitted = 0
        try:
            for bucket_key, record_type in self.plan_units(context, record_types):
                self.scheduler.submit(bucket_key, record_type, context)
                submitted += 1
            barrier = self.scheduler.await_all(context)
        finally:
            context.close()

        report = self._report(run_id, context, submitted, barrier, time.time() - start_time)
        logger.info(
            f"Collection run {run_id} complete: units={report.units_submitted}, "
            f"records={report.record_count}, failed={report.failed_count}, "
            f"rejected={report.rejected_count} ({report.duration_seconds:.1f}s)",
            extra=log_extra,
        )
        return report

    def plan_units(
        self,
        context: CollectionContext,
        record_types: Sequence[RecordType],
    ) -> Iterator[Tuple[BucketKey, RecordType]]:
        """
        Yield the (bucket key, record type) pairs to submit.

        Namespace-scoped record types get one unit per namespace; query
        objects are only collected from buckets with metadata search on.
        """
        buckets = sorted(context.bucket_catalog.items(), key=lambda item: str(item[0]))

        for record_type in record_types:
            if record_type.namespace_scoped:
                yield BucketKey(context.namespace), record_type
                continue

            for bucket_key, bucket in buckets:
                if record_type == RecordType.QUERY_OBJECT and not bucket.search_metadata_enabled:
                    logger.debug(f"Skipping query collection for {bucket_key}: metadata search disabled")
                    continue
                yield bucket_key, record_type

    def _load_catalog(
        self,
        namespace: str,
        record_types: Sequence[RecordType],
    ) -> Dict[BucketKey, BucketDescriptor]:
        if all(rt.namespace_scoped for rt in record_types):
            return {}

        buckets: List[BucketDescriptor] = self.catalog_provider.list_buckets(namespace)
        logger.info(f"Found {len(buckets)} buckets in namespace {namespace}")
        return {bucket.key: bucket for bucket in buckets}

    def _report(
        self,
        run_id: str,
        context: CollectionContext,
        submitted: int,
        barrier: BarrierResult,
        duration: float,
    ) -> CollectionReport:
        return CollectionReport(
            run_id=run_id,
            namespace=context.namespace,
            collection_time=context.collection_time,
            units_submitted=submitted,
            record_count=context.record_count.value,
            failed_count=barrier.failed_count,
            rejected_count=barrier.rejected,
            first_failure=barrier.first_failure,
            duration_seconds=duration,
        )
