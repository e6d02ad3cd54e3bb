"""
Ingest writer: bulk-writes pages of records into their destination index.
"""

import logging
import threading
import time
from datetime import datetime
from typing import Any, Iterable, Set

from ..core.exceptions import IndexAlreadyExistsError, SchemaBootstrapError, SearchBackendError
from ..core.models import BucketKey, DocumentBatch, RecordType, WriteResult
from .backend import SearchBackend
from .documents import build_batch
from .mappings import SCHEMA_BY_RECORD_TYPE, IndexSchema


logger = logging.getLogger(__name__)


class IngestWriter:
    """
    Writes document batches to the search backend.

    Destinations are bootstrapped at most once per writer: the first
    ensure_schema call for an index checks for it and creates it when
    absent. Another process winning the creation race is not an error.
    The writer holds no per-run state and is safe to share between
    worker threads.
    """

    def __init__(self, backend: SearchBackend):
        """
        Initialize the ingest writer.

        Args:
            backend: Search backend to write to
        """
        self.backend = backend
        self._schema_lock = threading.Lock()
        self._bootstrapped: Set[str] = set()

    def ensure_schema(self, schema: IndexSchema) -> bool:
        """
        Make sure a destination index exists with its mapping.

        Args:
            schema: Destination to bootstrap

        Returns:
            True if this call created the index, False if it already existed

        Raises:
            SchemaBootstrapError if the index can neither be found nor created
        """
        with self._schema_lock:
            if schema.name in self._bootstrapped:
                return False

            try:
                if self.backend.index_exists(schema.name):
                    logger.debug(f"Index already present: {schema.name}")
                    self._bootstrapped.add(schema.name)
                    return False

                self.backend.create_index(schema)
            except IndexAlreadyExistsError:
                logger.info(f"Index {schema.name} was created concurrently, using it")
                self._bootstrapped.add(schema.name)
                return False
            except SearchBackendError as e:
                logger.error(f"Unable to create index {schema.name}: {e}")
                raise SchemaBootstrapError(
                    f"Unable to create index {schema.name}: {e}",
                    index_name=schema.name,
                ) from e

            self._bootstrapped.add(schema.name)
            logger.info(f"Index created: {schema.name}")
            return True

    def write_batch(self, batch: DocumentBatch) -> WriteResult:
        """
        Write a batch as a single bulk request.

        Rejected documents are reported in the result; documents the
        backend accepted stay written.

        Args:
            batch: Documents to write

        Returns:
            WriteResult with the written count and the rejected ids
        """
        if not batch.documents:
            return WriteResult()

        actions = [
            {
                "_op_type": "index",
                "_index": batch.index,
                "_id": doc_id,
                "_source": document,
            }
            for doc_id, document in batch.documents
        ]

        start_time = time.time()
        outcome = self.backend.bulk(actions)
        duration_ms = int((time.time() - start_time) * 1000)

        logger.info(
            f"Took {duration_ms} ms to index [{len(actions)}] items in index: {batch.index}"
        )
        if outcome.failed_ids:
            logger.error(
                f"{len(outcome.failed_ids)} of {len(actions)} documents rejected "
                f"by index: {batch.index}"
            )

        return WriteResult(written=outcome.succeeded, failed_ids=set(outcome.failed_ids))

    def write_records(
        self,
        record_type: RecordType,
        bucket_key: BucketKey,
        records: Iterable[Any],
        collection_time: datetime,
    ) -> WriteResult:
        """
        Transform a page of records and write it to its destination.

        The destination is bootstrapped on first use.
        """
        schema = SCHEMA_BY_RECORD_TYPE[record_type]
        batch = build_batch(schema.name, records, bucket_key, collection_time)
        if not batch.documents:
            return WriteResult()

        self.ensure_schema(schema)
        return self.write_batch(batch)

    def get_name(self) -> str:
        """Return the writer name."""
        return "elasticsearch"

    def close(self) -> None:
        self.backend.close()
