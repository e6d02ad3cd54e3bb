"""
Unit tests for the ingest writer.
"""

import threading

import pytest

from collector.connectors.static_source import synthetic_objects
from collector.core.exceptions import SchemaBootstrapError
from collector.core.models import BucketKey, DocumentBatch, RecordType
from collector.storage import InMemorySearchBackend, IngestWriter
from collector.storage.documents import build_batch
from collector.storage.mappings import OBJECT_INDEX, OBJECT_SCHEMA, OBJECT_VERSION_SCHEMA


KEY = BucketKey("ns1", "photos")


class TestEnsureSchema:
    """Tests for destination bootstrap."""

    def test_creates_missing_index(self, writer, memory_backend):
        assert writer.ensure_schema(OBJECT_SCHEMA) is True
        assert OBJECT_INDEX in memory_backend.schemas
        assert memory_backend.create_calls == 1

    def test_existing_index_not_recreated(self, writer, memory_backend):
        memory_backend.create_index(OBJECT_SCHEMA)

        assert writer.ensure_schema(OBJECT_SCHEMA) is False
        assert memory_backend.create_calls == 1

    def test_second_call_is_cached(self, writer, memory_backend):
        writer.ensure_schema(OBJECT_SCHEMA)
        calls_before = len(memory_backend.calls)

        assert writer.ensure_schema(OBJECT_SCHEMA) is False
        assert len(memory_backend.calls) == calls_before

    def test_concurrent_writers_create_once(self):
        """N writers racing on one destination: one creation, N returns."""
        backend = InMemorySearchBackend(create_delay=0.01)
        writers = [IngestWriter(backend) for _ in range(8)]
        barrier = threading.Barrier(len(writers))
        results = []
        errors = []

        def bootstrap(w):
            barrier.wait()
            try:
                results.append(w.ensure_schema(OBJECT_SCHEMA))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=bootstrap, args=(w,)) for w in writers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(results) == 8
        assert results.count(True) == 1
        assert backend.create_calls == 1

    def test_concurrent_calls_on_shared_writer(self, writer, memory_backend):
        threads = [
            threading.Thread(target=writer.ensure_schema, args=(OBJECT_VERSION_SCHEMA,))
            for _ in range(10)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert memory_backend.create_calls == 1

    def test_backend_failure_is_bootstrap_error(self, writer, memory_backend):
        memory_backend.fail_create = True

        with pytest.raises(SchemaBootstrapError) as exc_info:
            writer.ensure_schema(OBJECT_SCHEMA)

        assert exc_info.value.index_name == OBJECT_INDEX


class TestWriteBatch:
    """Tests for bulk writes."""

    def test_empty_batch_is_noop(self, writer, memory_backend, collection_time):
        result = writer.write_batch(DocumentBatch(index=OBJECT_INDEX, collection_time=collection_time))

        assert result.written == 0
        assert result.failed == 0
        assert memory_backend.bulk_calls == []

    def test_writes_all_documents_in_one_bulk(self, writer, memory_backend, collection_time):
        batch = build_batch(OBJECT_INDEX, synthetic_objects(50), KEY, collection_time)

        result = writer.write_batch(batch)

        assert result.written == 50
        assert memory_backend.bulk_calls == [50]
        assert memory_backend.count(OBJECT_INDEX) == 50

    def test_partial_failure_keeps_accepted(self, memory_backend, collection_time):
        batch = build_batch(OBJECT_INDEX, synthetic_objects(10), KEY, collection_time)
        rejected = {batch.documents[2][0], batch.documents[7][0]}
        memory_backend.reject_ids.update(rejected)
        writer = IngestWriter(memory_backend)

        result = writer.write_batch(batch)

        assert result.written == 8
        assert result.failed_ids == rejected
        assert memory_backend.count(OBJECT_INDEX) == 8

    def test_rewrite_same_run_is_idempotent(self, writer, memory_backend, collection_time):
        records = synthetic_objects(5)
        writer.write_records(RecordType.OBJECT, KEY, records, collection_time)
        writer.write_records(RecordType.OBJECT, KEY, records, collection_time)

        assert memory_backend.count(OBJECT_INDEX) == 5


class TestWriteRecords:
    """Tests for record-level writes."""

    def test_bootstraps_destination_on_first_write(self, writer, memory_backend, collection_time):
        result = writer.write_records(RecordType.OBJECT, KEY, synthetic_objects(3), collection_time)

        assert result.written == 3
        assert memory_backend.create_calls == 1

    def test_empty_page_does_not_touch_backend(self, writer, memory_backend, collection_time):
        result = writer.write_records(RecordType.OBJECT, KEY, [], collection_time)

        assert result.written == 0
        assert memory_backend.calls == []

    def test_documents_carry_collection_time(self, writer, memory_backend, collection_time):
        writer.write_records(RecordType.OBJECT, KEY, synthetic_objects(2), collection_time)

        docs = memory_backend.search(OBJECT_INDEX)
        assert {d["collection_time"] for d in docs} == {"2024-03-15T10:30:00+00:00"}

    def test_get_name(self, writer):
        assert writer.get_name() == "elasticsearch"
