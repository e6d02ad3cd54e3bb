"""
Unit tests for the task scheduler and collection context.
"""

import threading

import pytest

from collector.connectors import StaticRecordSource
from collector.connectors.static_source import synthetic_objects
from collector.core.exceptions import CollectorError, RecordSourceError
from collector.core.models import BucketDescriptor, BucketKey, Page, RecordType
from collector.core.source import RecordSource
from collector.runner import AtomicCounter, TaskScheduler
from collector.storage.mappings import OBJECT_INDEX


class TestAtomicCounter:
    """Tests for AtomicCounter."""

    def test_add_returns_new_value(self):
        counter = AtomicCounter()
        assert counter.add(5) == 5
        assert counter.add(3) == 8
        assert counter.value == 8

    def test_concurrent_adds(self):
        counter = AtomicCounter()

        def bump():
            for _ in range(1000):
                counter.add(1)

        threads = [threading.Thread(target=bump) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert counter.value == 8000


class TestTaskScheduler:
    """Tests for TaskScheduler submit/await."""

    @pytest.fixture
    def scheduler(self, static_source, writer):
        return TaskScheduler(
            sources={RecordType.OBJECT: static_source, RecordType.OBJECT_VERSION: static_source},
            writer=writer,
        )

    def test_paged_bucket_writes_every_page(self, scheduler, static_source, memory_backend, make_context):
        """Pages of 25000, 25000 and 4000 records: three writes, +54000."""
        key = BucketKey("ns1", "big")
        static_source.add_pages(key, RecordType.OBJECT, [
            synthetic_objects(25000, start=0),
            synthetic_objects(25000, start=25000),
            synthetic_objects(4000, start=50000),
        ])
        context = make_context()

        scheduler.submit(key, RecordType.OBJECT, context)
        barrier = scheduler.await_all(context)

        assert barrier.failed_count == 0
        assert context.record_count.value == 54000
        assert memory_backend.bulk_calls == [25000, 25000, 4000]
        assert memory_backend.count(OBJECT_INDEX) == 54000
        assert barrier.completed[0].pages == 3

    def test_empty_bucket_completes_without_writes(self, scheduler, memory_backend, make_context):
        context = make_context()

        future = scheduler.submit(BucketKey("ns1", "empty"), RecordType.OBJECT, context)
        barrier = scheduler.await_all(context)

        assert future.done()
        assert barrier.failed_count == 0
        assert barrier.completed[0].records == 0
        assert context.record_count.value == 0
        assert memory_backend.bulk_calls == []

    def test_one_failing_unit_does_not_stop_others(self, scheduler, static_source, memory_backend, make_context):
        context = make_context()
        keys = [BucketKey("ns1", f"b{i}") for i in range(5)]
        for i, key in enumerate(keys):
            static_source.add_pages(key, RecordType.OBJECT, [synthetic_objects(10, prefix=f"b{i}")])
        static_source.fail(keys[2], RecordType.OBJECT)

        for key in keys:
            scheduler.submit(key, RecordType.OBJECT, context)
        barrier = scheduler.await_all(context)

        assert barrier.failed_count == 1
        assert isinstance(barrier.first_failure, RecordSourceError)
        assert barrier.failures[0][0].bucket_key == keys[2]
        assert len(barrier.completed) == 4
        assert memory_backend.count(OBJECT_INDEX) == 40
        buckets = {doc["bucket"] for doc in memory_backend.search(OBJECT_INDEX)}
        assert buckets == {"b0", "b1", "b3", "b4"}

    @pytest.mark.parametrize("max_workers", [1, 3, 16])
    def test_record_count_independent_of_pool_size(
        self, scheduler, static_source, make_context, max_workers
    ):
        context = make_context(max_workers=max_workers)
        for i in range(12):
            key = BucketKey("ns1", f"b{i}")
            static_source.add_pages(key, RecordType.OBJECT, [
                synthetic_objects(i + 1, prefix=f"p1-{i}"),
                synthetic_objects(2, prefix=f"p2-{i}"),
            ])
            scheduler.submit(key, RecordType.OBJECT, context)

        barrier = scheduler.await_all(context)

        expected = sum(i + 1 + 2 for i in range(12))
        assert barrier.failed_count == 0
        assert context.record_count.value == expected
        assert barrier.records == expected

    def test_pages_written_in_source_order(self, scheduler, static_source, memory_backend, make_context):
        key = BucketKey("ns1", "ordered")
        static_source.add_pages(key, RecordType.OBJECT, [
            synthetic_objects(3, prefix="first"),
            synthetic_objects(2, prefix="second"),
        ])
        context = make_context()

        scheduler.submit(key, RecordType.OBJECT, context)
        scheduler.await_all(context)

        tokens = [call[2] for call in static_source.calls]
        assert tokens == [None, "1"]
        assert memory_backend.bulk_calls == [3, 2]

    def test_unregistered_record_type_fails_unit(self, scheduler, make_context):
        context = make_context()

        scheduler.submit(BucketKey("ns1", "a"), RecordType.QUERY_OBJECT, context)
        barrier = scheduler.await_all(context)

        assert barrier.failed_count == 1
        assert isinstance(barrier.first_failure, CollectorError)

    def test_stuck_token_fails_unit(self, writer, make_context):
        class StuckSource(RecordSource):
            def list_page(self, bucket_key, record_type, token=None):
                return Page(records=synthetic_objects(1), next_token="same")

            def get_name(self):
                return "stuck"

        scheduler = TaskScheduler(sources={RecordType.OBJECT: StuckSource()}, writer=writer)
        context = make_context()

        scheduler.submit(BucketKey("ns1", "a"), RecordType.OBJECT, context)
        barrier = scheduler.await_all(context)

        assert barrier.failed_count == 1
        assert isinstance(barrier.first_failure, RecordSourceError)
        assert context.record_count.value == 2

    def test_await_without_units(self, scheduler, make_context):
        barrier = scheduler.await_all(make_context())

        assert barrier.failed_count == 0
        assert barrier.completed == []
        assert barrier.first_failure is None

    def test_rejected_documents_reported(self, static_source, memory_backend, writer, make_context):
        key = BucketKey("ns1", "rej")
        records = synthetic_objects(4)
        static_source.add_pages(key, RecordType.OBJECT, [records])

        from collector.storage.documents import document_id
        context = make_context()
        memory_backend.reject_ids.add(
            document_id(OBJECT_INDEX, records[0], key, context.collection_time)
        )
        scheduler = TaskScheduler(sources={RecordType.OBJECT: static_source}, writer=writer)

        scheduler.submit(key, RecordType.OBJECT, context)
        barrier = scheduler.await_all(context)

        assert barrier.failed_count == 0
        assert barrier.rejected == 1
        assert context.record_count.value == 4
        assert memory_backend.count(OBJECT_INDEX) == 3


class TestCollectionContext:
    """Tests for CollectionContext."""

    def test_descriptor_is_immutable(self, make_context):
        context = make_context()
        with pytest.raises(Exception):
            context.namespace = "other"

    def test_catalog_copied(self, make_context):
        bucket = BucketDescriptor(name="a", namespace="ns1")
        context = make_context(buckets=[bucket])
        assert context.bucket_catalog == {BucketKey("ns1", "a"): bucket}
