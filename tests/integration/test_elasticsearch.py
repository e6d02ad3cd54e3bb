"""
Integration tests against a live Elasticsearch cluster.

These tests verify that:
1. Destination indices are created with their mapping
2. Re-running a collection overwrites instead of duplicating
3. Purge removes documents collected before the threshold day only
"""

from datetime import date, datetime, timezone

import pytest

from collector.connectors.static_source import synthetic_objects
from collector.core.models import BucketKey, RecordType
from collector.storage import IngestWriter, PurgeEngine
from collector.storage.mappings import COLLECTION_TIME, OBJECT_INDEX, OBJECT_SCHEMA


KEY = BucketKey("ns1", "photos")
OLD_RUN = datetime(2024, 3, 1, 23, 59, 0, tzinfo=timezone.utc)
NEW_RUN = datetime(2024, 3, 15, 0, 0, 0, tzinfo=timezone.utc)


def _count(backend, index: str) -> int:
    backend.client.indices.refresh(index=index)
    return backend.client.count(index=index)["count"]


@pytest.mark.integration
class TestIndexBootstrap:
    """Tests for destination index creation."""

    def test_index_created_with_mapping(self, elastic_backend):
        writer = IngestWriter(elastic_backend)

        assert writer.ensure_schema(OBJECT_SCHEMA) is True
        assert writer.ensure_schema(OBJECT_SCHEMA) is False

        mapping = elastic_backend.client.indices.get_mapping(index=OBJECT_INDEX)
        properties = mapping[OBJECT_INDEX]["mappings"]["properties"]
        assert properties[COLLECTION_TIME]["type"] == "date"

    def test_second_writer_sees_existing_index(self, elastic_backend):
        IngestWriter(elastic_backend).ensure_schema(OBJECT_SCHEMA)

        assert IngestWriter(elastic_backend).ensure_schema(OBJECT_SCHEMA) is False


@pytest.mark.integration
class TestIngest:
    """Tests for bulk writes."""

    def test_rewrite_same_run_is_idempotent(self, elastic_backend):
        writer = IngestWriter(elastic_backend)
        records = synthetic_objects(50)

        writer.write_records(RecordType.OBJECT, KEY, records, NEW_RUN)
        result = writer.write_records(RecordType.OBJECT, KEY, records, NEW_RUN)

        assert result.written == 50
        assert _count(elastic_backend, OBJECT_INDEX) == 50

    def test_each_run_adds_a_snapshot(self, elastic_backend):
        writer = IngestWriter(elastic_backend)
        records = synthetic_objects(20)

        writer.write_records(RecordType.OBJECT, KEY, records, OLD_RUN)
        writer.write_records(RecordType.OBJECT, KEY, records, NEW_RUN)

        assert _count(elastic_backend, OBJECT_INDEX) == 40


@pytest.mark.integration
class TestPurge:
    """Tests for retention purge."""

    def test_purge_keeps_threshold_day(self, elastic_backend):
        writer = IngestWriter(elastic_backend)
        writer.write_records(RecordType.OBJECT, KEY, synthetic_objects(30), OLD_RUN)
        writer.write_records(RecordType.OBJECT, KEY, synthetic_objects(10), NEW_RUN)
        elastic_backend.client.indices.refresh(index=OBJECT_INDEX)

        deleted = PurgeEngine(elastic_backend).purge("object", date(2024, 3, 15))

        assert deleted == 30
        assert _count(elastic_backend, OBJECT_INDEX) == 10

    def test_purge_missing_index(self, elastic_backend):
        assert PurgeEngine(elastic_backend).purge("object_versions", date(2024, 3, 15)) == 0
