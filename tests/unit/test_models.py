"""
Unit tests for the record models.
"""

import pytest
from datetime import date

from collector.core.models import (
    BucketDescriptor, BucketKey, DeleteMarker, DocumentBatch, ObjectDataType,
    ObjectVersion, Page, QueryObject, RecordKind, RecordType, RetentionQuery,
    S3Object, WriteResult,
)


class TestRecordType:
    """Tests for RecordType enum."""

    def test_namespace_scoped_types(self):
        assert RecordType.NAMESPACE_BILLING.namespace_scoped
        assert RecordType.BUCKET_BILLING.namespace_scoped
        assert RecordType.BUCKET.namespace_scoped

    def test_bucket_scoped_types(self):
        assert not RecordType.OBJECT.namespace_scoped
        assert not RecordType.OBJECT_VERSION.namespace_scoped
        assert not RecordType.QUERY_OBJECT.namespace_scoped

    def test_string_values(self):
        assert RecordType("object_version") == RecordType.OBJECT_VERSION
        assert ObjectDataType("object_versions") == ObjectDataType.OBJECT_VERSIONS


class TestBucketKey:
    """Tests for BucketKey."""

    def test_str(self):
        assert str(BucketKey("ns1", "photos")) == "ns1/photos"
        assert str(BucketKey("ns1")) == "ns1"

    def test_hashable_and_equal(self):
        keys = {BucketKey("ns1", "a"), BucketKey("ns1", "a"), BucketKey("ns1", "b")}
        assert len(keys) == 2

    def test_frozen(self):
        key = BucketKey("ns1", "a")
        with pytest.raises(Exception):
            key.bucket = "b"


class TestRecords:
    """Tests for record variants."""

    def test_kind_discriminator(self):
        assert S3Object(key="a").kind == RecordKind.OBJECT
        assert QueryObject(object_name="a").kind == RecordKind.QUERY_OBJECT
        assert ObjectVersion(key="a").kind == RecordKind.VERSION
        assert DeleteMarker(key="a").kind == RecordKind.DELETE_MARKER

    def test_kind_not_constructor_argument(self):
        with pytest.raises(TypeError):
            S3Object(key="a", kind=RecordKind.VERSION)

    def test_bucket_descriptor_key(self):
        bucket = BucketDescriptor(name="photos", namespace="ns1")
        assert bucket.key == BucketKey("ns1", "photos")
        assert bucket.search_metadata_enabled is False


class TestPageAndResults:
    """Tests for Page, DocumentBatch and WriteResult."""

    def test_page_exhausted(self):
        assert Page(records=[S3Object(key="a")]).exhausted
        assert not Page(records=[], next_token="a").exhausted

    def test_batch_len(self, collection_time):
        batch = DocumentBatch(index="idx", collection_time=collection_time)
        assert len(batch) == 0
        batch.documents.append(("id1", {"key": "a"}))
        assert len(batch) == 1

    def test_write_result_failed(self):
        assert WriteResult(written=3).failed == 0
        assert WriteResult(written=1, failed_ids={"a", "b"}).failed == 2

    def test_retention_query(self):
        query = RetentionQuery(ObjectDataType.OBJECT, date(2024, 1, 31))
        assert query.threshold_date == date(2024, 1, 31)
