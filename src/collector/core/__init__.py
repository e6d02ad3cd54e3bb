"""
Core abstractions and interfaces for the metadata collector.
"""

from .models import (
    RecordType, RecordKind, ObjectDataType, BucketKey, Owner,
    S3Object, QueryObject, ObjectVersion, DeleteMarker,
    NamespaceBillingInfo, BucketBillingInfo, BucketDescriptor,
    Page, DocumentBatch, WriteResult, RetentionQuery,
)
from .source import RecordSource
from .exceptions import (
    CollectorError, RecordSourceError, ManagementClientError,
    SearchBackendError, IndexAlreadyExistsError, SchemaBootstrapError,
    CollectorConfigError,
)

__all__ = [
    "RecordType",
    "RecordKind",
    "ObjectDataType",
    "BucketKey",
    "Owner",
    "S3Object",
    "QueryObject",
    "ObjectVersion",
    "DeleteMarker",
    "NamespaceBillingInfo",
    "BucketBillingInfo",
    "BucketDescriptor",
    "Page",
    "DocumentBatch",
    "WriteResult",
    "RetentionQuery",
    "RecordSource",
    "CollectorError",
    "RecordSourceError",
    "ManagementClientError",
    "SearchBackendError",
    "IndexAlreadyExistsError",
    "SchemaBootstrapError",
    "CollectorConfigError",
]
