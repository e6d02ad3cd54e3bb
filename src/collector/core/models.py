"""
Core data models for the metadata collector.

Records coming out of a record source form a tagged union: every record
class carries a ``kind`` discriminator that the document transforms
dispatch on.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set


class RecordType(str, Enum):
    """Type of collection job a work unit runs."""
    OBJECT = "object"
    QUERY_OBJECT = "query_object"
    OBJECT_VERSION = "object_version"
    NAMESPACE_BILLING = "namespace_billing"
    BUCKET_BILLING = "bucket_billing"
    BUCKET = "bucket"

    @property
    def namespace_scoped(self) -> bool:
        """True for record types collected once per namespace, not per bucket."""
        return self in (
            RecordType.NAMESPACE_BILLING,
            RecordType.BUCKET_BILLING,
            RecordType.BUCKET,
        )


class RecordKind(str, Enum):
    """Discriminator of a single record variant."""
    OBJECT = "object"
    QUERY_OBJECT = "query_object"
    VERSION = "version"
    DELETE_MARKER = "delete_marker"
    NAMESPACE_BILLING = "namespace_billing"
    BUCKET_BILLING = "bucket_billing"
    BUCKET = "bucket"


class ObjectDataType(str, Enum):
    """Data types the purge engine knows how to sweep."""
    OBJECT = "object"
    OBJECT_VERSIONS = "object_versions"


@dataclass(frozen=True)
class BucketKey:
    """
    Identifies a bucket within a namespace.

    Namespace-level work (billing, bucket descriptors) uses an empty bucket.
    """
    namespace: str
    bucket: str = ""

    def __str__(self) -> str:
        if self.bucket:
            return f"{self.namespace}/{self.bucket}"
        return self.namespace


@dataclass
class Owner:
    """Object owner as reported by the listing APIs."""
    id: Optional[str] = None
    display_name: Optional[str] = None


@dataclass
class S3Object:
    """Entry of a plain object listing."""
    key: str
    size: Optional[int] = None
    last_modified: Optional[datetime] = None
    e_tag: Optional[str] = None
    owner: Optional[Owner] = None
    kind: RecordKind = field(default=RecordKind.OBJECT, init=False)


@dataclass
class QueryObject:
    """
    Object matched by a metadata-search query.

    ``metadata`` is the open bag of system and user metadata pairs the
    query returned for the object.
    """
    object_name: str
    object_id: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    kind: RecordKind = field(default=RecordKind.QUERY_OBJECT, init=False)


@dataclass
class ObjectVersion:
    """A version entry of a version listing."""
    key: str
    version_id: Optional[str] = None
    is_latest: bool = False
    size: Optional[int] = None
    last_modified: Optional[datetime] = None
    e_tag: Optional[str] = None
    owner: Optional[Owner] = None
    kind: RecordKind = field(default=RecordKind.VERSION, init=False)


@dataclass
class DeleteMarker:
    """A delete marker entry of a version listing."""
    key: str
    version_id: Optional[str] = None
    is_latest: bool = False
    last_modified: Optional[datetime] = None
    owner: Optional[Owner] = None
    kind: RecordKind = field(default=RecordKind.DELETE_MARKER, init=False)


@dataclass
class NamespaceBillingInfo:
    """Namespace level billing totals."""
    namespace: str
    total_size: Optional[float] = None
    total_size_unit: Optional[str] = None
    total_objects: Optional[int] = None
    kind: RecordKind = field(default=RecordKind.NAMESPACE_BILLING, init=False)


@dataclass
class BucketBillingInfo:
    """Bucket level billing totals."""
    name: str
    namespace: str
    total_size: Optional[float] = None
    total_size_unit: Optional[str] = None
    total_objects: Optional[int] = None
    vpool_id: Optional[str] = None
    kind: RecordKind = field(default=RecordKind.BUCKET_BILLING, init=False)


@dataclass
class BucketDescriptor:
    """
    Object bucket as described by the management API.

    Attributes mirror the management API fields that are indexed; anything
    else the API returns is dropped.
    """
    name: str
    namespace: str
    id: Optional[str] = None
    owner: Optional[str] = None
    vpool: Optional[str] = None
    api_type: Optional[str] = None
    created: Optional[str] = None
    creation_time: Optional[str] = None
    soft_quota: Optional[str] = None
    link: Optional[str] = None
    vdc: Optional[str] = None
    default_group: Optional[str] = None
    block_size: Optional[int] = None
    notification_size: Optional[int] = None
    retention: Optional[int] = None
    default_retention: Optional[int] = None
    fs_access_enabled: Optional[bool] = None
    locked: Optional[bool] = None
    is_stale_allowed: Optional[bool] = None
    is_encryption_enabled: Optional[bool] = None
    inactive: Optional[bool] = None
    global_: Optional[bool] = None
    remote: Optional[bool] = None
    internal: Optional[bool] = None
    default_group_file_read_permission: Optional[bool] = None
    default_group_file_write_permission: Optional[bool] = None
    default_group_file_execute_permission: Optional[bool] = None
    default_group_dir_read_permission: Optional[bool] = None
    default_group_dir_write_permission: Optional[bool] = None
    default_group_dir_execute_permission: Optional[bool] = None
    search_metadata_enabled: bool = False
    kind: RecordKind = field(default=RecordKind.BUCKET, init=False)

    @property
    def key(self) -> BucketKey:
        return BucketKey(self.namespace, self.name)


@dataclass
class Page:
    """
    One page of records from a record source.

    Attributes:
        records: Records in source emission order
        next_token: Continuation token; None once the source is exhausted
    """
    records: List[Any] = field(default_factory=list)
    next_token: Optional[str] = None

    @property
    def exhausted(self) -> bool:
        return self.next_token is None


@dataclass
class DocumentBatch:
    """
    Documents ready for one bulk write.

    Attributes:
        index: Destination index name
        collection_time: Timestamp of the run the documents belong to
        documents: (document_id, document) pairs in page order
    """
    index: str
    collection_time: datetime
    documents: List[tuple] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.documents)


@dataclass
class WriteResult:
    """Outcome of a bulk write."""
    written: int = 0
    failed_ids: Set[str] = field(default_factory=set)

    @property
    def failed(self) -> int:
        return len(self.failed_ids)


@dataclass
class RetentionQuery:
    """Purge request: documents collected before threshold_date go."""
    data_type: ObjectDataType
    threshold_date: date
