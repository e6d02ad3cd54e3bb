"""
Transformation of records into search documents.

Every record variant has exactly one transform, looked up by the record's
``kind``. All transforms stamp the run's collection time on the document.
"""

import hashlib
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional, Union

from ..core.models import (
    BucketBillingInfo, BucketDescriptor, BucketKey, DeleteMarker, DocumentBatch,
    NamespaceBillingInfo, ObjectVersion, Owner, QueryObject, RecordKind, S3Object,
)
from . import mappings as m


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialize a timestamp as ISO-8601; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def parse_collection_time(value: Union[str, int, float, date, datetime]) -> datetime:
    """
    Parse a collection time given as ISO-8601 or epoch milliseconds.

    Both representations are accepted interchangeably, the same way the
    ``collection_time`` mapping accepts them. The result is always
    timezone-aware (UTC when the input carries no offset).
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            parsed = datetime.fromtimestamp(int(text) / 1000.0, tz=timezone.utc)
        else:
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            try:
                parsed = datetime.fromisoformat(text)
            except ValueError:
                raise ValueError(f"Unrecognized collection time: {value!r}")
    else:
        raise ValueError(f"Unrecognized collection time: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _owner_fields(owner: Optional[Owner]) -> Dict[str, Optional[str]]:
    return {
        m.OWNER_ID: owner.id if owner is not None else None,
        m.OWNER_NAME: owner.display_name if owner is not None else None,
    }


def _object_document(record: S3Object, key: BucketKey, collection_time: datetime) -> Dict[str, Any]:
    doc = {
        m.LAST_MODIFIED: format_timestamp(record.last_modified),
        m.SIZE: record.size,
        m.KEY: record.key,
        m.KEY_ANALYZED: record.key,
        m.ETAG: record.e_tag,
        m.NAMESPACE: key.namespace,
        m.BUCKET: key.bucket,
    }
    doc.update(_owner_fields(record.owner))
    doc[m.COLLECTION_TIME] = format_timestamp(collection_time)
    return doc


def _query_object_document(record: QueryObject, key: BucketKey, collection_time: datetime) -> Dict[str, Any]:
    doc = {
        m.KEY: record.object_name,
        m.KEY_ANALYZED: record.object_name,
        m.ETAG: record.object_id,
        m.NAMESPACE: key.namespace,
        m.BUCKET: key.bucket,
        m.COLLECTION_TIME: format_timestamp(collection_time),
    }
    # Open metadata bag: merged as top-level fields, fixed fields win
    for md_key, md_value in record.metadata.items():
        if md_key not in doc:
            doc[md_key] = md_value
    return doc


def _version_document(record: ObjectVersion, key: BucketKey, collection_time: datetime) -> Dict[str, Any]:
    doc = {
        m.LAST_MODIFIED: format_timestamp(record.last_modified),
        m.SIZE: record.size,
        m.KEY: record.key,
        m.KEY_ANALYZED: record.key,
        m.ETAG: record.e_tag,
        m.NAMESPACE: key.namespace,
        m.BUCKET: key.bucket,
        m.VERSION_ID: record.version_id,
        m.IS_LATEST: record.is_latest,
    }
    doc.update(_owner_fields(record.owner))
    doc[m.COLLECTION_TIME] = format_timestamp(collection_time)
    return doc


def _delete_marker_document(record: DeleteMarker, key: BucketKey, collection_time: datetime) -> Dict[str, Any]:
    doc = {
        m.LAST_MODIFIED: format_timestamp(record.last_modified),
        m.KEY: record.key,
        m.KEY_ANALYZED: record.key,
        m.NAMESPACE: key.namespace,
        m.BUCKET: key.bucket,
        m.VERSION_ID: record.version_id,
        m.IS_LATEST: record.is_latest,
    }
    doc.update(_owner_fields(record.owner))
    doc[m.COLLECTION_TIME] = format_timestamp(collection_time)
    return doc


def _namespace_billing_document(record: NamespaceBillingInfo, key: BucketKey, collection_time: datetime) -> Dict[str, Any]:
    return {
        m.NAMESPACE: record.namespace,
        m.TOTAL_SIZE: record.total_size,
        m.TOTAL_SIZE_UNIT: record.total_size_unit,
        m.TOTAL_OBJECTS: record.total_objects,
        m.COLLECTION_TIME: format_timestamp(collection_time),
    }


def _bucket_billing_document(record: BucketBillingInfo, key: BucketKey, collection_time: datetime) -> Dict[str, Any]:
    return {
        m.NAME: record.name,
        m.NAMESPACE: record.namespace,
        m.TOTAL_SIZE: record.total_size,
        m.TOTAL_SIZE_UNIT: record.total_size_unit,
        m.TOTAL_OBJECTS: record.total_objects,
        m.VPOOL_ID: record.vpool_id,
        m.COLLECTION_TIME: format_timestamp(collection_time),
    }


def _bucket_document(record: BucketDescriptor, key: BucketKey, collection_time: datetime) -> Dict[str, Any]:
    return {
        m.NAME: record.name,
        "id": record.id,
        m.NAMESPACE: record.namespace,
        "owner": record.owner,
        "vpool": record.vpool,
        "api_type": record.api_type,
        "created": record.created,
        "creation_time": record.creation_time,
        "softquota": record.soft_quota,
        "link": record.link,
        "vdc": record.vdc,
        "default_group": record.default_group,
        "block_size": record.block_size,
        "notification_size": record.notification_size,
        "retention": record.retention,
        "default_retention": record.default_retention,
        "fs_access_enabled": record.fs_access_enabled,
        "locked": record.locked,
        "is_stale_allowed": record.is_stale_allowed,
        "is_encryption_enabled": record.is_encryption_enabled,
        "inactive": record.inactive,
        "global": record.global_,
        "remote": record.remote,
        "internal": record.internal,
        "default_group_file_read_permission": record.default_group_file_read_permission,
        "default_group_file_write_permission": record.default_group_file_write_permission,
        "default_group_file_execute_permission": record.default_group_file_execute_permission,
        "default_group_dir_read_permission": record.default_group_dir_read_permission,
        "default_group_dir_write_permission": record.default_group_dir_write_permission,
        "default_group_dir_execute_permission": record.default_group_dir_execute_permission,
        "search_metadata_enabled": record.search_metadata_enabled,
        m.COLLECTION_TIME: format_timestamp(collection_time),
    }


_TRANSFORMS: Dict[RecordKind, Callable[[Any, BucketKey, datetime], Dict[str, Any]]] = {
    RecordKind.OBJECT: _object_document,
    RecordKind.QUERY_OBJECT: _query_object_document,
    RecordKind.VERSION: _version_document,
    RecordKind.DELETE_MARKER: _delete_marker_document,
    RecordKind.NAMESPACE_BILLING: _namespace_billing_document,
    RecordKind.BUCKET_BILLING: _bucket_billing_document,
    RecordKind.BUCKET: _bucket_document,
}


def _identity(record: Any) -> str:
    kind = record.kind
    if kind in (RecordKind.VERSION, RecordKind.DELETE_MARKER):
        return f"{record.key}\x00{record.version_id}"
    if kind == RecordKind.QUERY_OBJECT:
        return f"{record.object_name}\x00{record.object_id}"
    if kind == RecordKind.NAMESPACE_BILLING:
        return record.namespace
    if kind in (RecordKind.BUCKET_BILLING, RecordKind.BUCKET):
        return f"{record.namespace}\x00{record.name}"
    return record.key


def document_id(index: str, record: Any, key: BucketKey, collection_time: datetime) -> str:
    """
    Deterministic id of a record's document within one collection run.

    Writing the same page twice in a run overwrites instead of duplicating.
    """
    raw = "|".join([
        index,
        key.namespace,
        key.bucket,
        _identity(record),
        format_timestamp(collection_time),
    ])
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


def to_document(record: Any, key: BucketKey, collection_time: datetime) -> Dict[str, Any]:
    """Transform a single record into its document."""
    try:
        transform = _TRANSFORMS[record.kind]
    except (AttributeError, KeyError):
        raise TypeError(f"No document transform for record: {record!r}")
    return transform(record, key, collection_time)


def build_batch(
    index: str,
    records: Iterable[Any],
    key: BucketKey,
    collection_time: datetime,
) -> DocumentBatch:
    """Transform a page of records into a batch for one bulk write."""
    batch = DocumentBatch(index=index, collection_time=collection_time)
    for record in records:
        batch.documents.append((
            document_id(index, record, key, collection_time),
            to_document(record, key, collection_time),
        ))
    return batch
