"""
Destination indices and their field mappings.

String fields are mapped as ``keyword`` (exact match) unless they are the
full-text variant of the object key. Indices that receive open-ended
metadata carry a dynamic template that maps any unknown string field to
``keyword`` as well, so high-cardinality tags are never tokenized.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..core.models import ObjectDataType, RecordType


# Object / version document fields
LAST_MODIFIED = "last_modified"
SIZE = "size"
KEY = "key"
KEY_ANALYZED = "key_analyzed"
ETAG = "e_tag"
NAMESPACE = "namespace"
BUCKET = "bucket"
OWNER_ID = "owner_id"
OWNER_NAME = "owner_name"
COLLECTION_TIME = "collection_time"
VERSION_ID = "version_id"
IS_LATEST = "is_latest"

# Well-known metadata keys returned by metadata-search queries
POSIX_GROUP_OWNER = "x-amz-meta-x-emc-posix-group-owner-name"
POSIX_OWNER = "x-amz-meta-x-emc-posix-owner-name"
MODIFIED_TIME = "mtime"

# Billing document fields
NAME = "name"
TOTAL_SIZE = "total_size"
TOTAL_SIZE_UNIT = "total_size_unit"
TOTAL_OBJECTS = "total_objects"
VPOOL_ID = "vpool_id"

DATE_FORMAT = "strict_date_optional_time||epoch_millis"

OBJECT_INDEX = "ecs-s3-object"
OBJECT_VERSION_INDEX = "ecs-s3-object-version"
NAMESPACE_BILLING_INDEX = "ecs-billing-namespace"
BUCKET_BILLING_INDEX = "ecs-billing-bucket"
BUCKET_INDEX = "ecs-bucket"


def _keyword() -> Dict[str, Any]:
    return {"type": "keyword"}


def _text() -> Dict[str, Any]:
    return {"type": "text"}


def _date() -> Dict[str, Any]:
    return {"type": "date", "format": DATE_FORMAT}


def _long() -> Dict[str, Any]:
    return {"type": "long"}


def _double() -> Dict[str, Any]:
    return {"type": "double"}


def _boolean() -> Dict[str, Any]:
    return {"type": "boolean"}


STRINGS_AS_KEYWORD = {
    "strings_as_keyword": {
        "match": "*",
        "match_mapping_type": "string",
        "mapping": {"type": "keyword"},
    }
}


@dataclass
class IndexSchema:
    """
    A destination index plus its field mapping.

    Attributes:
        name: Index name
        category: Document category, kept in the mapping ``_meta``
        properties: Explicitly mapped fields
        dynamic_templates: Rules for fields not listed in properties
        settings: Optional index settings
    """
    name: str
    category: str
    properties: Dict[str, Dict[str, Any]]
    dynamic_templates: List[Dict[str, Any]] = field(default_factory=list)
    settings: Optional[Dict[str, Any]] = None

    def mapping_body(self) -> Dict[str, Any]:
        """Return the mapping as sent to the create-index call."""
        body: Dict[str, Any] = {
            "_meta": {"category": self.category},
            "properties": self.properties,
        }
        if self.dynamic_templates:
            body["dynamic_templates"] = self.dynamic_templates
        return body


OBJECT_SCHEMA = IndexSchema(
    name=OBJECT_INDEX,
    category="object-info",
    properties={
        LAST_MODIFIED: _date(),
        SIZE: _long(),
        KEY: _keyword(),
        KEY_ANALYZED: _text(),
        ETAG: _keyword(),
        NAMESPACE: _keyword(),
        BUCKET: _keyword(),
        OWNER_ID: _keyword(),
        OWNER_NAME: _keyword(),
        COLLECTION_TIME: _date(),
        POSIX_GROUP_OWNER: _keyword(),
        POSIX_OWNER: _keyword(),
        MODIFIED_TIME: _keyword(),
    },
    dynamic_templates=[STRINGS_AS_KEYWORD],
)

OBJECT_VERSION_SCHEMA = IndexSchema(
    name=OBJECT_VERSION_INDEX,
    category="object-version-info",
    properties={
        LAST_MODIFIED: _date(),
        SIZE: _long(),
        KEY: _keyword(),
        KEY_ANALYZED: _text(),
        ETAG: _keyword(),
        NAMESPACE: _keyword(),
        BUCKET: _keyword(),
        VERSION_ID: _keyword(),
        IS_LATEST: _boolean(),
        OWNER_ID: _keyword(),
        OWNER_NAME: _keyword(),
        COLLECTION_TIME: _date(),
    },
    dynamic_templates=[STRINGS_AS_KEYWORD],
)

NAMESPACE_BILLING_SCHEMA = IndexSchema(
    name=NAMESPACE_BILLING_INDEX,
    category="namespace-info",
    properties={
        NAMESPACE: _keyword(),
        TOTAL_SIZE: _double(),
        TOTAL_SIZE_UNIT: _keyword(),
        TOTAL_OBJECTS: _long(),
        COLLECTION_TIME: _date(),
    },
)

BUCKET_BILLING_SCHEMA = IndexSchema(
    name=BUCKET_BILLING_INDEX,
    category="bucket-info",
    properties={
        NAME: _keyword(),
        NAMESPACE: _keyword(),
        TOTAL_SIZE: _double(),
        TOTAL_SIZE_UNIT: _keyword(),
        TOTAL_OBJECTS: _long(),
        VPOOL_ID: _keyword(),
        COLLECTION_TIME: _date(),
    },
)

BUCKET_SCHEMA = IndexSchema(
    name=BUCKET_INDEX,
    category="object-bucket",
    properties={
        NAME: _keyword(),
        "id": _keyword(),
        NAMESPACE: _keyword(),
        "owner": _keyword(),
        "vpool": _keyword(),
        "api_type": _keyword(),
        "created": _keyword(),
        "creation_time": _date(),
        "softquota": _keyword(),
        "link": _keyword(),
        "vdc": _keyword(),
        "default_group": _keyword(),
        "block_size": _long(),
        "notification_size": _long(),
        "retention": _long(),
        "default_retention": _long(),
        "fs_access_enabled": _boolean(),
        "locked": _boolean(),
        "is_stale_allowed": _boolean(),
        "is_encryption_enabled": _boolean(),
        "inactive": _boolean(),
        "global": _boolean(),
        "remote": _boolean(),
        "internal": _boolean(),
        "default_group_file_read_permission": _boolean(),
        "default_group_file_write_permission": _boolean(),
        "default_group_file_execute_permission": _boolean(),
        "default_group_dir_read_permission": _boolean(),
        "default_group_dir_write_permission": _boolean(),
        "default_group_dir_execute_permission": _boolean(),
        "search_metadata_enabled": _boolean(),
        COLLECTION_TIME: _date(),
    },
)


SCHEMA_BY_RECORD_TYPE: Dict[RecordType, IndexSchema] = {
    RecordType.OBJECT: OBJECT_SCHEMA,
    RecordType.QUERY_OBJECT: OBJECT_SCHEMA,
    RecordType.OBJECT_VERSION: OBJECT_VERSION_SCHEMA,
    RecordType.NAMESPACE_BILLING: NAMESPACE_BILLING_SCHEMA,
    RecordType.BUCKET_BILLING: BUCKET_BILLING_SCHEMA,
    RecordType.BUCKET: BUCKET_SCHEMA,
}

# Only object data is swept by the purge engine
SCHEMA_BY_DATA_TYPE: Dict[ObjectDataType, IndexSchema] = {
    ObjectDataType.OBJECT: OBJECT_SCHEMA,
    ObjectDataType.OBJECT_VERSIONS: OBJECT_VERSION_SCHEMA,
}


def schemas_for(record_types: Iterable[RecordType]) -> List[IndexSchema]:
    """Return the distinct destinations needed by a set of record types."""
    seen = {}
    for record_type in record_types:
        schema = SCHEMA_BY_RECORD_TYPE[record_type]
        seen.setdefault(schema.name, schema)
    return list(seen.values())
