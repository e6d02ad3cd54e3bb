"""
S3 listing record source.

Lists current objects (``list_objects``) and all versions and delete
markers (``list_object_versions``) of a bucket, one page per call.
Requests carry the namespace in the ``x-emc-namespace`` header, so one
boto3 client is kept per namespace.
"""

import json
import logging
import threading
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..config.config_loader import ObjectStoreConfig
from ..core.exceptions import CollectorConfigError, RecordSourceError
from ..core.models import (
    BucketKey, DeleteMarker, ObjectVersion, Owner, Page, RecordType, S3Object,
)
from ..core.source import RecordSource


logger = logging.getLogger(__name__)

NAMESPACE_HEADER = "x-emc-namespace"


def _owner(data: Optional[Dict[str, Any]]) -> Optional[Owner]:
    if not data:
        return None
    return Owner(id=data.get("ID"), display_name=data.get("DisplayName"))


def _etag(value: Optional[str]) -> Optional[str]:
    return value.strip('"') if value else value


def encode_version_token(key_marker: Optional[str], version_marker: Optional[str]) -> str:
    return json.dumps([key_marker, version_marker])


def decode_version_token(token: str):
    try:
        key_marker, version_marker = json.loads(token)
    except (TypeError, ValueError) as e:
        raise RecordSourceError(f"Invalid version listing token: {token!r}", source="s3") from e
    return key_marker, version_marker


class S3ObjectSource(RecordSource):
    """Record source for OBJECT and OBJECT_VERSION listings."""

    SUPPORTED = (RecordType.OBJECT, RecordType.OBJECT_VERSION)

    def __init__(self, config: ObjectStoreConfig, session: Optional[boto3.session.Session] = None):
        """
        Initialize the S3 source.

        Args:
            config: Object store connection settings
            session: Optional boto3 session (created if not provided)
        """
        if not config.endpoint_url:
            raise CollectorConfigError("Object store hosts are not configured")

        self.config = config
        self.session = session or boto3.session.Session()
        self._clients: Dict[str, Any] = {}
        self._clients_lock = threading.Lock()

    def client_for(self, namespace: str):
        """Return the S3 client bound to a namespace."""
        with self._clients_lock:
            client = self._clients.get(namespace)
            if client is None:
                client = self._create_client(namespace)
                self._clients[namespace] = client
            return client

    def _create_client(self, namespace: str):
        client = self.session.client(
            "s3",
            endpoint_url=self.config.endpoint_url,
            aws_access_key_id=self.config.access_key,
            aws_secret_access_key=self.config.secret_key,
            config=Config(
                region_name=self.config.region,
                retries={"max_attempts": self.config.max_retries, "mode": "standard"},
                read_timeout=self.config.timeout,
                s3={"addressing_style": "path"},
            ),
        )

        def add_namespace_header(request, **kwargs):
            request.headers[NAMESPACE_HEADER] = namespace

        client.meta.events.register("before-sign.s3", add_namespace_header)
        logger.debug(f"Created S3 client for namespace {namespace} at {self.config.endpoint_url}")
        return client

    def list_page(
        self,
        bucket_key: BucketKey,
        record_type: RecordType,
        token: Optional[str] = None,
    ) -> Page:
        try:
            if record_type == RecordType.OBJECT:
                return self._list_objects(bucket_key, token)
            if record_type == RecordType.OBJECT_VERSION:
                return self._list_versions(bucket_key, token)
        except (ClientError, BotoCoreError) as e:
            status = None
            if isinstance(e, ClientError):
                status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            raise RecordSourceError(
                f"Listing {record_type.value} of {bucket_key} failed: {e}",
                source=self.get_name(),
                status_code=status,
            ) from e

        raise ValueError(f"{self.get_name()} does not serve {record_type.value} records")

    def _list_objects(self, bucket_key: BucketKey, token: Optional[str]) -> Page:
        kwargs = {"Bucket": bucket_key.bucket, "MaxKeys": self.config.page_size}
        if token:
            kwargs["Marker"] = token

        response = self.client_for(bucket_key.namespace).list_objects(**kwargs)
        contents = response.get("Contents") or []

        records = [
            S3Object(
                key=item["Key"],
                size=item.get("Size"),
                last_modified=item.get("LastModified"),
                e_tag=_etag(item.get("ETag")),
                owner=_owner(item.get("Owner")),
            )
            for item in contents
        ]

        next_token = None
        if response.get("IsTruncated"):
            # NextMarker is only returned with a delimiter; fall back to the last key
            next_token = response.get("NextMarker") or (contents[-1]["Key"] if contents else None)
        return Page(records=records, next_token=next_token)

    def _list_versions(self, bucket_key: BucketKey, token: Optional[str]) -> Page:
        kwargs = {"Bucket": bucket_key.bucket, "MaxKeys": self.config.page_size}
        if token:
            key_marker, version_marker = decode_version_token(token)
            if key_marker:
                kwargs["KeyMarker"] = key_marker
            if version_marker:
                kwargs["VersionIdMarker"] = version_marker

        response = self.client_for(bucket_key.namespace).list_object_versions(**kwargs)

        records = [
            ObjectVersion(
                key=item["Key"],
                version_id=item.get("VersionId"),
                is_latest=bool(item.get("IsLatest")),
                size=item.get("Size"),
                last_modified=item.get("LastModified"),
                e_tag=_etag(item.get("ETag")),
                owner=_owner(item.get("Owner")),
            )
            for item in response.get("Versions") or []
        ]
        records.extend(
            DeleteMarker(
                key=item["Key"],
                version_id=item.get("VersionId"),
                is_latest=bool(item.get("IsLatest")),
                last_modified=item.get("LastModified"),
                owner=_owner(item.get("Owner")),
            )
            for item in response.get("DeleteMarkers") or []
        )

        next_token = None
        if response.get("IsTruncated"):
            next_token = encode_version_token(
                response.get("NextKeyMarker"), response.get("NextVersionIdMarker")
            )
        return Page(records=records, next_token=next_token)

    def get_name(self) -> str:
        return "s3"

    def close(self) -> None:
        with self._clients_lock:
            for client in self._clients.values():
                client.close()
            self._clients.clear()
