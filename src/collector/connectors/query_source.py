"""
Metadata-search record source.

Runs a bucket metadata query (``GET /{bucket}?query=...``) against the
object store and turns every match into a QueryObject. Requests are
signed with SigV4 through botocore and sent with requests.
"""

import logging
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional, Tuple

import requests
from botocore.auth import S3SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.credentials import Credentials

from ..config.config_loader import ObjectStoreConfig
from ..core.exceptions import CollectorConfigError, RecordSourceError
from ..core.models import BucketKey, Page, QueryObject, RecordType
from ..core.source import RecordSource
from ..utils.retry import BackoffPolicy, send_with_retry
from .s3_source import NAMESPACE_HEADER


logger = logging.getLogger(__name__)

# Sentinel the server returns in NextMarker on the last page
NO_MORE_PAGES = "NO MORE PAGES"


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child(element: ET.Element, name: str) -> Optional[ET.Element]:
    for child in element:
        if _local(child.tag) == name:
            return child
    return None


def _children(element: ET.Element, name: str) -> List[ET.Element]:
    return [child for child in element if _local(child.tag) == name]


def _text(element: ET.Element, name: str) -> Optional[str]:
    child = _child(element, name)
    if child is None or child.text is None:
        return None
    return child.text.strip() or None


def parse_query_result(body: bytes) -> Tuple[List[QueryObject], Optional[str]]:
    """
    Parse a BucketQueryResult document.

    Returns:
        (matches, next marker or None on the last page)
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise RecordSourceError(f"Invalid metadata query response: {e}", source="query") from e

    records = []
    matches = _child(root, "ObjectMatches")
    for obj in _children(matches, "object") if matches is not None else []:
        metadata: Dict[str, str] = {}
        for query_mds in _children(obj, "queryMds"):
            md_map = _child(query_mds, "mdMap")
            if md_map is None:
                continue
            for entry in _children(md_map, "entry"):
                key = _text(entry, "key")
                if key is not None:
                    metadata[key] = _text(entry, "value") or ""

        records.append(QueryObject(
            object_name=_text(obj, "objectName") or "",
            object_id=_text(obj, "objectId"),
            metadata=metadata,
        ))

    next_marker = _text(root, "NextMarker")
    if next_marker == NO_MORE_PAGES:
        next_marker = None
    return records, next_marker


class MetadataQuerySource(RecordSource):
    """Record source for QUERY_OBJECT collection."""

    SUPPORTED = (RecordType.QUERY_OBJECT,)

    def __init__(self, config: ObjectStoreConfig, session: Optional[requests.Session] = None):
        """
        Initialize the query source.

        Args:
            config: Object store settings; ``query`` must be set
            session: Optional requests session (created if not provided)
        """
        if not config.endpoint_url:
            raise CollectorConfigError("Object store hosts are not configured")
        if not config.query:
            raise CollectorConfigError("object_store.query is required for query-object collection")

        self.config = config
        self.session = session or requests.Session()
        self.credentials = Credentials(config.access_key or "", config.secret_key or "")
        self.backoff = BackoffPolicy.from_max_retries(config.max_retries)

    def list_page(
        self,
        bucket_key: BucketKey,
        record_type: RecordType,
        token: Optional[str] = None,
    ) -> Page:
        if record_type != RecordType.QUERY_OBJECT:
            raise ValueError(f"{self.get_name()} does not serve {record_type.value} records")

        params = {"query": self.config.query, "max-keys": str(self.config.page_size)}
        if self.config.query_attributes:
            params["attributes"] = ",".join(self.config.query_attributes)
        if token:
            params["marker"] = token

        response = self._send(bucket_key, params)
        records, next_marker = parse_query_result(response.content)
        logger.debug(f"Query on {bucket_key} returned {len(records)} matches")
        return Page(records=records, next_token=next_marker)

    def _signed_request(self, bucket_key: BucketKey, params: Dict[str, str]) -> AWSRequest:
        request = AWSRequest(
            method="GET",
            url=f"{self.config.endpoint_url}/{bucket_key.bucket}",
            params=params,
            headers={NAMESPACE_HEADER: bucket_key.namespace},
        )
        S3SigV4Auth(self.credentials, "s3", self.config.region).add_auth(request)
        return request

    def _send(self, bucket_key: BucketKey, params: Dict[str, str]) -> requests.Response:
        def do_request() -> requests.Response:
            # Re-sign on every attempt; the signature embeds a timestamp
            prepared = self._signed_request(bucket_key, params).prepare()
            return self.session.get(
                prepared.url, headers=dict(prepared.headers), timeout=self.config.timeout
            )

        response = send_with_retry(
            do_request,
            self.backoff,
            f"Metadata query on {bucket_key}",
            lambda message, status: RecordSourceError(
                message, source=self.get_name(), status_code=status
            ),
        )
        if response.status_code != 200:
            raise RecordSourceError(
                f"Metadata query on {bucket_key} failed: HTTP {response.status_code}: {response.text[:200]}",
                source=self.get_name(),
                status_code=response.status_code,
            )
        return response

    def get_name(self) -> str:
        return "query"

    def close(self) -> None:
        self.session.close()
