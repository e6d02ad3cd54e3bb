"""
Record source for billing data and bucket descriptors.
"""

import logging
from typing import Optional

from ..core.models import BucketKey, Page, RecordType
from ..core.source import RecordSource
from .management_client import ManagementClient


logger = logging.getLogger(__name__)


class BillingSource(RecordSource):
    """
    Pages through namespace-level data of the management API.

    - NAMESPACE_BILLING: a single page holding the namespace totals
    - BUCKET_BILLING: per-bucket totals, paged by billing marker
    - BUCKET: bucket descriptors, paged by bucket marker
    """

    SUPPORTED = (RecordType.NAMESPACE_BILLING, RecordType.BUCKET_BILLING, RecordType.BUCKET)

    def __init__(self, client: ManagementClient):
        self.client = client

    def list_page(
        self,
        bucket_key: BucketKey,
        record_type: RecordType,
        token: Optional[str] = None,
    ) -> Page:
        namespace = bucket_key.namespace

        if record_type == RecordType.NAMESPACE_BILLING:
            info, _, _ = self.client.get_namespace_billing(namespace, include_buckets=False)
            return Page(records=[info])

        if record_type == RecordType.BUCKET_BILLING:
            _, buckets, next_marker = self.client.get_namespace_billing(namespace, marker=token)
            return Page(records=buckets, next_token=next_marker)

        if record_type == RecordType.BUCKET:
            buckets, next_marker = self.client.list_buckets_page(namespace, marker=token)
            return Page(records=buckets, next_token=next_marker)

        raise ValueError(f"{self.get_name()} does not serve {record_type.value} records")

    def get_name(self) -> str:
        return "billing"
