"""
Connectors to the object store and its management API.
"""

from .management_client import ManagementClient
from .billing_source import BillingSource
from .s3_source import S3ObjectSource
from .query_source import MetadataQuerySource
from .static_source import StaticRecordSource

__all__ = [
    "ManagementClient",
    "BillingSource",
    "S3ObjectSource",
    "MetadataQuerySource",
    "StaticRecordSource",
]
