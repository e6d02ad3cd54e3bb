"""
Search backend storage: index mappings, document transforms, bulk ingest
and retention purge.
"""

from .backend import SearchBackend, ElasticsearchBackend, BulkOutcome, ScrollPage
from .ingest_writer import IngestWriter
from .purge import PurgeEngine
from .memory_backend import InMemorySearchBackend

__all__ = [
    "SearchBackend",
    "ElasticsearchBackend",
    "BulkOutcome",
    "ScrollPage",
    "IngestWriter",
    "PurgeEngine",
    "InMemorySearchBackend",
]
