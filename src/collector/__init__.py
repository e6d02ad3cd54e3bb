"""
Object Store Metadata Collector

Walks the buckets of an object store namespace, collects object, version,
billing and bucket metadata, and indexes it into Elasticsearch. Old
collections are swept by a retention purge.

Key components:
- core/: Record models, record source interface, exceptions, logging
- config/: YAML + environment configuration
- connectors/: S3 listing, metadata query and management API sources
- storage/: Index mappings, document transforms, bulk ingest and purge
- runner/: Worker pool scheduling and per-namespace collection runs
"""

__version__ = "0.1.0"
