"""
Shared test fixtures and configuration for pytest.
"""

import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


logger = logging.getLogger(__name__)


# ============================================================================
# Environment detection
# ============================================================================

def is_elasticsearch_available() -> bool:
    """Check if an Elasticsearch cluster is available for testing."""
    url = os.environ.get("COLLECTOR_TEST_ES_URL")
    if not url:
        return False

    try:
        from elasticsearch import Elasticsearch

        client = Elasticsearch(url, request_timeout=5)
        available = bool(client.ping())
        client.close()
        return available

    except Exception as e:
        logger.debug(f"Elasticsearch not available: {e}")
        return False


# ============================================================================
# Pytest hooks
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (requires Elasticsearch)")


def pytest_collection_modifyitems(config, items):
    """Automatically skip integration tests if Elasticsearch is not available."""
    if is_elasticsearch_available():
        return

    skip_elasticsearch = pytest.mark.skip(
        reason="Elasticsearch not available (set COLLECTOR_TEST_ES_URL)"
    )

    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_elasticsearch)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def collection_time() -> datetime:
    """Fixed collection timestamp."""
    return datetime(2024, 3, 15, 10, 30, 0, tzinfo=timezone.utc)


@pytest.fixture
def memory_backend():
    """Fixture providing an empty in-memory search backend."""
    from collector.storage import InMemorySearchBackend

    return InMemorySearchBackend()


@pytest.fixture
def writer(memory_backend):
    """Fixture providing an ingest writer over the in-memory backend."""
    from collector.storage import IngestWriter

    writer = IngestWriter(memory_backend)
    yield writer
    writer.close()


@pytest.fixture
def static_source():
    """Fixture providing a static record source."""
    from collector.connectors import StaticRecordSource

    source = StaticRecordSource()
    yield source
    source.close()


@pytest.fixture
def make_context(collection_time):
    """
    Factory fixture creating collection contexts.

    Every context created is closed after the test.
    """
    from collector.runner import CollectionContext

    contexts = []

    def _make(namespace="ns1", buckets=(), max_workers=4):
        context = CollectionContext.create(
            namespace=namespace,
            collection_time=collection_time,
            bucket_catalog={b.key: b for b in buckets},
            max_workers=max_workers,
        )
        contexts.append(context)
        return context

    yield _make

    for context in contexts:
        context.close()


@pytest.fixture
def elastic_backend():
    """
    Fixture providing a backend on the test cluster.

    The object indices are dropped before and after each test, so point
    COLLECTOR_TEST_ES_URL at a disposable cluster.
    """
    from elasticsearch import Elasticsearch
    from collector.storage import ElasticsearchBackend
    from collector.storage.mappings import OBJECT_INDEX, OBJECT_VERSION_INDEX

    client = Elasticsearch(os.environ["COLLECTOR_TEST_ES_URL"], request_timeout=30)
    indices = [OBJECT_INDEX, OBJECT_VERSION_INDEX]
    client.indices.delete(index=indices, ignore_unavailable=True)

    backend = ElasticsearchBackend(client)
    yield backend

    try:
        client.indices.delete(index=indices, ignore_unavailable=True)
    except Exception as e:
        logger.warning(f"Cleanup failed: {e}")
    backend.close()
