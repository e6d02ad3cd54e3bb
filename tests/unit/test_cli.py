"""
Unit tests for the collector CLI.

External clients are patched; the in-memory backend stands in for
Elasticsearch.
"""

import pytest
from datetime import date
from unittest.mock import Mock, patch

from collector import collector_cli
from collector.config import CollectorConfig
from collector.connectors import ManagementClient, S3ObjectSource, StaticRecordSource
from collector.connectors.static_source import synthetic_objects
from collector.core.exceptions import ManagementClientError
from collector.core.models import BucketDescriptor, BucketKey, NamespaceBillingInfo, RecordType
from collector.storage import InMemorySearchBackend
from collector.storage.mappings import NAMESPACE_BILLING_INDEX, OBJECT_INDEX


@pytest.fixture(autouse=True)
def isolated(monkeypatch):
    """No .env files or host overrides leak into CLI runs."""
    for name in CollectorConfig.ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)
    with patch("collector.collector_cli.load_dotenv"):
        yield


@pytest.fixture
def backend():
    backend = InMemorySearchBackend()
    with patch("collector.collector_cli.ElasticsearchBackend") as mock_cls:
        mock_cls.from_config.return_value = backend
        yield backend


@pytest.fixture
def management():
    client = Mock(spec=ManagementClient)
    client.list_namespaces.return_value = ["ns1", "ns2"]
    client.list_buckets.return_value = []
    client.list_buckets_page.return_value = ([], None)
    client.get_namespace_billing.side_effect = lambda ns, marker=None, include_buckets=True: (
        NamespaceBillingInfo(namespace=ns, total_size=1.0, total_objects=1), [], None
    )
    with patch("collector.collector_cli.ManagementClient", return_value=client):
        yield client


@pytest.fixture
def object_source():
    """Static source standing in for the S3 listing source."""
    source = StaticRecordSource(name="s3")
    with patch("collector.collector_cli.S3ObjectSource") as mock_cls:
        mock_cls.SUPPORTED = S3ObjectSource.SUPPORTED
        mock_cls.return_value = source
        yield source


class TestParseArgs:
    """Tests for argument parsing."""

    def test_collect_defaults(self):
        args = collector_cli.parse_args(["collect"])

        assert args.command == "collect"
        assert args.collect_data == "all"
        assert args.namespace is None
        assert args.collection_time is None

    def test_global_options(self):
        args = collector_cli.parse_args(["--verbose", "--structured-logs", "collect", "--namespace", "ns1"])

        assert args.verbose is True
        assert args.structured_logs is True
        assert args.namespace == "ns1"

    def test_purge_threshold_date(self):
        args = collector_cli.parse_args(["purge", "--data-type", "object", "--threshold-date", "2024-01-31"])

        assert args.threshold_date == date(2024, 1, 31)
        assert args.retention_days is None

    def test_purge_options_exclusive(self):
        with pytest.raises(SystemExit):
            collector_cli.parse_args([
                "purge", "--data-type", "object",
                "--threshold-date", "2024-01-31", "--retention-days", "3",
            ])

    def test_unknown_collect_data(self):
        with pytest.raises(SystemExit):
            collector_cli.parse_args(["collect", "--collect-data", "everything"])


class TestBuildSources:
    """Tests for source wiring."""

    def test_billing_types_share_one_source(self, management):
        sources = collector_cli.build_sources(
            CollectorConfig(), management, [RecordType.NAMESPACE_BILLING, RecordType.BUCKET]
        )

        assert set(sources) == {RecordType.NAMESPACE_BILLING, RecordType.BUCKET}
        assert sources[RecordType.NAMESPACE_BILLING] is sources[RecordType.BUCKET]


class TestMain:
    """Tests for end-to-end CLI runs."""

    def test_collect_billing_all_namespaces(self, backend, management):
        exit_code = collector_cli.main(["collect", "--collect-data", "billing"])

        assert exit_code == 0
        assert backend.count(NAMESPACE_BILLING_INDEX) == 2
        management.close.assert_called_once()

    def test_collect_single_namespace(self, backend, management):
        exit_code = collector_cli.main([
            "collect", "--namespace", "ns1", "--collect-data", "billing",
            "--collection-time", "2024-03-15T10:30:00Z",
        ])

        assert exit_code == 0
        management.list_namespaces.assert_not_called()
        docs = backend.search(NAMESPACE_BILLING_INDEX)
        assert [d["collection_time"] for d in docs] == ["2024-03-15T10:30:00+00:00"]

    def test_failed_unit_exit_code(self, backend, management):
        management.get_namespace_billing.side_effect = ManagementClientError("HTTP 500", status_code=500)

        exit_code = collector_cli.main(["collect", "--namespace", "ns1", "--collect-data", "billing"])

        assert exit_code == 1

    def test_bootstrap_failure_exit_code(self, backend, management):
        backend.fail_create = True

        assert collector_cli.main(["collect", "--namespace", "ns1", "--collect-data", "billing"]) == 1
        management.get_namespace_billing.assert_not_called()

    def test_purge_with_retention_days(self, backend):
        exit_code = collector_cli.main(["purge", "--data-type", "object_versions", "--retention-days", "7"])

        assert exit_code == 0

    def test_purge_uses_configured_retention(self, backend):
        with patch.object(collector_cli.PurgeEngine, "purge_older_than", return_value=5) as mock_purge:
            exit_code = collector_cli.main(["purge", "--data-type", "object"])

        assert exit_code == 0
        mock_purge.assert_called_once_with("object", 30)

    def test_missing_config_file(self, tmp_path):
        assert collector_cli.main(["--config", str(tmp_path / "none.yaml"), "collect"]) == 1

    def test_catalog_failure_skips_only_that_namespace(self, backend, management, object_source):
        management.list_namespaces.return_value = ["ns1", "ns2", "ns3"]

        def list_buckets(namespace):
            if namespace == "ns1":
                raise ManagementClientError("GET /object/bucket failed: HTTP 503", status_code=503)
            return [BucketDescriptor(name="photos", namespace=namespace)]

        management.list_buckets.side_effect = list_buckets
        object_source.add_pages(BucketKey("ns3", "photos"), RecordType.OBJECT, [synthetic_objects(3)])

        exit_code = collector_cli.main(["collect", "--collect-data", "objects"])

        assert exit_code == 1
        assert [c.args[0] for c in management.list_buckets.call_args_list] == ["ns1", "ns2", "ns3"]
        assert {call[0] for call in object_source.calls} == {
            BucketKey("ns2", "photos"),
            BucketKey("ns3", "photos"),
        }
        assert backend.count(OBJECT_INDEX) == 3
        management.close.assert_called_once()

    def test_bootstrap_failure_stops_remaining_namespaces(self, backend, management):
        backend.fail_create = True

        assert collector_cli.main(["collect", "--collect-data", "billing"]) == 1
        management.get_namespace_billing.assert_not_called()
