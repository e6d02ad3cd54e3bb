#!/usr/bin/env python3
"""
CLI entry point for the object store metadata collector.

Usage:
    collector --config config/collector.yaml collect
    collector collect --namespace ns1 --collect-data object-versions
    collector purge --data-type object --retention-days 30
    collector purge --data-type object_versions --threshold-date 2024-01-31
"""

import argparse
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

from collector.config import CollectorConfig
from collector.connectors import (
    BillingSource, ManagementClient, MetadataQuerySource, S3ObjectSource,
)
from collector.core.exceptions import CollectorError, SchemaBootstrapError
from collector.core.logging import configure_logging
from collector.core.models import ObjectDataType, RecordType
from collector.core.source import RecordSource
from collector.runner import (
    COLLECT_DATA_CHOICES, CollectionRunner, TaskScheduler, record_types_for,
)
from collector.storage import ElasticsearchBackend, IngestWriter, PurgeEngine
from collector.storage.documents import parse_collection_time


logger = logging.getLogger("collector.cli")


def build_sources(
    config: CollectorConfig,
    management: ManagementClient,
    record_types: List[RecordType],
) -> Dict[RecordType, RecordSource]:
    """Build the record source for every requested record type."""
    sources: Dict[RecordType, RecordSource] = {}

    if any(rt in BillingSource.SUPPORTED for rt in record_types):
        billing = BillingSource(management)
        for record_type in BillingSource.SUPPORTED:
            sources[record_type] = billing

    if any(rt in S3ObjectSource.SUPPORTED for rt in record_types):
        s3 = S3ObjectSource(config.get_object_store_config())
        for record_type in S3ObjectSource.SUPPORTED:
            sources[record_type] = s3

    if RecordType.QUERY_OBJECT in record_types:
        sources[RecordType.QUERY_OBJECT] = MetadataQuerySource(config.get_object_store_config())

    return {rt: source for rt, source in sources.items() if rt in record_types}


def run_collect(args: argparse.Namespace, config: CollectorConfig) -> int:
    """Run one collection per namespace."""
    record_types = record_types_for(args.collect_data)
    collection_time = parse_collection_time(args.collection_time) if args.collection_time else None

    backend = ElasticsearchBackend.from_config(config.get_elastic_config())
    writer = IngestWriter(backend)
    management = ManagementClient(config.get_management_config())
    sources = build_sources(config, management, record_types)

    try:
        namespaces = [args.namespace] if args.namespace else management.list_namespaces()
        logger.info(f"Collecting {args.collect_data} for namespaces: {namespaces}")

        scheduler = TaskScheduler(sources=sources, writer=writer)
        runner = CollectionRunner(
            scheduler=scheduler,
            writer=writer,
            catalog_provider=management,
            config=config.get_scheduler_config(),
        )

        exit_code = 0
        for namespace in namespaces:
            try:
                report = runner.collect(namespace, record_types, collection_time=collection_time)
            except SchemaBootstrapError:
                raise
            except CollectorError as e:
                logger.error(
                    f"Namespace {namespace} skipped: {e}",
                    extra={"namespace": namespace},
                )
                exit_code = 1
                continue

            if not report.succeeded:
                logger.error(
                    f"Namespace {namespace}: {report.failed_count} work units failed; "
                    f"first failure: {report.first_failure}",
                    extra={"namespace": namespace},
                )
                exit_code = 1
        return exit_code
    finally:
        for source in set(sources.values()):
            source.close()
        management.close()
        writer.close()


def run_purge(args: argparse.Namespace, config: CollectorConfig) -> int:
    """Delete documents older than the threshold."""
    purge_config = config.get_purge_config()
    backend = ElasticsearchBackend.from_config(config.get_elastic_config())
    engine = PurgeEngine(backend, purge_config)

    try:
        if args.threshold_date:
            deleted = engine.purge(args.data_type, args.threshold_date)
        else:
            retention_days = args.retention_days
            if retention_days is None:
                retention_days = purge_config.retention_days.get(args.data_type)
            if retention_days is None:
                logger.error(f"No retention configured for {args.data_type}")
                return 1
            deleted = engine.purge_older_than(args.data_type, retention_days)
    finally:
        backend.close()

    logger.info(f"Purged {deleted} {args.data_type} documents")
    return 0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Object store metadata collector",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Path to configuration YAML file",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose/debug logging",
    )

    parser.add_argument(
        "--structured-logs",
        action="store_true",
        help="Emit JSON log lines",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    collect = subparsers.add_parser("collect", help="Collect metadata into the search index")
    collect.add_argument(
        "--namespace",
        help="Namespace to collect (all namespaces if omitted)",
    )
    collect.add_argument(
        "--collect-data",
        choices=list(COLLECT_DATA_CHOICES),
        default="all",
        help="Which data to collect (default: all)",
    )
    collect.add_argument(
        "--collection-time",
        help="Collection timestamp, ISO-8601 or epoch millis (default: now)",
    )

    purge = subparsers.add_parser("purge", help="Delete collected documents past retention")
    purge.add_argument(
        "--data-type",
        choices=[t.value for t in ObjectDataType],
        required=True,
        help="Data type to purge",
    )
    threshold = purge.add_mutually_exclusive_group()
    threshold.add_argument(
        "--threshold-date",
        type=date.fromisoformat,
        help="Delete documents collected before this day (YYYY-MM-DD)",
    )
    threshold.add_argument(
        "--retention-days",
        type=int,
        help="Delete documents older than this many days (default from config)",
    )

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    load_dotenv()
    args = parse_args(argv)

    configure_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        structured=args.structured_logs,
    )

    try:
        config = CollectorConfig(config_path=args.config)
        logger.info("Configuration loaded")

        if args.command == "collect":
            return run_collect(args, config)
        return run_purge(args, config)

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 1
    except (CollectorError, ValueError) as e:
        logger.error(f"Fatal error: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
