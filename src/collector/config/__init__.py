"""
Configuration for the metadata collector.
"""

from .config_loader import (
    CollectorConfig, ElasticConfig, ManagementConfig, ObjectStoreConfig,
    SchedulerConfig, PurgeConfig,
)

__all__ = [
    "CollectorConfig",
    "ElasticConfig",
    "ManagementConfig",
    "ObjectStoreConfig",
    "SchedulerConfig",
    "PurgeConfig",
]
