"""
Configuration loader for the metadata collector.

Configuration is read once at startup (YAML file, then environment
overrides) and turned into the typed section objects below, which are
passed explicitly to the components that need them.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..core.exceptions import CollectorConfigError


logger = logging.getLogger(__name__)


@dataclass
class ElasticConfig:
    """Connection settings for the Elasticsearch cluster."""
    hosts: List[str] = field(default_factory=lambda: ["localhost"])
    port: int = 9200
    scheme: str = "http"
    username: Optional[str] = None
    password: Optional[str] = None
    verify_certs: bool = True
    request_timeout: int = 60

    def urls(self) -> List[str]:
        return [f"{self.scheme}://{host}:{self.port}" for host in self.hosts]


@dataclass
class ManagementConfig:
    """Connection settings for the management REST API."""
    hosts: List[str] = field(default_factory=list)
    port: int = 4443
    username: Optional[str] = None
    password: Optional[str] = None
    verify_ssl: bool = False
    timeout: int = 30
    max_retries: int = 3
    page_size: int = 1000


@dataclass
class ObjectStoreConfig:
    """
    Connection settings for the S3 data plane.

    Attributes:
        hosts: Data node addresses; the first one is used as endpoint
        port: S3 port
        scheme: http or https
        access_key: Object user name
        secret_key: Object user secret
        region: Signing region
        page_size: Max keys per listing page
        query: Metadata-search expression for query-object collection
        query_attributes: Extra metadata attributes returned with matches
    """
    hosts: List[str] = field(default_factory=list)
    port: int = 9020
    scheme: str = "http"
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    region: str = "us-east-1"
    page_size: int = 1000
    query: Optional[str] = None
    query_attributes: List[str] = field(default_factory=list)
    timeout: int = 60
    max_retries: int = 3

    @property
    def endpoint_url(self) -> Optional[str]:
        if not self.hosts:
            return None
        return f"{self.scheme}://{self.hosts[0]}:{self.port}"


@dataclass
class SchedulerConfig:
    """Worker pool settings for a collection run."""
    max_workers: int = 10


@dataclass
class PurgeConfig:
    """
    Purge engine settings.

    Attributes:
        page_size: Documents fetched (and deleted) per scroll page
        scroll_keep_alive: Server-side lifetime of the scroll cursor
        retention_days: Default retention window per data type
    """
    page_size: int = 25000
    scroll_keep_alive: str = "15s"
    retention_days: Dict[str, int] = field(
        default_factory=lambda: {"object": 30, "object_versions": 30}
    )


def _split_hosts(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [h.strip() for h in value.split(",") if h.strip()]
    return [str(h) for h in value]


class CollectorConfig:
    """
    Configuration for the metadata collector.

    Loads a YAML configuration file (optional), then applies environment
    variable overrides so secrets can stay out of the file.
    """

    ENV_OVERRIDES = {
        "COLLECTOR_ES_HOSTS": ("elasticsearch", "hosts"),
        "COLLECTOR_ES_PORT": ("elasticsearch", "port"),
        "COLLECTOR_ES_USER": ("elasticsearch", "username"),
        "COLLECTOR_ES_PASSWORD": ("elasticsearch", "password"),
        "COLLECTOR_MGMT_HOSTS": ("management", "hosts"),
        "COLLECTOR_MGMT_PORT": ("management", "port"),
        "COLLECTOR_MGMT_USER": ("management", "username"),
        "COLLECTOR_MGMT_PASSWORD": ("management", "password"),
        "COLLECTOR_S3_HOSTS": ("object_store", "hosts"),
        "COLLECTOR_S3_PORT": ("object_store", "port"),
        "COLLECTOR_S3_ACCESS_KEY": ("object_store", "access_key"),
        "COLLECTOR_S3_SECRET_KEY": ("object_store", "secret_key"),
        "COLLECTOR_MAX_WORKERS": ("scheduler", "max_workers"),
    }

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to YAML config file (optional)
        """
        self.config_path = Path(config_path) if config_path else None
        self.config = self._load_config() if self.config_path else self._default_config()
        self._apply_env_overrides()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise CollectorConfigError(f"Config file not found: {self.config_path}")

        logger.info(f"Loading config from: {self.config_path}")

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise CollectorConfigError(f"Invalid config file {self.config_path}: {e}") from e

        config = self._default_config()
        for section, values in (loaded or {}).items():
            if isinstance(values, dict) and isinstance(config.get(section), dict):
                config[section].update(values)
            else:
                config[section] = values
        return config

    def _default_config(self) -> Dict[str, Any]:
        """Return default configuration."""
        return {
            "elasticsearch": {
                "hosts": ["localhost"],
                "port": 9200,
                "scheme": "http",
            },
            "management": {
                "hosts": [],
                "port": 4443,
                "verify_ssl": False,
            },
            "object_store": {
                "hosts": [],
                "port": 9020,
                "scheme": "http",
            },
            "scheduler": {
                "max_workers": 10,
            },
            "purge": {
                "page_size": 25000,
                "scroll_keep_alive": "15s",
            },
        }

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides to loaded config."""
        for env_name, (section, key) in self.ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if not value:
                continue
            self.config.setdefault(section, {})[key] = value
            logger.debug(f"Config {section}.{key} overridden from {env_name}")

    def _section(self, name: str) -> Dict[str, Any]:
        section = self.config.get(name) or {}
        if not isinstance(section, dict):
            raise CollectorConfigError(f"Config section '{name}' must be a mapping")
        return section

    def _int(self, section: Dict[str, Any], key: str, default: int) -> int:
        value = section.get(key, default)
        try:
            return int(value)
        except (TypeError, ValueError):
            raise CollectorConfigError(f"Config value '{key}' must be an integer, got {value!r}")

    def get_elastic_config(self) -> ElasticConfig:
        """Get Elasticsearch connection configuration."""
        section = self._section("elasticsearch")
        return ElasticConfig(
            hosts=_split_hosts(section.get("hosts")) or ["localhost"],
            port=self._int(section, "port", 9200),
            scheme=section.get("scheme", "http"),
            username=section.get("username"),
            password=section.get("password"),
            verify_certs=bool(section.get("verify_certs", True)),
            request_timeout=self._int(section, "request_timeout", 60),
        )

    def get_management_config(self) -> ManagementConfig:
        """Get management API configuration."""
        section = self._section("management")
        return ManagementConfig(
            hosts=_split_hosts(section.get("hosts")),
            port=self._int(section, "port", 4443),
            username=section.get("username"),
            password=section.get("password"),
            verify_ssl=bool(section.get("verify_ssl", False)),
            timeout=self._int(section, "timeout", 30),
            max_retries=self._int(section, "max_retries", 3),
            page_size=self._int(section, "page_size", 1000),
        )

    def get_object_store_config(self) -> ObjectStoreConfig:
        """Get S3 data plane configuration."""
        section = self._section("object_store")
        return ObjectStoreConfig(
            hosts=_split_hosts(section.get("hosts")),
            port=self._int(section, "port", 9020),
            scheme=section.get("scheme", "http"),
            access_key=section.get("access_key"),
            secret_key=section.get("secret_key"),
            region=section.get("region", "us-east-1"),
            page_size=self._int(section, "page_size", 1000),
            query=section.get("query"),
            query_attributes=list(section.get("query_attributes") or []),
            timeout=self._int(section, "timeout", 60),
            max_retries=self._int(section, "max_retries", 3),
        )

    def get_scheduler_config(self) -> SchedulerConfig:
        """Get worker pool configuration."""
        section = self._section("scheduler")
        max_workers = self._int(section, "max_workers", 10)
        if max_workers < 1:
            raise CollectorConfigError(f"scheduler.max_workers must be >= 1, got {max_workers}")
        return SchedulerConfig(max_workers=max_workers)

    def get_purge_config(self) -> PurgeConfig:
        """Get purge engine configuration."""
        section = self._section("purge")
        config = PurgeConfig(
            page_size=self._int(section, "page_size", 25000),
            scroll_keep_alive=str(section.get("scroll_keep_alive", "15s")),
        )
        if section.get("retention_days"):
            config.retention_days.update(
                {str(k): int(v) for k, v in section["retention_days"].items()}
            )
        return config

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dotted key."""
        keys = key.split(".")
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default
