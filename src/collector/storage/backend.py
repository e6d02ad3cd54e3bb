"""
Search backend interface and its Elasticsearch implementation.

The ingest writer and the purge engine only ever talk to a SearchBackend,
which exposes the handful of operations they need: create-if-absent for
indices, bulk write/delete with per-item outcome, and scroll paging.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from elasticsearch import ApiError, BadRequestError, Elasticsearch, TransportError, helpers

from ..config.config_loader import ElasticConfig
from ..core.exceptions import IndexAlreadyExistsError, SearchBackendError
from .mappings import IndexSchema


logger = logging.getLogger(__name__)

ALREADY_EXISTS_ERROR = "resource_already_exists_exception"

# Default http.max_content_length of an Elasticsearch node
MAX_BULK_BYTES = 100 * 1024 * 1024


@dataclass
class BulkOutcome:
    """
    Per-item outcome of one bulk request.

    Attributes:
        succeeded: Number of items the backend accepted
        failed_ids: Ids of the rejected items
        errors: Raw error entries as reported by the backend
    """
    succeeded: int = 0
    failed_ids: Set[str] = field(default_factory=set)
    errors: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class ScrollPage:
    """One page of a scroll cursor: the matching ids and the cursor handle."""
    scroll_id: Optional[str]
    ids: List[str] = field(default_factory=list)
    total: int = 0


class SearchBackend(ABC):
    """
    Abstract base class for search backends.

    Implementations translate transport failures into SearchBackendError.
    """

    @abstractmethod
    def index_exists(self, index: str) -> bool:
        """Return True if the index is present."""
        pass

    @abstractmethod
    def create_index(self, schema: IndexSchema) -> None:
        """
        Create an index with the schema's mapping.

        Raises:
            IndexAlreadyExistsError if the index is already present
            SearchBackendError for any other failure
        """
        pass

    @abstractmethod
    def bulk(self, actions: List[Dict[str, Any]]) -> BulkOutcome:
        """
        Run one bulk request of index/delete actions.

        Item-level rejections are reported in the outcome, not raised.
        """
        pass

    @abstractmethod
    def open_scroll(
        self, index: str, query: Dict[str, Any], size: int, keep_alive: str
    ) -> ScrollPage:
        """Run a query and return its first page of ids with a scroll cursor."""
        pass

    @abstractmethod
    def next_scroll(self, scroll_id: str, keep_alive: str) -> ScrollPage:
        """Return the next page of an open scroll cursor."""
        pass

    @abstractmethod
    def clear_scroll(self, scroll_id: str) -> None:
        """Release a scroll cursor."""
        pass

    def close(self) -> None:
        """Close any open resources. Optional."""
        pass


def _is_already_exists(error: ApiError) -> bool:
    body = getattr(error, "body", None)
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict):
            if err.get("type") == ALREADY_EXISTS_ERROR:
                return True
            for cause in err.get("root_cause") or []:
                if cause.get("type") == ALREADY_EXISTS_ERROR:
                    return True
    return ALREADY_EXISTS_ERROR in str(error)


def _failed_ids(errors: Iterable[Dict[str, Any]]) -> Set[str]:
    failed = set()
    for entry in errors:
        for info in entry.values():
            if isinstance(info, dict) and info.get("_id") is not None:
                failed.add(str(info["_id"]))
    return failed


class ElasticsearchBackend(SearchBackend):
    """
    SearchBackend on top of the official Elasticsearch client.

    Bulk requests go through ``elasticsearch.helpers.bulk``. A page is sent
    as one request unless its payload exceeds MAX_BULK_BYTES, in which case
    the helper splits it and the per-item outcomes are merged. Scroll pages
    only request ids (``_source`` disabled).
    """

    def __init__(self, client: Elasticsearch):
        self.client = client

    @classmethod
    def from_config(cls, config: ElasticConfig) -> "ElasticsearchBackend":
        """Build a backend from connection settings."""
        kwargs: Dict[str, Any] = {
            "hosts": config.urls(),
            "verify_certs": config.verify_certs,
            "request_timeout": config.request_timeout,
        }
        if config.username:
            kwargs["basic_auth"] = (config.username, config.password or "")

        logger.info(f"Connecting to Elasticsearch: {', '.join(config.urls())}")
        return cls(Elasticsearch(**kwargs))

    def index_exists(self, index: str) -> bool:
        try:
            return bool(self.client.indices.exists(index=index))
        except (ApiError, TransportError) as e:
            raise SearchBackendError(f"Unable to check index {index}: {e}") from e

    def create_index(self, schema: IndexSchema) -> None:
        try:
            self.client.indices.create(
                index=schema.name,
                mappings=schema.mapping_body(),
                settings=schema.settings or None,
            )
        except BadRequestError as e:
            if _is_already_exists(e):
                raise IndexAlreadyExistsError(
                    f"Index {schema.name} already exists", status_code=400
                ) from e
            raise SearchBackendError(
                f"Unable to create index {schema.name}: {e}", status_code=400
            ) from e
        except (ApiError, TransportError) as e:
            raise SearchBackendError(f"Unable to create index {schema.name}: {e}") from e

    def bulk(self, actions: List[Dict[str, Any]]) -> BulkOutcome:
        if not actions:
            return BulkOutcome()

        try:
            succeeded, errors = helpers.bulk(
                self.client,
                actions,
                chunk_size=len(actions),
                max_chunk_bytes=MAX_BULK_BYTES,
                raise_on_error=False,
                raise_on_exception=True,
                stats_only=False,
            )
        except (ApiError, TransportError) as e:
            raise SearchBackendError(f"Bulk request failed: {e}") from e

        errors = list(errors or [])
        return BulkOutcome(
            succeeded=succeeded,
            failed_ids=_failed_ids(errors),
            errors=errors,
        )

    def open_scroll(
        self, index: str, query: Dict[str, Any], size: int, keep_alive: str
    ) -> ScrollPage:
        try:
            response = self.client.search(
                index=index,
                query=query,
                size=size,
                scroll=keep_alive,
                source=False,
                sort=["_doc"],
            )
        except (ApiError, TransportError) as e:
            raise SearchBackendError(f"Search on {index} failed: {e}") from e
        return self._to_page(response)

    def next_scroll(self, scroll_id: str, keep_alive: str) -> ScrollPage:
        try:
            response = self.client.scroll(scroll_id=scroll_id, scroll=keep_alive)
        except (ApiError, TransportError) as e:
            raise SearchBackendError(f"Scroll fetch failed: {e}") from e
        return self._to_page(response)

    def clear_scroll(self, scroll_id: str) -> None:
        try:
            self.client.clear_scroll(scroll_id=scroll_id)
        except (ApiError, TransportError) as e:
            raise SearchBackendError(f"Unable to clear scroll: {e}") from e

    def close(self) -> None:
        self.client.close()

    def _to_page(self, response) -> ScrollPage:
        hits = response.get("hits", {})
        total = hits.get("total", 0)
        if isinstance(total, dict):
            total = total.get("value", 0)
        return ScrollPage(
            scroll_id=response.get("_scroll_id"),
            ids=[hit["_id"] for hit in hits.get("hits", [])],
            total=total,
        )
