"""
In-memory search backend used as a test fake.

Keeps indices and documents in dictionaries and evaluates the subset of
the query DSL the collector issues (``match_all`` and ``bool.filter``
date ranges). Scroll cursors snapshot the matching ids when opened, like
a real scroll context.
"""

import itertools
import logging
import threading
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from ..core.exceptions import IndexAlreadyExistsError, SearchBackendError
from .backend import BulkOutcome, ScrollPage, SearchBackend
from .documents import parse_collection_time
from .mappings import IndexSchema


logger = logging.getLogger(__name__)


def _range_matches(value: Any, bounds: Dict[str, Any]) -> bool:
    if value is None:
        return False
    actual = parse_collection_time(value)
    for op, bound in bounds.items():
        if op not in ("lt", "lte", "gt", "gte"):
            continue
        limit: datetime = parse_collection_time(bound)
        if op == "lt" and not actual < limit:
            return False
        if op == "lte" and not actual <= limit:
            return False
        if op == "gt" and not actual > limit:
            return False
        if op == "gte" and not actual >= limit:
            return False
    return True


def matches(document: Dict[str, Any], query: Dict[str, Any]) -> bool:
    """Evaluate a match_all / bool-filter-range query against a document."""
    if not query or "match_all" in query:
        return True
    if "range" in query:
        return all(
            _range_matches(document.get(name), bounds)
            for name, bounds in query["range"].items()
        )
    if "bool" in query:
        clauses = query["bool"].get("filter") or []
        if isinstance(clauses, dict):
            clauses = [clauses]
        return all(matches(document, clause) for clause in clauses)
    raise SearchBackendError(f"Unsupported query: {query}")


class InMemorySearchBackend(SearchBackend):
    """
    Thread-safe SearchBackend holding everything in memory.

    Failure injection:
        reject_ids: ids whose index/delete actions are rejected item-wise
        fail_create: create_index raises SearchBackendError
        fail_next_scroll: next_scroll raises SearchBackendError
    """

    def __init__(self, reject_ids: Optional[Iterable[str]] = None, create_delay: float = 0.0):
        self.schemas: Dict[str, IndexSchema] = {}
        self.documents: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.reject_ids: Set[str] = set(reject_ids or ())
        self.create_delay = create_delay
        self.fail_create = False
        self.fail_next_scroll = False

        self.create_calls = 0
        self.bulk_calls: List[int] = []
        self.calls: List[str] = []
        self.cleared_scrolls: List[str] = []

        self._lock = threading.Lock()
        self._scrolls: Dict[str, List[str]] = {}
        self._scroll_sizes: Dict[str, int] = {}
        self._scroll_seq = itertools.count(1)

    def index_exists(self, index: str) -> bool:
        with self._lock:
            self.calls.append("index_exists")
            return index in self.schemas

    def create_index(self, schema: IndexSchema) -> None:
        if self.create_delay:
            # Widen the check-then-create window for race tests
            threading.Event().wait(self.create_delay)

        with self._lock:
            self.calls.append("create_index")
            if self.fail_create:
                raise SearchBackendError(f"Cannot create index {schema.name}", status_code=500)
            if schema.name in self.schemas:
                raise IndexAlreadyExistsError(
                    f"index [{schema.name}] already exists", status_code=400
                )
            self.schemas[schema.name] = schema
            self.documents[schema.name] = {}
            self.create_calls += 1

    def bulk(self, actions: List[Dict[str, Any]]) -> BulkOutcome:
        outcome = BulkOutcome()
        with self._lock:
            self.calls.append("bulk")
            self.bulk_calls.append(len(actions))

            for action in actions:
                op_type = action.get("_op_type", "index")
                doc_id = str(action["_id"])
                docs = self.documents.setdefault(action["_index"], {})

                if doc_id in self.reject_ids:
                    error = {"_id": doc_id, "status": 400, "error": {"type": "mapper_parsing_exception"}}
                elif op_type == "delete" and doc_id not in docs:
                    error = {"_id": doc_id, "status": 404, "result": "not_found"}
                else:
                    error = None

                if error is not None:
                    outcome.failed_ids.add(doc_id)
                    outcome.errors.append({op_type: error})
                    continue

                if op_type == "delete":
                    del docs[doc_id]
                else:
                    docs[doc_id] = dict(action["_source"])
                outcome.succeeded += 1

        return outcome

    def open_scroll(
        self, index: str, query: Dict[str, Any], size: int, keep_alive: str
    ) -> ScrollPage:
        with self._lock:
            self.calls.append("open_scroll")
            if index not in self.documents:
                raise SearchBackendError(f"no such index [{index}]", status_code=404)

            ids = [
                doc_id for doc_id, doc in sorted(self.documents[index].items())
                if matches(doc, query)
            ]
            scroll_id = f"scroll-{next(self._scroll_seq)}"
            self._scrolls[scroll_id] = ids
            self._scroll_sizes[scroll_id] = size
            return self._take(scroll_id, total=len(ids))

    def next_scroll(self, scroll_id: str, keep_alive: str) -> ScrollPage:
        with self._lock:
            self.calls.append("next_scroll")
            if self.fail_next_scroll:
                raise SearchBackendError("No search context found", status_code=404)
            if scroll_id not in self._scrolls:
                raise SearchBackendError(f"No search context found for id [{scroll_id}]", status_code=404)
            return self._take(scroll_id, total=len(self._scrolls[scroll_id]))

    def clear_scroll(self, scroll_id: str) -> None:
        with self._lock:
            self.calls.append("clear_scroll")
            self._scrolls.pop(scroll_id, None)
            self._scroll_sizes.pop(scroll_id, None)
            self.cleared_scrolls.append(scroll_id)

    def count(self, index: str) -> int:
        with self._lock:
            return len(self.documents.get(index, {}))

    def search(self, index: str, query: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Return the documents of an index matching a query."""
        with self._lock:
            return [
                doc for doc in self.documents.get(index, {}).values()
                if matches(doc, query or {})
            ]

    def _take(self, scroll_id: str, total: int) -> ScrollPage:
        remaining = self._scrolls[scroll_id]
        size = self._scroll_sizes[scroll_id]
        page, self._scrolls[scroll_id] = remaining[:size], remaining[size:]
        return ScrollPage(scroll_id=scroll_id, ids=page, total=total)
