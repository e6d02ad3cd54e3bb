"""
Static record source used as a test fake.

Serves fixed pages without any network access. Pages are registered per
(bucket key, record type); listing an unregistered pair returns a single
empty page, which is what an empty bucket looks like.
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..core.exceptions import RecordSourceError
from ..core.models import BucketKey, Owner, Page, RecordType, S3Object
from ..core.source import RecordSource


logger = logging.getLogger(__name__)


def synthetic_objects(count: int, prefix: str = "obj", start: int = 0) -> List[S3Object]:
    """Build ``count`` deterministic S3Object records."""
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return [
        S3Object(
            key=f"{prefix}-{i:07d}",
            size=i * 10,
            last_modified=base + timedelta(seconds=i),
            e_tag=f"etag-{i}",
            owner=Owner(id="owner-1", display_name="Owner One"),
        )
        for i in range(start, start + count)
    ]


class StaticRecordSource(RecordSource):
    """Record source backed by in-memory pages."""

    def __init__(self, name: str = "static"):
        self.name = name
        self._pages: Dict[Tuple[BucketKey, RecordType], List[List[Any]]] = {}
        self._failures: Dict[Tuple[BucketKey, RecordType], Exception] = {}
        self._lock = threading.Lock()
        self.calls: List[Tuple[BucketKey, RecordType, Optional[str]]] = []

    def add_pages(
        self,
        bucket_key: BucketKey,
        record_type: RecordType,
        pages: Sequence[Sequence[Any]],
    ) -> None:
        """Register the pages a listing returns, in order."""
        self._pages[(bucket_key, record_type)] = [list(page) for page in pages]

    def fail(
        self,
        bucket_key: BucketKey,
        record_type: RecordType,
        error: Optional[Exception] = None,
    ) -> None:
        """Make every listing of a pair raise."""
        self._failures[(bucket_key, record_type)] = error or RecordSourceError(
            f"Listing {record_type.value} of {bucket_key} failed", source=self.name
        )

    def list_page(
        self,
        bucket_key: BucketKey,
        record_type: RecordType,
        token: Optional[str] = None,
    ) -> Page:
        with self._lock:
            self.calls.append((bucket_key, record_type, token))

        error = self._failures.get((bucket_key, record_type))
        if error is not None:
            raise error

        pages = self._pages.get((bucket_key, record_type)) or [[]]
        index = int(token) if token else 0
        if index >= len(pages):
            raise RecordSourceError(f"Invalid continuation token: {token}", source=self.name)

        next_token = str(index + 1) if index + 1 < len(pages) else None
        return Page(records=list(pages[index]), next_token=next_token)

    @property
    def call_count(self) -> int:
        with self._lock:
            return len(self.calls)

    def get_name(self) -> str:
        return self.name
