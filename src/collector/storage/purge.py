"""
Purge engine: removes documents collected before a threshold date.

A sweep pages through the matching documents with a scroll cursor and
issues one bulk delete per page until a page comes back empty. Sweeps are
best effort: delete failures are logged and the sweep continues, a failed
page fetch ends the sweep early. Running the same sweep again picks up
whatever is left.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional, Union

from ..config.config_loader import PurgeConfig
from ..core.exceptions import SearchBackendError
from ..core.models import ObjectDataType, RetentionQuery
from .backend import SearchBackend
from .mappings import COLLECTION_TIME, SCHEMA_BY_DATA_TYPE


logger = logging.getLogger(__name__)

THRESHOLD_DATE_FORMAT = "%Y-%m-%d"


def threshold_day(value: Union[date, datetime]) -> date:
    """Truncate a threshold to day granularity."""
    if isinstance(value, datetime):
        return value.date()
    return value


def build_retention_filter(query: RetentionQuery) -> Dict[str, Any]:
    """
    Build the query matching documents older than the threshold day.

    The bound is the start of the threshold day (strict ``lt``), so a
    document collected at any time on the threshold day is kept.
    """
    threshold = threshold_day(query.threshold_date).strftime(THRESHOLD_DATE_FORMAT)
    return {
        "bool": {
            "filter": [
                {"range": {COLLECTION_TIME: {"lt": threshold, "format": "yyyy-MM-dd"}}}
            ]
        }
    }


class PurgeEngine:
    """
    Deletes stale documents from the object and object-version indices.

    Holds no state between sweeps.
    """

    def __init__(self, backend: SearchBackend, config: Optional[PurgeConfig] = None):
        """
        Initialize the purge engine.

        Args:
            backend: Search backend to sweep
            config: Page size and scroll keep-alive (defaults if not provided)
        """
        self.backend = backend
        self.config = config or PurgeConfig()

    def purge(
        self,
        data_type: Union[ObjectDataType, str],
        threshold_date: Union[date, datetime],
    ) -> int:
        """
        Delete every document of a data type collected before a date.

        Args:
            data_type: object or object_versions
            threshold_date: Documents collected before this day are deleted

        Returns:
            Number of documents deleted; 0 for data types this engine
            does not handle
        """
        try:
            data_type = ObjectDataType(data_type)
        except ValueError:
            logger.warning(f"Unsupported purge data type: {data_type}")
            return 0

        schema = SCHEMA_BY_DATA_TYPE.get(data_type)
        if schema is None:
            return 0

        query = RetentionQuery(data_type=data_type, threshold_date=threshold_day(threshold_date))
        return self._purge_index(schema.name, query)

    def purge_older_than(
        self,
        data_type: Union[ObjectDataType, str],
        retention_days: int,
        today: Optional[date] = None,
    ) -> int:
        """
        Delete documents older than a retention window.

        The threshold is ``today - retention_days``.
        """
        if retention_days < 0:
            raise ValueError(f"retention_days must be >= 0, got {retention_days}")
        today = today or date.today()
        return self.purge(data_type, today - timedelta(days=retention_days))

    def _purge_index(self, index: str, query: RetentionQuery) -> int:
        threshold = query.threshold_date.strftime(THRESHOLD_DATE_FORMAT)
        search_query = build_retention_filter(query)
        keep_alive = self.config.scroll_keep_alive

        deleted_docs = 0
        scroll_id = None

        try:
            try:
                page = self.backend.open_scroll(
                    index, search_query, self.config.page_size, keep_alive
                )
            except SearchBackendError as e:
                logger.error(f"Purge scan of index {index} failed: {e}")
                return deleted_docs

            while True:
                scroll_id = page.scroll_id or scroll_id

                if not page.ids:
                    # Nothing left to delete
                    break

                logger.info(
                    f"Found {len(page.ids)} documents to delete in index: "
                    f"{index} due to {COLLECTION_TIME} < {threshold}"
                )
                deleted_docs += self._delete_page(index, page.ids)

                if scroll_id is None:
                    break

                try:
                    page = self.backend.next_scroll(scroll_id, keep_alive)
                except SearchBackendError as e:
                    logger.error(
                        f"Purge of index {index} stopped early after "
                        f"{deleted_docs} deletions: {e}"
                    )
                    break
        finally:
            if scroll_id is not None:
                try:
                    self.backend.clear_scroll(scroll_id)
                except SearchBackendError as e:
                    logger.warning(f"Unable to release scroll on {index}: {e}")

        logger.info(
            f"Purged {deleted_docs} documents from index: {index} "
            f"({COLLECTION_TIME} < {threshold})"
        )
        return deleted_docs

    def _delete_page(self, index: str, ids) -> int:
        actions = [{"_op_type": "delete", "_index": index, "_id": doc_id} for doc_id in ids]
        try:
            outcome = self.backend.bulk(actions)
        except SearchBackendError as e:
            logger.error(f"Bulk delete of {len(actions)} documents in {index} failed: {e}")
            return 0

        logger.info(f"Deleted [{outcome.succeeded}] items in index: {index}")
        if outcome.failed_ids:
            logger.error(
                f"{len(outcome.failed_ids)} deletions failed in index: {index}"
            )
        return outcome.succeeded
