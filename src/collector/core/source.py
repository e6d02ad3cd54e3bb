"""
Record source interface for pulling pages of records from the cluster.
"""

from abc import ABC, abstractmethod
from typing import Optional

from .models import BucketKey, Page, RecordType


class RecordSource(ABC):
    """
    Abstract base class for all record sources.

    A record source pages through one bucket (or one namespace) for a given
    record type. Paging is driven by an opaque continuation token: the first
    call passes None, each following call passes the ``next_token`` of the
    previous page, and a page without ``next_token`` ends the listing.
    """

    @abstractmethod
    def list_page(
        self,
        bucket_key: BucketKey,
        record_type: RecordType,
        token: Optional[str] = None,
    ) -> Page:
        """
        Fetch one page of records.

        Args:
            bucket_key: Namespace and bucket to list
            record_type: Which listing to run
            token: Continuation token from the previous page

        Returns:
            Page of records

        Raises:
            RecordSourceError if the listing fails
        """
        pass

    @abstractmethod
    def get_name(self) -> str:
        """Return the record source name/identifier."""
        pass

    def close(self) -> None:
        """Close any open resources. Optional."""
        pass
