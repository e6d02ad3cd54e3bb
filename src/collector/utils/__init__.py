"""
Shared helpers for the metadata collector.
"""

from .retry import BackoffPolicy, RETRY_STATUSES, is_transient, send_with_retry

__all__ = ["BackoffPolicy", "RETRY_STATUSES", "is_transient", "send_with_retry"]
