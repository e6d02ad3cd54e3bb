"""
Retrying HTTP sends for the management API and the metadata-search endpoint.

A send is repeated when the connection fails, times out, or the server
answers with a transient status. Every other response goes back to the
caller, which decides what a 4xx means. Work units never retry a page
themselves, so this is the only retry layer of a collection run.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional

import requests

from ..core.exceptions import RecordSourceError


logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (requests.ConnectionError, requests.Timeout)

RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})

ErrorFactory = Callable[[str, Optional[int]], RecordSourceError]


@dataclass
class BackoffPolicy:
    """
    How often and how patiently a send is repeated.

    Attributes:
        max_attempts: Sends per call, first one included
        initial_delay_ms: Pause after the first failed send
        max_delay_ms: Upper bound of any single pause
        jitter: Spread each pause by +/-25%
    """
    max_attempts: int = 3
    initial_delay_ms: float = 500.0
    max_delay_ms: float = 8000.0
    jitter: bool = True

    @classmethod
    def from_max_retries(cls, max_retries: int) -> "BackoffPolicy":
        """Policy for a ``max_retries`` config value (at least one send)."""
        return cls(max_attempts=max(max_retries, 1))

    def delay(self, failed_sends: int) -> float:
        """Seconds to wait after ``failed_sends`` consecutive failures."""
        delay_ms = min(self.initial_delay_ms * (2 ** (failed_sends - 1)), self.max_delay_ms)
        if self.jitter:
            delay_ms *= random.uniform(0.75, 1.25)
        return delay_ms / 1000.0


def is_transient(response: requests.Response) -> bool:
    """True for responses worth sending again."""
    return response.status_code in RETRY_STATUSES


def send_with_retry(
    send: Callable[[], requests.Response],
    policy: BackoffPolicy,
    description: str,
    error_factory: ErrorFactory,
) -> requests.Response:
    """
    Run ``send`` until it returns a non-transient response.

    Args:
        send: Issues one HTTP request
        policy: Attempt count and backoff
        description: Request label for logs and error messages
        error_factory: Builds the error raised once attempts run out,
            from a message and the last HTTP status (None after a
            transport error)

    Returns:
        The first response whose status is not transient

    Raises:
        RecordSourceError (as built by ``error_factory``) when every
        attempt failed
    """
    cause = None
    status_code = None
    failure = ""

    for attempt in range(1, policy.max_attempts + 1):
        try:
            response = send()
        except TRANSPORT_ERRORS as e:
            cause, status_code = e, None
            failure = f"{type(e).__name__}: {e}"
        else:
            if not is_transient(response):
                if attempt > 1:
                    logger.info(f"{description} succeeded on attempt {attempt}")
                return response
            cause, status_code = None, response.status_code
            failure = f"HTTP {response.status_code}"

        if attempt < policy.max_attempts:
            delay = policy.delay(attempt)
            logger.warning(
                f"{description} failed on attempt {attempt}/{policy.max_attempts} "
                f"({failure}), retrying in {delay:.1f}s"
            )
            time.sleep(delay)

    logger.error(f"{description} failed after {policy.max_attempts} attempts: {failure}")
    raise error_factory(
        f"{description} failed after {policy.max_attempts} attempts: {failure}",
        status_code,
    ) from cause
