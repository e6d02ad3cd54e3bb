"""
Custom exceptions for the metadata collector.
"""


class CollectorError(Exception):
    """Base exception for all collector errors."""
    pass


class RecordSourceError(CollectorError):
    """
    Error pulling a page of records from a record source.

    Raised when:
    - The object or management endpoint is unreachable
    - Authentication is rejected
    - The endpoint returns an error response

    A work unit that hits this error fails; sibling units keep running.
    """

    def __init__(self, message: str, source: str = None, status_code: int = None):
        super().__init__(message)
        self.source = source
        self.status_code = status_code


class ManagementClientError(RecordSourceError):
    """Error talking to the management REST API."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message, source="management", status_code=status_code)


class SearchBackendError(CollectorError):
    """
    Error communicating with the search backend.

    Raised when:
    - The cluster is unreachable
    - A request is rejected as a whole
    - A scroll cursor expired or could not be found
    """

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class IndexAlreadyExistsError(SearchBackendError):
    """Raised by create_index when the destination is already present."""
    pass


class SchemaBootstrapError(CollectorError):
    """
    Error creating a destination index and its mapping.

    Fatal to a collection run: it is raised before any work unit starts.
    """

    def __init__(self, message: str, index_name: str = None):
        super().__init__(message)
        self.index_name = index_name


class CollectorConfigError(CollectorError):
    """
    Error in collector configuration.

    Raised when:
    - Configuration file is missing or invalid
    - Required values (hosts, credentials) are not set
    """
    pass
