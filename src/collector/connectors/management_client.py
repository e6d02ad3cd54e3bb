"""
Client for the management REST API.

Authenticates with basic auth against ``/login`` and reuses the returned
``X-SDS-AUTH-TOKEN`` for every following call until ``logout``.
"""

import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

import requests

from ..config.config_loader import ManagementConfig
from ..core.exceptions import CollectorConfigError, ManagementClientError
from ..core.models import BucketBillingInfo, BucketDescriptor, NamespaceBillingInfo
from ..utils.retry import BackoffPolicy, send_with_retry


logger = logging.getLogger(__name__)

AUTH_TOKEN_HEADER = "X-SDS-AUTH-TOKEN"

LOGIN_PATH = "/login"
LOGOUT_PATH = "/logout"
NAMESPACES_PATH = "/object/namespaces"
BUCKETS_PATH = "/object/bucket"
NAMESPACE_BILLING_PATH = "/object/billing/namespace/{namespace}/info"


def _as_bool(value: Any) -> Optional[bool]:
    if value is None or isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


def _as_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _ref_id(value: Any) -> Optional[str]:
    """Management API references come as {"id": ..., "link": ...} objects."""
    if isinstance(value, dict):
        ref = value.get("id") or value.get("href")
        return str(ref) if ref is not None else None
    return str(value) if value is not None else None


def parse_bucket(data: Dict[str, Any], namespace: str) -> BucketDescriptor:
    """Build a BucketDescriptor from a management API bucket entry."""
    search_metadata = data.get("search_metadata") or {}
    link = data.get("link")
    if isinstance(link, dict):
        link = link.get("href")

    return BucketDescriptor(
        name=data["name"],
        namespace=data.get("namespace") or namespace,
        id=_ref_id(data.get("id")),
        owner=data.get("owner"),
        vpool=_ref_id(data.get("vpool")),
        api_type=data.get("api_type"),
        created=data.get("created"),
        creation_time=data.get("creation_time") or data.get("created"),
        soft_quota=data.get("softquota"),
        link=link,
        vdc=_ref_id(data.get("vdc")),
        default_group=data.get("default_group"),
        block_size=_as_int(data.get("block_size")),
        notification_size=_as_int(data.get("notification_size")),
        retention=_as_int(data.get("retention")),
        default_retention=_as_int(data.get("default_retention")),
        fs_access_enabled=_as_bool(data.get("fs_access_enabled")),
        locked=_as_bool(data.get("locked")),
        is_stale_allowed=_as_bool(data.get("is_stale_allowed")),
        is_encryption_enabled=_as_bool(data.get("is_encryption_enabled")),
        inactive=_as_bool(data.get("inactive")),
        global_=_as_bool(data.get("global")),
        remote=_as_bool(data.get("remote")),
        internal=_as_bool(data.get("internal")),
        default_group_file_read_permission=_as_bool(data.get("default_group_file_read_permission")),
        default_group_file_write_permission=_as_bool(data.get("default_group_file_write_permission")),
        default_group_file_execute_permission=_as_bool(data.get("default_group_file_execute_permission")),
        default_group_dir_read_permission=_as_bool(data.get("default_group_dir_read_permission")),
        default_group_dir_write_permission=_as_bool(data.get("default_group_dir_write_permission")),
        default_group_dir_execute_permission=_as_bool(data.get("default_group_dir_execute_permission")),
        search_metadata_enabled=bool(_as_bool(search_metadata.get("isEnabled"))),
    )


def parse_namespace_billing(data: Dict[str, Any], namespace: str) -> NamespaceBillingInfo:
    return NamespaceBillingInfo(
        namespace=data.get("namespace") or namespace,
        total_size=_as_float(data.get("total_size")),
        total_size_unit=data.get("total_size_unit"),
        total_objects=_as_int(data.get("total_objects")),
    )


def parse_bucket_billing(data: Dict[str, Any], namespace: str) -> BucketBillingInfo:
    return BucketBillingInfo(
        name=data["name"],
        namespace=data.get("namespace") or namespace,
        total_size=_as_float(data.get("total_size")),
        total_size_unit=data.get("total_size_unit"),
        total_objects=_as_int(data.get("total_objects")),
        vpool_id=_ref_id(data.get("vpool_id")),
    )


class ManagementClient:
    """
    Management REST API client.

    Thread-safe: the auth token is guarded by a lock and the underlying
    requests session is shared by worker threads.
    """

    def __init__(self, config: ManagementConfig, session: Optional[requests.Session] = None):
        """
        Initialize the management client.

        Args:
            config: Management API connection settings
            session: Optional requests session (created if not provided)
        """
        if not config.hosts:
            raise CollectorConfigError("Management API hosts are not configured")
        if not config.username:
            raise CollectorConfigError("Management API username is not configured")

        self.config = config
        self.base_url = f"https://{config.hosts[0]}:{config.port}"
        self.session = session or requests.Session()
        self.session.verify = config.verify_ssl
        self.session.headers.update({"Accept": "application/json"})
        self.backoff = BackoffPolicy.from_max_retries(config.max_retries)

        self._token: Optional[str] = None
        self._token_lock = threading.Lock()

    # =========================================================================
    # Authentication
    # =========================================================================

    def login(self) -> str:
        """Log in and return the auth token."""
        with self._token_lock:
            if self._token is None:
                response = self._send(
                    "GET", LOGIN_PATH, auth=(self.config.username, self.config.password or "")
                )
                if response.status_code != 200:
                    raise ManagementClientError(
                        f"Login to {self.base_url} failed: HTTP {response.status_code}",
                        status_code=response.status_code,
                    )
                token = response.headers.get(AUTH_TOKEN_HEADER)
                if not token:
                    raise ManagementClientError(
                        f"Login to {self.base_url} returned no {AUTH_TOKEN_HEADER}"
                    )
                self._token = token
                logger.info(f"Logged in to management API at {self.base_url}")
            return self._token

    def logout(self) -> None:
        """Release the auth token, if any."""
        with self._token_lock:
            if self._token is None:
                return
            token, self._token = self._token, None

        try:
            response = self._send("GET", LOGOUT_PATH, headers={AUTH_TOKEN_HEADER: token})
            if response.status_code != 200:
                logger.warning(f"Logout returned HTTP {response.status_code}")
        except ManagementClientError as e:
            logger.warning(f"Logout failed: {e}")

    # =========================================================================
    # Queries
    # =========================================================================

    def list_namespaces(self) -> List[str]:
        """Return the names of all namespaces."""
        namespaces = []
        marker = None
        while True:
            params = {"limit": self.config.page_size}
            if marker:
                params["marker"] = marker
            payload = self._get_json(NAMESPACES_PATH, params)
            for entry in payload.get("namespace") or []:
                namespaces.append(entry.get("name") or entry.get("id"))
            marker = payload.get("NextMarker")
            if not marker:
                return namespaces

    def list_buckets_page(
        self, namespace: str, marker: Optional[str] = None
    ) -> Tuple[List[BucketDescriptor], Optional[str]]:
        """Return one page of buckets of a namespace and the next marker."""
        params = {"namespace": namespace, "limit": self.config.page_size}
        if marker:
            params["marker"] = marker
        payload = self._get_json(BUCKETS_PATH, params)
        buckets = [parse_bucket(b, namespace) for b in payload.get("object_bucket") or []]
        return buckets, payload.get("NextMarker") or None

    def list_buckets(self, namespace: str) -> List[BucketDescriptor]:
        """Return all buckets of a namespace."""
        buckets: List[BucketDescriptor] = []
        marker = None
        while True:
            page, marker = self.list_buckets_page(namespace, marker)
            buckets.extend(page)
            if marker is None:
                return buckets

    def get_namespace_billing(
        self,
        namespace: str,
        marker: Optional[str] = None,
        include_buckets: bool = True,
    ) -> Tuple[NamespaceBillingInfo, List[BucketBillingInfo], Optional[str]]:
        """
        Return billing info of a namespace.

        Returns:
            (namespace totals, one page of bucket totals, next marker)
        """
        params: Dict[str, Any] = {"include_bucket_detail": str(include_buckets).lower()}
        if marker:
            params["marker"] = marker
        payload = self._get_json(NAMESPACE_BILLING_PATH.format(namespace=namespace), params)

        info = parse_namespace_billing(payload, namespace)
        buckets = [
            parse_bucket_billing(b, namespace)
            for b in payload.get("bucket_billing_info") or []
        ] if include_buckets else []
        next_marker = payload.get("next_marker") if include_buckets else None
        return info, buckets, next_marker or None

    def close(self) -> None:
        """Log out and close the session."""
        self.logout()
        self.session.close()

    # =========================================================================
    # Transport
    # =========================================================================

    def _get_json(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        token = self.login()
        response = self._send("GET", path, params=params, headers={AUTH_TOKEN_HEADER: token})

        if response.status_code == 401:
            # Token expired; log in again once
            with self._token_lock:
                if self._token == token:
                    self._token = None
            token = self.login()
            response = self._send("GET", path, params=params, headers={AUTH_TOKEN_HEADER: token})

        if response.status_code != 200:
            raise ManagementClientError(
                f"GET {path} failed: HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ManagementClientError(f"GET {path} returned invalid JSON: {e}") from e

    def _send(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        return send_with_retry(
            lambda: self.session.request(method, url, timeout=self.config.timeout, **kwargs),
            self.backoff,
            f"{method} {path}",
            lambda message, status: ManagementClientError(message, status_code=status),
        )
