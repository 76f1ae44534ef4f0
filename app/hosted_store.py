"""
Hosted Store Client
Talks to the hosted league backend over its REST dialect (/rest/v1/<table>)
"""
import logging
from typing import Any, Dict, List, Optional

import requests
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from app.live_match.errors import LeagueError
from config.settings import settings

logger = logging.getLogger("hosted_store")

REST_PREFIX = "rest/v1"


class HostedStoreError(LeagueError):
    """The hosted store rejected a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class HostedStoreUnavailableError(HostedStoreError):
    """Transient failure (network, 5xx, rate limit). Reads retry these."""


class HostedStoreNotConfiguredError(HostedStoreError):
    def __init__(self):
        super().__init__("hosted_store_url and hosted_store_key must be set")


def _eq_filters(filters: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """{"status": "live"} -> {"status": "eq.live"}; None values become is.null."""
    params = {}
    for column, value in (filters or {}).items():
        if value is None:
            params[column] = "is.null"
        elif isinstance(value, bool):
            params[column] = f"eq.{str(value).lower()}"
        else:
            params[column] = f"eq.{value}"
    return params


class HostedStoreClient:
    """
    Minimal client for the hosted backend.

    Args:
        base_url: project URL, e.g. https://xyz.example.co
        api_key: service key sent as `apikey` and bearer token
        timeout: per-request timeout in seconds
        session: requests session (injectable for tests)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or settings.hosted_store_url or "").rstrip("/")
        self.api_key = api_key or settings.hosted_store_key
        self.timeout = timeout or settings.hosted_store_timeout
        self._session = session or requests.Session()

        if not self.base_url or not self.api_key:
            raise HostedStoreNotConfiguredError()

    def _url(self, table: str) -> str:
        return f"{self.base_url}/{REST_PREFIX}/{table}"

    def _headers(self, prefer: Optional[str] = None) -> dict:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _send(self, method: str, table: str, **kwargs) -> requests.Response:
        try:
            response = self._session.request(method, self._url(table), timeout=self.timeout, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.warning(f"Hosted store unreachable ({method} {table}): {e}")
            raise HostedStoreUnavailableError(str(e))

        if response.status_code == 429 or response.status_code >= 500:
            logger.warning(f"Hosted store {method} {table} returned {response.status_code}")
            raise HostedStoreUnavailableError(
                f"{method} {table} failed with {response.status_code}", response.status_code
            )
        if response.status_code >= 400:
            logger.error(f"Hosted store {method} {table} rejected: {response.status_code} {response.text}")
            raise HostedStoreError(
                f"{method} {table} rejected with {response.status_code}: {response.text}",
                response.status_code,
            )
        return response

    # =========================================================================
    # READS (retried)
    # =========================================================================

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(HostedStoreUnavailableError),
        reraise=True,
    )
    def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Dict[str, Any]] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Fetch rows.

        Args:
            table: remote table name
            columns: select list, e.g. "*,team:teams(name)"
            filters: equality filters per column
            order: e.g. "name.asc" or "date.desc,time.asc"
            limit: maximum rows
        """
        params = {"select": columns, **_eq_filters(filters)}
        if order:
            params["order"] = order
        if limit:
            params["limit"] = limit

        response = self._send("GET", table, params=params, headers=self._headers())
        rows = response.json()
        logger.debug(f"Fetched {len(rows)} rows from {table}")
        return rows

    # =========================================================================
    # WRITES (never retried)
    # =========================================================================

    def insert(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        response = self._send(
            "POST", table, json=rows, headers=self._headers(prefer="return=representation")
        )
        return response.json()

    def update(self, table: str, values: Dict[str, Any], filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        if not filters:
            raise HostedStoreError("update without filters would touch every row")
        response = self._send(
            "PATCH",
            table,
            params=_eq_filters(filters),
            json=values,
            headers=self._headers(prefer="return=representation"),
        )
        return response.json()

    def delete(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        if not filters:
            raise HostedStoreError("delete without filters would touch every row")
        response = self._send(
            "DELETE",
            table,
            params=_eq_filters(filters),
            headers=self._headers(prefer="return=representation"),
        )
        return response.json()
