"""
HTTP plumbing shared by the Supabase-backed store and cache.

Both talk to the PostgREST API: stored procedures under ``/rest/v1/rpc/`` and
read-only views under ``/rest/v1/``.
"""
from __future__ import annotations

import functools
import logging
from typing import Any, Dict, Optional, Type

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from degradation_report.errors import ResolverError


logger = logging.getLogger(__name__)


def get_requests_session(timeout: float = 10.0) -> requests.Session:
    """
    Creates a requests session with automatic retries for rate limits and server errors.

    Uses exponential backoff: sleeps 0.5s, 1s between retries.
    Only idempotent methods are retried; RPC calls are POSTs and are not.

    Args:
        timeout: Default timeout (seconds) applied to every request

    Returns:
        Configured requests.Session with retry logic
    """
    session = requests.Session()

    retry_strategy = Retry(
        total=2,
        backoff_factor=0.5,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["HEAD", "GET", "OPTIONS"]
    )

    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("https://", adapter)
    session.mount("http://", adapter)

    session.request = functools.partial(session.request, timeout=timeout)

    return session


class SupabaseClient:
    """Thin PostgREST client: RPC calls and view selects."""

    def __init__(
        self,
        url: str,
        key: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = url.rstrip("/") + "/rest/v1"
        self._owns_session = session is None
        self.session = session or get_requests_session(timeout)
        self.session.headers.update({
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        })

    def rpc(
        self,
        procedure: str,
        params: Dict[str, Any],
        error_type: Type[ResolverError],
    ) -> Any:
        """Invoke a stored procedure and return its decoded JSON result.

        Raises:
            error_type: On transport failure or non-2xx status
        """
        url = f"{self.base_url}/rpc/{procedure}"
        try:
            response = self.session.post(url, json=params)
            response.raise_for_status()
        except requests.RequestException as e:
            raise error_type(f"RPC {procedure} failed: {e}", operation=procedure) from e
        return _decode(response)

    def select(
        self,
        view: str,
        params: Dict[str, Any],
        error_type: Type[ResolverError],
    ) -> Any:
        """Select rows from a table or view.

        Raises:
            error_type: On transport failure or non-2xx status
        """
        url = f"{self.base_url}/{view}"
        try:
            response = self.session.get(url, params=params)
            response.raise_for_status()
        except requests.RequestException as e:
            raise error_type(f"Select from {view} failed: {e}", operation=view) from e
        return _decode(response)

    def close(self) -> None:
        if self._owns_session:
            self.session.close()


def _decode(response: requests.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        logger.warning(f"Non-JSON response from {response.url}")
        return None
