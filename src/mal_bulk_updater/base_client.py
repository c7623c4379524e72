"""Base API client with common functionality."""

import logging
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .constants import HTTP_TOO_MANY_REQUESTS, HTTP_UNAUTHORIZED
from .exceptions import AuthRejected, RemoteFailure

logger = logging.getLogger(__name__)


def remote_error_message(response: Optional[requests.Response], fallback: str) -> str:
    """Pull the human-readable message out of an error response body."""
    if response is None:
        return fallback
    try:
        body = response.json()
    except ValueError:
        return fallback
    if isinstance(body, dict):
        return body.get("message") or body.get("error") or fallback
    return fallback


class BaseAPIClient:
    """Base class for API clients with common request handling.

    The bearer token is passed per request so a refreshed token takes effect
    on the very next call.
    """

    def __init__(self, base_url: str, headers: Optional[dict] = None, timeout: float = 30.0):
        """Initialize API client."""
        self.base_url = base_url
        self.timeout = timeout
        self.session = requests.Session()

        # Configure retry strategy for rate limits (429)
        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[HTTP_TOO_MANY_REQUESTS],
            allowed_methods=["GET", "POST", "PATCH"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

        if headers:
            self.session.headers.update(headers)

    def _request(self, method: str, url: str, access_token: str, **kwargs) -> requests.Response:
        """Send an authorized request and translate failures into MALError subclasses."""
        headers = kwargs.pop("headers", {}) or {}
        headers["Authorization"] = f"Bearer {access_token}"

        try:
            response = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error(f"{method} {url} failed: {e}")
            raise RemoteFailure(str(e)) from e

        self._handle_error(response, method, url)
        return response

    def _handle_error(self, response: requests.Response, method: str, url: str) -> None:
        """Raise AuthRejected on 401 and RemoteFailure on any other non-2xx."""
        if response.ok:
            return

        message = remote_error_message(response, f"HTTP {response.status_code}")
        if response.status_code == HTTP_UNAUTHORIZED:
            logger.warning(f"MyAnimeList rejected the access token ({method} {url})")
            raise AuthRejected(message)

        logger.error(f"MyAnimeList API error: {response.status_code} ({method} {url})")
        logger.debug(f"Response: {response.text}")
        raise RemoteFailure(message, status_code=response.status_code)
