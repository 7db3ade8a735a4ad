"""
Shared HTTP plumbing for hosted providers.

Wraps one httpx.AsyncClient per provider instance and converts HTTP
failures into the repodigest error taxonomy. Providers never retry;
retry policy belongs to the ingestion engine.
"""

import logging
import time
from email.utils import parsedate_to_datetime
from typing import Any, AsyncIterator, Dict, Optional, Tuple

import httpx

from repodigest.core.exceptions import (
    AuthRequired,
    BackendUnavailable,
    NotFound,
    RateLimited,
    RepoDigestError,
)
from repodigest.providers.base import GitProvider

logger = logging.getLogger(__name__)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds or as an HTTP date."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    return max(0.0, when.timestamp() - time.time())


def parse_reset_epoch(value: Optional[str]) -> Optional[float]:
    """Convert an epoch-seconds reset header into a delay from now."""
    if not value:
        return None
    try:
        return max(0.0, float(value) - time.time())
    except ValueError:
        return None


class HostedProvider(GitProvider):
    """
    Base class for REST-backed providers.

    Subclasses set the auth header and implement the rate-limit
    detection for their host.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        user_agent: str = "repodigest/1.0",
        headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
        binary_sample_size: int = 8192,
    ):
        super().__init__(binary_sample_size=binary_sample_size)
        self.base_url = base_url.rstrip("/")
        self.has_token = bool(token)

        final_headers = {"User-Agent": user_agent}
        final_headers.update(self.auth_headers(token))
        if headers:
            final_headers.update(headers)

        self._owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=final_headers,
                timeout=timeout,
                follow_redirects=True,
            )
        else:
            client.headers.update(final_headers)
        self.client = client

        logger.debug(
            f"Created {self.name} client for {self.base_url} "
            f"(timeout={timeout}s, authenticated={self.has_token})"
        )

    def auth_headers(self, token: Optional[str]) -> Dict[str, str]:
        """Headers carrying the credential, if any."""
        return {}

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    def rate_limit_hint(self, response: httpx.Response) -> Tuple[bool, Optional[float]]:
        """
        Detect a rate-limit response.

        Returns:
            Tuple of (is_rate_limited, retry_after_seconds_or_None).
        """
        if response.status_code == 429:
            return True, parse_retry_after(response.headers.get("Retry-After"))
        return False, None

    async def request(
        self,
        method: str,
        url: str,
        not_found: Optional[RepoDigestError] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Send a request and map failures to provider errors.

        Args:
            method: HTTP method.
            url: URL relative to the provider base URL, or absolute.
            not_found: Error to raise on 404 instead of NotFound.

        Returns:
            The successful response.
        """
        if not url.startswith(("http://", "https://")):
            url = f"{self.base_url}{url}"

        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise BackendUnavailable(
                f"Request timed out: {url}", backend=self.name, details={"url": url}
            ) from e
        except httpx.TransportError as e:
            raise BackendUnavailable(
                f"Transport error: {e}", backend=self.name, details={"url": url}
            ) from e

        if response.is_success:
            return response

        self.raise_for_status(response, not_found=not_found)
        return response

    def raise_for_status(
        self, response: httpx.Response, not_found: Optional[RepoDigestError] = None
    ) -> None:
        """Convert an unsuccessful response into the matching error."""
        status = response.status_code
        url = str(response.request.url).split("?", 1)[0]
        details = {"url": url, "status_code": status}

        limited, delay = self.rate_limit_hint(response)
        if limited:
            logger.warning(f"{self.name} rate limit hit on {url} (retry after: {delay})")
            raise RateLimited(
                f"Rate limit exceeded (HTTP {status})",
                retry_after=delay,
                backend=self.name,
                details=details,
            )

        if status in (401, 403):
            hint = "" if self.has_token else "; supply an access token"
            raise AuthRequired(
                f"Access denied (HTTP {status}){hint}",
                backend=self.name,
                details=details,
            )

        if status == 404 or (status == 422 and not_found is not None):
            if not_found is not None:
                raise not_found
            raise NotFound(url, backend=self.name, details=details)

        if status >= 500:
            raise BackendUnavailable(
                f"Server error (HTTP {status})", backend=self.name, details=details
            )

        raise BackendUnavailable(
            f"Unexpected response (HTTP {status})", backend=self.name, details=details
        )

    async def get_json(
        self, url: str, not_found: Optional[RepoDigestError] = None, **kwargs: Any
    ) -> Any:
        response = await self.request("GET", url, not_found=not_found, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise BackendUnavailable(
                f"Malformed JSON response from {url}", backend=self.name
            ) from e

    async def iter_link_pages(
        self, url: str, not_found: Optional[RepoDigestError] = None, **kwargs: Any
    ) -> AsyncIterator[httpx.Response]:
        """Follow ``Link: rel="next"`` cursors until the host stops sending them."""
        next_url: Optional[str] = url
        while next_url:
            response = await self.request("GET", next_url, not_found=not_found, **kwargs)
            yield response
            next_url = response.links.get("next", {}).get("url")
            # The cursor URL already carries the query string
            kwargs.pop("params", None)

    async def iter_numbered_pages(
        self, url: str, params: Dict[str, Any], not_found: Optional[RepoDigestError] = None
    ) -> AsyncIterator[httpx.Response]:
        """Follow the ``X-Next-Page`` header until it comes back empty."""
        page = params.get("page", 1)
        while page:
            response = await self.request(
                "GET", url, not_found=not_found, params={**params, "page": page}
            )
            yield response
            next_page = response.headers.get("X-Next-Page", "").strip()
            page = int(next_page) if next_page.isdigit() else None
