"""
HTTP fetching of issuer and credential documents.

The engine talks to the network only through a ``Fetcher``. The default
implementation uses a short-lived ``httpx.Client`` per request and never
retries; timeouts and connection failures surface as ``FetchError``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from badge_trust.config import DEFAULT_FETCH_TIMEOUT, DEFAULT_USER_AGENT
from badge_trust.errors import ErrorKind, FetchError

logger = logging.getLogger(__name__)


@dataclass
class FetchResponse:
    """A fetched document."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    @property
    def is_json(self) -> bool:
        return "application/json" in self.content_type.lower()

    def json(self) -> Any:
        """Parse the body as JSON.

        Raises:
            ValueError: If the body is not valid JSON.
        """
        return json.loads(self.body.decode("utf-8"))


class Fetcher(Protocol):
    """Collaborator that retrieves a URL within a timeout."""

    def fetch(self, url: str, timeout: float) -> FetchResponse:
        ...


class HttpxFetcher:
    """Fetcher backed by httpx."""

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        verify_ssl: bool = True,
        follow_redirects: bool = True,
    ) -> None:
        """Initialize the fetcher.

        Args:
            user_agent: User-Agent header sent with every request.
            verify_ssl: Whether to verify SSL certificates.
            follow_redirects: Whether to follow HTTP redirects.
        """
        self.user_agent = user_agent
        self.verify_ssl = verify_ssl
        self.follow_redirects = follow_redirects

    def fetch(self, url: str, timeout: float = DEFAULT_FETCH_TIMEOUT) -> FetchResponse:
        """GET a URL.

        Args:
            url: The URL to fetch.
            timeout: Overall request timeout in seconds.

        Returns:
            The response, whatever its status code.

        Raises:
            FetchError: On timeout or network failure.
        """
        logger.debug(f"Fetching: {url}")
        try:
            with httpx.Client(
                timeout=timeout,
                verify=self.verify_ssl,
                follow_redirects=self.follow_redirects,
            ) as client:
                response = client.get(
                    url,
                    headers={
                        "User-Agent": self.user_agent,
                        "Accept": "application/json, application/ld+json",
                    },
                )
        except httpx.TimeoutException as e:
            raise FetchError(
                f"Timed out after {timeout}s fetching {url}",
                kind=ErrorKind.FETCH_TIMEOUT,
            ) from e
        except httpx.InvalidURL as e:
            raise FetchError(f"Invalid URL {url}: {e}", kind=ErrorKind.INVALID_URL) from e
        except httpx.HTTPError as e:
            raise FetchError(f"Network error fetching {url}: {e}") from e

        return FetchResponse(
            status=response.status_code,
            headers={k.lower(): v for k, v in response.headers.items()},
            body=response.content,
        )
