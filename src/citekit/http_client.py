"""Timeout-bounded HTTP client with structured error mapping."""

from __future__ import annotations

import json
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any

import httpx

from citekit.errors import HttpStatusError, NetworkError, ParseError

DEFAULT_TIMEOUT = 30.0
PROBE_TIMEOUT = 10.0
DEFAULT_USER_AGENT = "citekit/0.1 (+https://github.com/citekit/citekit)"


@dataclass
class HttpResponse:
    """A decoded-on-demand HTTP response body."""

    status_code: int
    text: str
    url: str = ""
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def content_type(self) -> str:
        for k, v in self.headers.items():
            if k.lower() == "content-type":
                return v.lower()
        return ""

    def json(self) -> Any:
        """Decode the body as JSON, raising ParseError on failure."""
        try:
            return json.loads(self.text)
        except (json.JSONDecodeError, TypeError) as e:
            raise ParseError(f"Invalid JSON response from {self.url}: {e}") from e

    def xml(self) -> ET.Element:
        """Decode the body as XML, raising ParseError on failure."""
        try:
            return ET.fromstring(self.text)
        except ET.ParseError as e:
            raise ParseError(f"Invalid XML response from {self.url}: {e}") from e


class HttpClient:
    """HTTP client that maps every failure onto the fetch error taxonomy.

    Non-2xx responses raise :class:`HttpStatusError`, transport failures and
    timeouts raise :class:`NetworkError`. Requests are never retried; a
    timeout always applies.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
        verify: bool = True,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize HTTP client.

        Args:
            timeout: Default request timeout in seconds
            user_agent: User-Agent header value
            verify: Verify TLS certificates. Disabled for the page scraper so
                self-signed mirrors can still be read.
            logger: Logger instance
        """
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)
        self.client = httpx.Client(
            timeout=httpx.Timeout(timeout),
            headers={"User-Agent": user_agent},
            follow_redirects=True,
            verify=verify,
        )

    def close(self) -> None:
        self.client.close()

    def _request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> HttpResponse:
        """Perform one request and map transport and status failures.

        Args:
            method: HTTP method (GET or HEAD)
            url: Request URL
            params: Query parameters
            headers: Extra request headers
            timeout: Per-request timeout override in seconds
        """
        self.logger.debug("%s %s params=%s", method, url, params)
        try:
            resp = self.client.request(
                method,
                url,
                params=params,
                headers=headers or {},
                timeout=httpx.Timeout(timeout if timeout is not None else self.timeout),
            )
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request to {url} timed out") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e

        response = HttpResponse(
            status_code=resp.status_code,
            text=resp.text if method != "HEAD" else "",
            url=str(resp.url),
            headers=dict(resp.headers),
        )
        if not 200 <= resp.status_code < 300:
            raise HttpStatusError(resp.status_code, response.text)
        return response

    def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> HttpResponse:
        return self._request("GET", url, params=params, headers=headers, timeout=timeout)

    def head(self, url: str, headers: dict[str, str] | None = None, timeout: float | None = None) -> HttpResponse:
        return self._request("HEAD", url, headers=headers, timeout=timeout)
