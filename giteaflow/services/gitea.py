"""Gitea REST API transport.

Issues single authenticated requests against
``{url}/api/{version}/repos/{owner}/{repo}/...``. No retries happen here: callers
decide what a non-success status means for them.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

import httpx

from giteaflow.core.config import GiteaConfig
from giteaflow.core.errors import DecodeError, UpstreamError
from giteaflow.core.logging import get_logger, register_secret

logger = get_logger(__name__)

SUCCESS_STATUSES = (200,)


@dataclass
class HTTPResult:
    """Status and raw body of one request."""
    status_code: int
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class GiteaClient:
    """Client for the Gitea REST API v1."""

    def __init__(self, config: GiteaConfig, transport: Optional[httpx.BaseTransport] = None):
        if not config.owner or not config.repo:
            raise ValueError("Gitea owner and repo are required")

        self.config = config
        self.owner = config.owner
        self.repo = config.repo
        self.base_url = config.url.rstrip("/")
        self.repo_url = f"{self.base_url}/api/{config.api_version}/repos/{self.owner}/{self.repo}"

        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if config.token:
            headers["Authorization"] = f"token {config.token}"
            register_secret(config.token)

        self.client = httpx.Client(
            headers=headers,
            timeout=config.timeout_seconds,
            transport=transport,
        )

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "GiteaClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def send(self, method: str, endpoint: str, params: Optional[Dict[str, Any]] = None,
             data: Optional[Any] = None) -> HTTPResult:
        """Send one request to a repository endpoint.

        Args:
            method: HTTP method
            endpoint: Path below the repository URL, e.g. "commits"
            params: Query parameters
            data: JSON payload

        Returns:
            HTTPResult with status code and body text

        Raises:
            UpstreamError: On transport failure (no status code available)
        """
        url = f"{self.repo_url}/{endpoint.lstrip('/')}"
        try:
            response = self.client.request(method, url, params=params, json=data)
        except httpx.HTTPError as e:
            logger.error(f"Gitea {method} {endpoint} failed: {e}")
            raise UpstreamError(f"{method} {endpoint} failed", cause=e) from e

        logger.debug(f"Gitea {method} {endpoint} -> {response.status_code}")
        return HTTPResult(status_code=response.status_code, text=response.text)

    def request_json(self, method: str, endpoint: str, params: Optional[Dict[str, Any]] = None,
                     data: Optional[Any] = None,
                     expected: Sequence[int] = SUCCESS_STATUSES) -> Any:
        """Send a request and decode the JSON body.

        Raises:
            UpstreamError: If the status code is not in ``expected``
            DecodeError: If the body is not valid JSON
        """
        result = self.send(method, endpoint, params=params, data=data)
        if result.status_code not in expected:
            raise UpstreamError(
                f"{method} {endpoint} returned unexpected status",
                status_code=result.status_code,
            )
        return decode_json(result.text, what=endpoint)

    def get_json(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self.request_json("GET", endpoint, params=params)


def decode_json(text: str, what: str = "response") -> Any:
    """Parse a response body, mapping malformed JSON to DecodeError."""
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise DecodeError(f"malformed JSON in {what}", cause=e) from e
