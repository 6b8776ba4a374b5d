# Overview: Explicit API session (base URL, token, timeout) threaded through every client call.

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:5000/api/v1"


def _log_request(request: httpx.Request) -> None:
    logger.debug("API request: %s %s", request.method, request.url)


def _log_response(response: httpx.Response) -> None:
    logger.debug("API response: %s %s", response.status_code, response.request.url)


@dataclass
class ApiSession:
    """
    Connection settings for one console user.

    Nothing in the client reads ambient state: the bearer token lives here
    and every request is built from this object.
    """
    base_url: str = DEFAULT_BASE_URL
    token: str | None = None
    timeout: float = 10.0

    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def build_client(self, transport: httpx.BaseTransport | None = None) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            headers=self.headers(),
            timeout=self.timeout,
            transport=transport,
            event_hooks={"request": [_log_request], "response": [_log_response]},
        )
