"""
core/http.py -- Outbound HTTP client.

A thin wrapper over a shared requests.Session so route handlers never build
sessions or parse raw responses themselves. Unlike the fire-and-forget
fetchers this client is used for calls whose failure must reach the caller:
network errors and non-2xx responses raise requests.RequestException and
propagate to the API's catch-all error handler.

Usage:
    client = HttpClient()
    result = client.request("post", "https://github.com/login/oauth/access_token", params={...})
    result.data      # response body as text
    client.close()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import requests

logger = logging.getLogger("userhub.http")

_DEFAULT_TIMEOUT = 10


@dataclass
class HttpResult:
    status_code: int
    data: str


class HttpClient:
    def __init__(self, timeout: int = _DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout
        self._session = requests.Session()
        # Known provider endpoints only; 3 hops is generous.
        self._session.max_redirects = 3

    def request(
        self,
        method: str,
        url: str,
        params: Optional[dict[str, Any]] = None,
        data: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> HttpResult:
        """Send a request and return its status and text body.

        Raises requests.HTTPError on a non-2xx status and any other
        requests.RequestException on transport failure.
        """
        resp = self._session.request(
            method.upper(),
            url,
            params=params,
            data=data,
            headers=headers,
            timeout=self.timeout,
        )
        logger.debug("%s %s -> %d", method.upper(), url, resp.status_code)
        resp.raise_for_status()
        return HttpResult(status_code=resp.status_code, data=resp.text)

    def close(self) -> None:
        self._session.close()
