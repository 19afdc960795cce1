"""
HTTP adapter — urllib-based client for the GitHub release API.
"""

from __future__ import annotations

import http.client
import logging
import urllib.error
import urllib.request

from ccsubagents.adapters.base import HttpClient, HttpResponse

logger = logging.getLogger(__name__)


class UrllibHttpClient(HttpClient):
    """``urllib.request`` client with a per-request timeout.

    Redirects (asset downloads go through a CDN redirect) are followed
    by urllib's default opener.
    """

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout

    def get(self, url: str, headers: dict[str, str] | None = None) -> HttpResponse:
        req = urllib.request.Request(url, headers=headers or {}, method="GET")
        logger.debug("GET %s", url)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                return HttpResponse(
                    status=resp.status,
                    body=resp.read(),
                    headers=dict(resp.headers.items()),
                )
        except urllib.error.HTTPError as e:
            # Non-2xx: hand the status and (bounded) body back to the caller
            body = e.read(4096) if e.fp is not None else b""
            return HttpResponse(status=e.code, body=body, headers=dict(e.headers.items()))
        except http.client.HTTPException as e:
            # IncompleteRead and friends are not OSErrors
            raise OSError(f"GET {url}: {type(e).__name__}: {e}") from e
