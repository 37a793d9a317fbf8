import time
from typing import Any

import httpx
from loguru import logger

from evm_lp_paths.core.constants.base import DEFAULT_HTTP_TIMEOUT


class HttpClient:
    def __init__(self, *, timeout: float = DEFAULT_HTTP_TIMEOUT):
        self.client = httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self.headers = {
            "Content-Type": "application/json",
        }

    def _auth_headers(self) -> dict[str, str]:
        return {}

    async def _request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        logger.debug(f"Making {method} request to {url}")
        start_time = time.time()

        merged_headers = dict(self.headers)
        merged_headers.update(self._auth_headers())
        if headers:
            merged_headers.update(headers)
        resp = await self.client.request(method, url, headers=merged_headers, **kwargs)

        elapsed = time.time() - start_time
        if resp.status_code >= 400:
            logger.warning(
                f"HTTP {resp.status_code} response for {method} {url} after {elapsed:.2f}s"
            )
        else:
            logger.debug(
                f"HTTP {resp.status_code} response for {method} {url} after {elapsed:.2f}s"
            )

        resp.raise_for_status()
        return resp

    async def close(self) -> None:
        """Close open connections; the client stays usable for a later event loop."""
        client, self.client = self.client, httpx.AsyncClient(timeout=self.client.timeout)
        await client.aclose()
