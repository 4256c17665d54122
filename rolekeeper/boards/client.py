# boards/client.py

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from rolekeeper.boards.ratelimit import RateLimiter
from rolekeeper.errors import TransportError, UpstreamFormatError

log = logging.getLogger(__name__)

USER_AGENT = "rolekeeper/1.0"


class BoardClient:
    """Async HTTP client for one external board, gated by a shared rate limiter.

    Failures are never retried here: a transport or format error aborts the
    operation in progress and the caller decides whether to run it again.
    """

    def __init__(self, base_url: str, limiter: RateLimiter, timeout: float = 30):
        self.base_url = base_url.rstrip("/")
        self.limiter = limiter
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def close(self):
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _request(self, url: str, method: str = "GET", data: Optional[Dict[str, Any]] = None) -> Any:
        """
        Make one rate-limited HTTP request and decode its JSON body.

        Args:
            url: The full URL to request
            method: "GET" or "POST"
            data: Form fields for a POST request

        Returns:
            Decoded JSON response

        Raises:
            TransportError: Network failure or non-2xx status
            UpstreamFormatError: Body is not valid JSON
        """
        await self.limiter.acquire()
        session = await self._get_session()
        log.debug("%s %s", method, url)

        try:
            if method == "POST":
                ctx = session.post(url, data=data)
            else:
                ctx = session.get(url)

            async with ctx as resp:
                resp.raise_for_status()
                try:
                    return await resp.json(content_type=None)
                except ValueError as e:
                    raise UpstreamFormatError(url, f"invalid JSON ({e})") from e

        except aiohttp.ClientResponseError as e:
            raise TransportError(url, f"HTTP {e.status}: {e.message}", status=e.status) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(url, str(e) or type(e).__name__) from e
