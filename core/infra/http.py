"""
http.py – Async HTTP client built on *aiohttp* used by the Stacks API event
          source and the webhook sink. Retries 429 / 5xx / network errors
          with jittered exponential back-off and honours *Retry-After*.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Dict, Mapping, Optional

import aiohttp

logger = logging.getLogger(__name__)

RETRY_STATUSES = (429, 500, 502, 503, 504)


class HttpClient:
    """Thin wrapper over *aiohttp.ClientSession* with retries and default headers."""

    def __init__(
        self,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
        max_retries: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        default_headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._external_session = session
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._own_session: Optional[aiohttp.ClientSession] = None
        self._default_headers: Dict[str, str] = dict(default_headers or {})

    # ---------------------------------------------- #
    # Async context-manager
    async def __aenter__(self) -> "HttpClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ---------------------------------------------- #
    # Session management
    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._external_session:
            return self._external_session
        if self._own_session is None or self._own_session.closed:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            self._own_session = aiohttp.ClientSession(timeout=timeout)
        return self._own_session

    async def close(self) -> None:
        if self._own_session and not self._own_session.closed:
            await self._own_session.close()
            self._own_session = None

    # ---------------------------------------------- #
    # Back-off
    @staticmethod
    def parse_retry_after(header_val: Optional[str]) -> Optional[float]:
        """Seconds from a numeric Retry-After header; HTTP-dates are ignored."""
        if not header_val:
            return None
        header_val = header_val.strip()
        try:
            return max(0.0, float(header_val))
        except ValueError:
            return None

    def backoff_seconds(self, attempt: int, retry_after: Optional[float] = None) -> float:
        if retry_after is not None:
            return min(retry_after, self._max_delay)
        exponential = min(self._base_delay * 2 ** (attempt - 1), self._max_delay)
        return exponential + random.uniform(0, self._base_delay)

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        """Perform a request with retries and return the decoded JSON body (or None)."""
        session = await self._ensure_session()
        kwargs["headers"] = {**self._default_headers, **(kwargs.pop("headers", None) or {})}

        for attempt in range(1, self._max_retries + 1):
            try:
                async with session.request(method, url, **kwargs) as resp:
                    if resp.status in RETRY_STATUSES:
                        raise aiohttp.ClientResponseError(
                            resp.request_info,
                            resp.history,
                            status=resp.status,
                            message=f"retryable status {resp.status}",
                            headers=resp.headers,
                        )
                    resp.raise_for_status()
                    body = await resp.read()
                    if not body.strip():
                        return None
                    return await resp.json(content_type=None)
            except aiohttp.ClientResponseError as e:
                if e.status not in RETRY_STATUSES or attempt == self._max_retries:
                    logger.error("HTTP %s %s failed after %d attempts: %s", method, url, attempt, e)
                    raise
                headers = e.headers or {}
                delay = self.backoff_seconds(attempt, self.parse_retry_after(headers.get("Retry-After")))
            except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
                if attempt == self._max_retries:
                    logger.error("HTTP %s %s failed after %d attempts: %s", method, url, attempt, e)
                    raise
                delay = self.backoff_seconds(attempt)

            logger.warning(
                "HTTP %s %s failed (attempt %d/%d – will retry in %.1fs)",
                method,
                url,
                attempt,
                self._max_retries,
                delay,
            )
            await asyncio.sleep(delay)

        raise RuntimeError("Unreachable retry loop")

    # ---------------------------------------------- #
    # Public helpers
    async def get_json(self, url: str, **kwargs) -> Any:
        return await self._request("GET", url, **kwargs)

    async def post_json(self, url: str, data: Any, **kwargs) -> Any:
        kwargs["json"] = data
        return await self._request("POST", url, **kwargs)
