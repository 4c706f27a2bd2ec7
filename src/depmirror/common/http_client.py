"""Remote fetch layer for registry metadata, archives and prebuilt binaries.

Wraps one aiohttp session per run. Successful responses for non-archive
URLs are memoised in the run context, and concurrent requests for the same
cacheable URL share a single in-flight request.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Union

import aiohttp

from ..constants import Constants
from ..context import MirrorContext
from ..exceptions import FetchError
from .logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)


def is_cacheable_url(url: str) -> bool:
    """Archive URLs are fetched once per run anyway and are too large to keep."""
    return not url.lower().endswith(Constants.UNCACHED_SUFFIXES)


class RegistryClient:
    """Async HTTP client bound to a MirrorContext."""

    def __init__(
        self,
        context: MirrorContext,
        timeout: int = Constants.REQUEST_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize the client.

        Args:
            context: Run context holding the response cache.
            timeout: Per-request timeout in seconds.
            session: Optional pre-built session; the client will not close it.
        """
        self._context = context
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None
        self._inflight: Dict[str, "asyncio.Future[bytes]"] = {}

    async def start(self) -> None:
        """Start the HTTP session."""
        await self._ensure_session()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={"User-Agent": "depmirror/1.0"},
            )
            self._owns_session = True
        return self._session

    async def stop(self) -> None:
        """Stop the HTTP session."""
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def fetch(self, url: str, binary: bool = False) -> Union[str, bytes]:
        """GET url and return its body.

        Args:
            url: Absolute URL.
            binary: Return raw bytes instead of UTF-8 text.

        Raises:
            FetchError: On transport failure, timeout or a non-200 status.
        """
        body = await self._fetch_bytes(url)
        if binary:
            return body
        return body.decode("utf-8")

    async def fetch_json(self, url: str) -> Any:
        """GET url and parse the body as JSON."""
        text = await self.fetch(url)
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise FetchError(url, error=exc) from exc

    async def _fetch_bytes(self, url: str) -> bytes:
        cached = self._context.cached_response(url)
        if cached is not None:
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP cache hit",
                    extra=extra_context(
                        event="cache_hit", component="http_client", action="GET", target=safe_url(url)
                    ),
                )
            return cached

        if not is_cacheable_url(url):
            return await self._request(url)

        pending = self._inflight.get(url)
        if pending is None:
            pending = asyncio.ensure_future(self._request(url))
            pending.add_done_callback(lambda task: self._settle(url, task))
            self._inflight[url] = pending
        # Shielded so one cancelled waiter does not cancel the shared request
        return await asyncio.shield(pending)

    def _settle(self, url: str, task: "asyncio.Future[bytes]") -> None:
        self._inflight.pop(url, None)
        if task.cancelled() or task.exception() is not None:
            return
        self._context.response_cache[url] = task.result()

    async def _request(self, url: str) -> bytes:
        session = await self._ensure_session()
        safe_target = safe_url(url)
        with Timer() as t:
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP request",
                    extra=extra_context(
                        event="http_request", component="http_client", action="GET", target=safe_target
                    ),
                )
            try:
                async with session.get(url, timeout=self._timeout) as response:
                    if response.status != 200:
                        raise FetchError(url, status=response.status)
                    body = await response.read()
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                logger.debug("GET %s failed: %r", safe_target, exc)
                raise FetchError(url, error=exc) from exc

        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response ok",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action="GET",
                    outcome="success",
                    status_code=200,
                    duration_ms=t.duration_ms(),
                    target=safe_target,
                ),
            )
        return body

    async def __aenter__(self) -> "RegistryClient":
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.stop()
