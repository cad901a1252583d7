"""Shared async HTTP helpers used by recipe sources and the download pipeline.

Encapsulates session lifecycle, per-attempt deadlines and bounded retries so
callers never duplicate try/except blocks. Only transport failures (timeouts,
connection errors, HTTP 5xx/429) are retried; any other status is handed back
to the caller to interpret.
"""
from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional, Tuple

import aiohttp

from constants import Constants
from common.errors import TransportError
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


class TransientStatusError(Exception):
    """Raised internally when a response status should be retried."""

    def __init__(self, status: int):
        super().__init__(f"HTTP {status}")
        self.status = status


TRANSIENT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, TransientStatusError)


class HttpClient:
    """Thin aiohttp wrapper with timeouts, retries and DEBUG traces.

    Usable as an async context manager; the session is created lazily on the
    first request otherwise.
    """

    def __init__(
        self,
        timeout: float = Constants.REQUEST_TIMEOUT,
        retries: int = Constants.HTTP_RETRY_MAX,
        backoff: float = Constants.HTTP_RETRY_BASE_DELAY_SEC,
        headers: Optional[Dict[str, str]] = None,
    ):
        """Initialize the client.

        Args:
            timeout: Deadline in seconds for a single attempt.
            retries: Number of attempts for transport failures (at least one).
            backoff: Base delay in seconds; attempt ``n`` waits ``backoff * 2**n``.
            headers: Default headers sent with every request.
        """
        self.timeout = timeout
        self.retries = max(1, int(retries))
        self.backoff = backoff
        self._headers = {"User-Agent": Constants.USER_AGENT}
        if headers:
            self._headers.update(headers)
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        """Start the HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(
                    total=None,
                    sock_connect=self.timeout,
                    sock_read=self.timeout,
                ),
                headers=self._headers,
            )

    async def stop(self) -> None:
        """Stop the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "HttpClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    def backoff_delay(self, attempt: int) -> float:
        """Return the pause before retrying after failed ``attempt`` (0-based)."""
        return self.backoff * (2 ** attempt)

    async def _session_or_start(self) -> aiohttp.ClientSession:
        if self._session is None:
            await self.start()
        assert self._session is not None
        return self._session

    async def _get_once(
        self, url: str, headers: Optional[Dict[str, str]]
    ) -> Tuple[int, Dict[str, str], str]:
        session = await self._session_or_start()
        async with session.get(url, headers=headers) as response:
            if response.status in RETRYABLE_STATUS:
                raise TransientStatusError(response.status)
            text = await response.text()
            lowered = {k.lower(): v for k, v in response.headers.items()}
            return response.status, lowered, text

    async def robust_get(
        self,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
    ) -> Tuple[int, Dict[str, str], str]:
        """Perform GET with a deadline per attempt and bounded retries.

        Returns:
            Tuple of (status_code, lower-cased headers, body text).

        Raises:
            TransportError: When every attempt failed with a transport error.
        """
        safe_target = safe_url(url)
        last_exception = ""
        for attempt in range(self.retries):
            with Timer() as t:
                try:
                    if is_debug_enabled(logger):
                        logger.debug(
                            "HTTP request",
                            extra=extra_context(
                                event="http_request",
                                component="http_client",
                                action="GET",
                                target=safe_target,
                                attempt=attempt + 1,
                            ),
                        )
                    result = await asyncio.wait_for(
                        self._get_once(url, headers), timeout=self.timeout
                    )
                    if is_debug_enabled(logger):
                        logger.debug(
                            "HTTP response ok",
                            extra=extra_context(
                                event="http_response",
                                component="http_client",
                                action="GET",
                                outcome="success",
                                status_code=result[0],
                                duration_ms=t.duration_ms(),
                                target=safe_target,
                            ),
                        )
                    return result
                except asyncio.TimeoutError:
                    last_exception = f"timed out after {self.timeout} seconds"
                except (aiohttp.ClientError, TransientStatusError) as exc:
                    last_exception = str(exc) or type(exc).__name__

            logger.debug(
                "HTTP attempt failed",
                extra=extra_context(
                    event="http_exception",
                    component="http_client",
                    action="GET",
                    outcome=last_exception,
                    attempt=attempt + 1,
                    target=safe_target,
                ),
            )
            if attempt + 1 < self.retries:
                await asyncio.sleep(self.backoff_delay(attempt))

        logger.warning("GET %s failed after %d attempts: %s", safe_target, self.retries, last_exception)
        raise TransportError(url, last_exception, self.retries)

    async def get_json(
        self,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
    ) -> Tuple[int, Dict[str, str], Optional[Any]]:
        """Perform GET and parse a JSON body.

        Returns:
            Tuple of (status_code, headers, parsed_json_or_none). The parsed
            value is None for non-200 responses or undecodable bodies.
        """
        status_code, response_headers, text = await self.robust_get(url, headers=headers)
        if status_code == 200 and text:
            try:
                return status_code, response_headers, json.loads(text)
            except json.JSONDecodeError:
                if is_debug_enabled(logger):
                    logger.debug(
                        "JSON decode error",
                        extra=extra_context(
                            event="parse",
                            component="http_client",
                            action="get_json",
                            outcome="json_decode_error",
                            status_code=status_code,
                            target=safe_url(url),
                        ),
                    )
        return status_code, response_headers, None

    async def iter_download(
        self,
        url: str,
        dest: Path,
        *,
        chunk_size: int = Constants.DOWNLOAD_CHUNK_SIZE,
    ) -> AsyncIterator[Tuple[int, Optional[int]]]:
        """Stream ``url`` into ``dest`` in a single attempt.

        Yields ``(bytes_written, content_length)`` after each chunk. Transport
        failures propagate as one of ``TRANSIENT_ERRORS`` so the caller can
        decide whether to retry; other HTTP failures raise ``TransportError``.
        """
        session = await self._session_or_start()
        response = await asyncio.wait_for(session.get(url), timeout=self.timeout)
        try:
            if response.status in RETRYABLE_STATUS:
                raise TransientStatusError(response.status)
            if response.status != 200:
                raise TransportError(url, f"HTTP {response.status}")
            total = response.content_length
            written = 0
            handle = await asyncio.to_thread(open, dest, "wb")
            try:
                async for chunk in response.content.iter_chunked(chunk_size):
                    await asyncio.to_thread(handle.write, chunk)
                    written += len(chunk)
                    yield written, total
            finally:
                await asyncio.to_thread(handle.close)
        finally:
            response.release()
