# unveil_seo/crawler/fetcher.py
"""
Fetcher module: JSON-over-HTTP client with retry/backoff and timeout.

Shared by the crawl API client and the datastore client. One
:class:`aiohttp.ClientSession` is created lazily and reused until
:meth:`JsonHttpClient.close`.
"""
from __future__ import annotations

import asyncio
import json
import random
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

from aiohttp import ClientError, ClientSession, ClientTimeout

from unveil_seo.errors import RateLimitedError, UpstreamError
from unveil_seo.logger import logger

__all__: Sequence[str] = ("HttpResponse", "JsonHttpClient")


@dataclass(slots=True)
class HttpResponse:
    status: int
    headers: Mapping[str, str]
    data: Any


class _RetryableStatus(Exception):
    def __init__(self, status: int, body: Any) -> None:
        super().__init__(f"retryable status {status}")
        self.status = status
        self.body = body


class JsonHttpClient:
    """Handles JSON requests with retries/backoff on 429, 5xx and transport errors."""

    _RETRY_STATUS: Sequence[int] = tuple(range(500, 600)) + (429,)

    def __init__(
        self,
        base_url: str,
        *,
        service: str,
        headers: Optional[Mapping[str, str]] = None,
        timeout: float = 30.0,
        retry_times: int = 3,
        backoff_base: float = 1.0,
        session: Optional[ClientSession] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.service = service
        self.headers = dict(headers or {})
        self.timeout = timeout
        self.retry_times = retry_times
        self.backoff_base = backoff_base
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> JsonHttpClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _get_session(self) -> ClientSession:
        if self._session is None or self._session.closed:
            self._session = ClientSession(
                timeout=ClientTimeout(total=self.timeout),
                headers=self.headers,
                raise_for_status=False,
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    @staticmethod
    async def _read_body(resp) -> Any:
        text = await resp.text()
        if not text:
            return None
        ctype = resp.headers.get("Content-Type", "").lower()
        if "json" in ctype:
            try:
                return json.loads(text)
            except json.JSONDecodeError:
                return text
        return text

    def _backoff(self, attempts: int) -> float:
        if self.backoff_base <= 0:
            return 0.0
        return min(60.0, self.backoff_base * (2 ** attempts) + random.random() * self.backoff_base)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json_body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> HttpResponse:
        """Send a request and return the decoded response.

        Non-2xx responses that survive the retries raise :class:`UpstreamError`
        (or :class:`RateLimitedError` for a final 429).
        """
        url = self._url(path)
        session = self._get_session()
        attempts = 0
        while True:
            try:
                async with session.request(
                    method,
                    url,
                    params=params,
                    json=json_body,
                    headers=headers,
                ) as resp:
                    body = await self._read_body(resp)
                    if resp.status in self._RETRY_STATUS:
                        raise _RetryableStatus(resp.status, body)
                    if resp.status >= 400:
                        raise UpstreamError(
                            f"{self.service} {method} {url} -> HTTP {resp.status}: {body}",
                            service=self.service,
                            status_code=resp.status,
                            details=body,
                        )
                    return HttpResponse(resp.status, dict(resp.headers), body)
            except _RetryableStatus as exc:
                attempts += 1
                if attempts > self.retry_times:
                    error_cls = RateLimitedError if exc.status == 429 else UpstreamError
                    raise error_cls(
                        f"{self.service} {method} {url} -> HTTP {exc.status}: {exc.body}",
                        service=self.service,
                        status_code=exc.status,
                        details=exc.body,
                    ) from None
                last_error = f"HTTP {exc.status}"
            except (ClientError, asyncio.TimeoutError) as exc:
                attempts += 1
                if attempts > self.retry_times:
                    raise UpstreamError(
                        f"{self.service} {method} {url} failed: {exc!r}", service=self.service
                    ) from exc
                last_error = repr(exc)
            backoff = self._backoff(attempts)
            logger.debug(
                "Retry %d/%d for %s %s after %.2f s (%s)",
                attempts, self.retry_times, method, url, backoff, last_error,
            )
            await asyncio.sleep(backoff)
