# File: unveil_seo/crawler/firecrawl.py
"""Async client for the Firecrawl v1 crawl API.

Only the two calls the ingestion pipeline needs:

* ``POST /v1/crawl`` - submit a site, returns the remote job id;
* ``GET /v1/crawl/{id}`` - job status plus the documents scraped so far.
  Completed results may be paginated through a ``next`` URL, which
  :meth:`FirecrawlClient.check_status` follows.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from unveil_seo.crawler.fetcher import JsonHttpClient
from unveil_seo.errors import UpstreamError
from unveil_seo.logger import logger

__all__: Sequence[str] = ("CrawlStatusReport", "FirecrawlClient", "SCRAPE_OPTIONS")

SCRAPE_OPTIONS: Dict[str, Any] = {
    "formats": ["markdown"],
    "includeTags": ["title", "meta", "h1", "h2", "h3"],
    "excludeTags": ["nav", "footer", "aside", "script", "style"],
}

MAX_RESULT_PAGES = 50


@dataclass(slots=True)
class CrawlStatusReport:
    """Snapshot of a remote crawl job."""

    status: str
    documents: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
    completed: int = 0

    @property
    def page_count(self) -> int:
        """Pages discovered so far."""
        return max(self.completed, len(self.documents))

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    @property
    def is_failed(self) -> bool:
        return self.status in ("failed", "cancelled")

    @property
    def is_scraping(self) -> bool:
        return self.status == "scraping"


class FirecrawlClient:
    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.firecrawl.dev",
        timeout: float = 30.0,
        retry_times: int = 3,
        backoff_base: float = 1.0,
        user_agent: str = "UnveilSEO/1.0",
    ) -> None:
        self._http = JsonHttpClient(
            base_url,
            service="firecrawl",
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "User-Agent": user_agent,
            },
            timeout=timeout,
            retry_times=retry_times,
            backoff_base=backoff_base,
        )

    async def close(self) -> None:
        await self._http.close()

    @staticmethod
    def _check_payload(payload: Any, action: str) -> Dict[str, Any]:
        if not isinstance(payload, dict):
            raise UpstreamError(f"Firecrawl {action}: unexpected response {payload!r}", service="firecrawl")
        if payload.get("success") is False:
            raise UpstreamError(
                f"Firecrawl {action} failed: {payload.get('error') or 'unknown error'}",
                service="firecrawl",
                details=payload,
            )
        return payload

    async def start_crawl(
        self,
        url: str,
        *,
        limit: int,
        exclude_paths: Optional[Sequence[str]] = None,
        wait_for: int = 1000,
    ) -> str:
        """Submit *url* for crawling and return the remote job id."""
        body: Dict[str, Any] = {
            "url": url,
            "limit": limit,
            "scrapeOptions": {**SCRAPE_OPTIONS, "waitFor": wait_for},
        }
        if exclude_paths:
            body["excludePaths"] = list(exclude_paths)
        resp = await self._http.request("POST", "/v1/crawl", json_body=body)
        payload = self._check_payload(resp.data, "start crawl")
        job_id = payload.get("id")
        if not job_id:
            raise UpstreamError("Firecrawl start crawl: response has no job id", service="firecrawl", details=payload)
        logger.info("Firecrawl job %s submitted for %s (limit %d)", job_id, url, limit)
        return str(job_id)

    async def check_status(self, job_id: str) -> CrawlStatusReport:
        resp = await self._http.request("GET", f"/v1/crawl/{job_id}")
        payload = self._check_payload(resp.data, "status")
        report = CrawlStatusReport(
            status=str(payload.get("status") or "unknown"),
            documents=list(payload.get("data") or []),
            total=int(payload.get("total") or 0),
            completed=int(payload.get("completed") or 0),
        )
        if report.is_completed:
            next_url = payload.get("next")
            pages = 0
            while next_url and pages < MAX_RESULT_PAGES:
                page = self._check_payload((await self._http.request("GET", next_url)).data, "status page")
                report.documents.extend(page.get("data") or [])
                next_url = page.get("next")
                pages += 1
        return report
