# File: tests/conftest.py
from __future__ import annotations

import hashlib
from typing import Any, Dict, List, Optional, Sequence

import pytest

from unveil_seo.config import AppConfig, config_overrides
from unveil_seo.crawler.firecrawl import CrawlStatusReport
from unveil_seo.errors import RateLimitedError, UnveilError
from unveil_seo.store.memory import MemoryStore


class FakeEmbedder:
    """
    Deterministic stand-in for the embeddings API.

    Known texts map to fixed vectors; anything else gets a vector derived
    from its hash. ``rate_limit_once`` makes the first call for a text
    raise RateLimitedError.
    """

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None, dimensions: int = 3) -> None:
        self.vectors = dict(vectors or {})
        self.dimensions = dimensions
        self.calls: List[str] = []
        self.rate_limit_once: set[str] = set()
        self.always_rate_limited: set[str] = set()
        self.failing: set[str] = set()
        self.closed = False

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if not text.strip():
            raise ValueError("No content available to generate embedding")
        if text in self.always_rate_limited:
            raise RateLimitedError("rate limited", service="openai", status_code=429)
        if text in self.rate_limit_once:
            self.rate_limit_once.discard(text)
            raise RateLimitedError("rate limited", service="openai", status_code=429)
        if text in self.failing:
            raise UnveilError("embedding failed")
        if text in self.vectors:
            return list(self.vectors[text])
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return [digest[i] / 255 + 0.01 for i in range(self.dimensions)]

    async def close(self) -> None:
        self.closed = True


class FakeCrawler:
    """Scripted crawl API: returns the queued reports in order, repeating the last one."""

    def __init__(self, reports: Sequence[Any] = (), *, start_error: Optional[Exception] = None) -> None:
        self.reports = list(reports)
        self.start_error = start_error
        self.started: List[Dict[str, Any]] = []
        self.polls = 0
        self.closed = False

    async def start_crawl(self, url, *, limit, exclude_paths=None, wait_for=1000) -> str:
        if self.start_error is not None:
            raise self.start_error
        self.started.append({"url": url, "limit": limit, "exclude_paths": list(exclude_paths or [])})
        return "remote-1"

    async def check_status(self, job_id: str) -> CrawlStatusReport:
        self.polls += 1
        item = self.reports.pop(0) if len(self.reports) > 1 else self.reports[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True


def make_document(url: str, title: str = "", description: str = "", markdown: str = "", status: int = 200):
    """One crawl document as returned by the crawl API."""
    return {
        "markdown": markdown or f"# {title or url}\n\nIntro text for {url}.",
        "metadata": {"sourceURL": url, "title": title, "description": description, "statusCode": status},
    }


@pytest.fixture()
def fast_config() -> AppConfig:
    """
    Default configuration with every pause set to zero and the in-memory store.
    """
    return config_overrides(
        AppConfig(),
        {
            "crawl": {"poll_interval": 0, "page_delay": 0, "max_poll_attempts": 10},
            "embedding": {"chunk_delay": 0, "batch_delay": 0, "retry_delay": 0, "dimensions": 3},
            "matching": {"candidate_delay": 0},
            "store": {"backend": "memory"},
        },
    )


@pytest.fixture()
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture()
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture()
def completed_report() -> CrawlStatusReport:
    return CrawlStatusReport(
        status="completed",
        documents=[
            make_document("https://example.com/potager", "Potager bio", "Cultiver un potager bio"),
            make_document("https://example.com/semis-tomates", "Semis de tomates", "Réussir ses semis"),
            make_document("https://example.com/admin/login", "Login"),
        ],
    )
