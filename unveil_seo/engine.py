# File: unveil_seo/engine.py
"""unveil_seo.engine: Сборка сервисов (хранилище, клиенты API, конвейеры) для HTTP API и CLI."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from unveil_seo.admin.sessions import SessionAdmin
from unveil_seo.admin.users import UserAdmin
from unveil_seo.config import AppConfig, Secrets, load_config
from unveil_seo.crawler.firecrawl import FirecrawlClient
from unveil_seo.crawler.pipeline import CrawlPipeline
from unveil_seo.embeddings.generator import EmbeddingBatcher, EmbeddingClient
from unveil_seo.linking.matcher import SimilarityMatcher
from unveil_seo.logger import logger
from unveil_seo.store.base import PageStore
from unveil_seo.store.memory import MemoryStore
from unveil_seo.store.supabase import SupabaseStore

__all__ = ["Engine"]


class Engine:
    """Фасад для HTTP API, CLI и тестов.

    Клиенты внешних сервисов создаются лениво, при первом обращении, поэтому
    отсутствующий ключ API проявляется как ``NotConfiguredError`` только в
    том запросе, которому он действительно нужен.
    """

    @staticmethod
    def load_config(path: Optional[str]) -> AppConfig:
        """Загружает конфиг из YAML/JSON или использует значения по умолчанию."""
        return load_config(path)

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        *,
        secrets: Optional[Secrets] = None,
        store: Optional[PageStore] = None,
        crawler: Any = None,
        embedder: Any = None,
    ) -> None:
        self.config = config or AppConfig()
        self.secrets = secrets or Secrets()
        self._store = store
        self._crawler = crawler
        self._embedder = embedder
        self._pipeline: Optional[CrawlPipeline] = None

    # -- clients -------------------------------------------------------------

    @property
    def store(self) -> PageStore:
        if self._store is None:
            if self.config.store.backend == "memory":
                self._store = MemoryStore()
            else:
                self._store = SupabaseStore(
                    self.secrets.require(Secrets.SUPABASE_URL),
                    self.secrets.require(Secrets.SUPABASE_SERVICE_ROLE_KEY),
                    timeout=self.config.services.timeout,
                    retry_times=self.config.services.retry_times,
                )
            logger.debug("Store backend: %s", type(self._store).__name__)
        return self._store

    @property
    def crawler(self) -> Any:
        if self._crawler is None:
            services = self.config.services
            self._crawler = FirecrawlClient(
                self.secrets.require(Secrets.FIRECRAWL_API_KEY),
                base_url=str(services.firecrawl_url).rstrip("/"),
                timeout=services.timeout,
                retry_times=services.retry_times,
                user_agent=services.user_agent,
            )
        return self._crawler

    @property
    def embedder(self) -> Any:
        if self._embedder is None:
            self._embedder = EmbeddingClient(
                self.secrets.require(Secrets.OPENAI_API_KEY),
                model=self.config.embedding.model,
                dimensions=self.config.embedding.dimensions,
                timeout=self.config.services.timeout,
            )
        return self._embedder

    # -- services ------------------------------------------------------------

    @property
    def pipeline(self) -> CrawlPipeline:
        if self._pipeline is None:
            self._pipeline = CrawlPipeline(self.store, self.crawler, self.config.crawl, self.config.filters)
        return self._pipeline

    def matcher(self) -> SimilarityMatcher:
        return SimilarityMatcher(self.store, self.embedder, self.config.matching)

    def batcher(self) -> EmbeddingBatcher:
        return EmbeddingBatcher(self.store, self.embedder, self.config.embedding)

    def sessions(self) -> SessionAdmin:
        return SessionAdmin(self.store, self.config.filters)

    def users(self) -> UserAdmin:
        return UserAdmin(self.store)

    async def close(self) -> None:
        """Cancel background crawls and close every client that was opened."""
        if self._pipeline is not None:
            tasks = self._pipeline.tasks
            for task in tasks:
                task.cancel()
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
                logger.info("Cancelled %d running crawl(s)", len(tasks))
        for client in (self._crawler, self._embedder, self._store):
            close = getattr(client, "close", None)
            if close is not None:
                await close()
