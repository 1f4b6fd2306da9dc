# File: unveil_seo/embeddings/generator.py
"""
Генерация эмбеддингов страниц.

Текст страницы собирается из title, H1 и meta description с весами
(title дважды, H1 дважды, если отличается от title, meta один раз) и
отправляется в OpenAI embeddings API. :class:`EmbeddingBatcher` обходит
страницы без эмбеддинга курсором по возрастанию id, помечает страницы без
текста сентинелом ``"[]"`` и обрабатывает остальные кусками по
``max_concurrent`` параллельных запросов.
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Mapping, Optional, Sequence

import openai
from openai import AsyncOpenAI

from unveil_seo.config import EmbeddingSettings
from unveil_seo.embeddings.encoding import UNEMBEDDABLE_SENTINEL, embedding_to_string
from unveil_seo.errors import RateLimitedError, UnveilError, UpstreamError
from unveil_seo.logger import logger
from unveil_seo.store.base import PageStore

__all__: Sequence[str] = ("build_embedding_text", "EmbeddingClient", "EmbeddingBatcher")

_OK = "ok"
_RETRY = "retry"
_FAILED = "failed"


def build_embedding_text(
    title: Optional[str],
    h1: Optional[str],
    meta_description: Optional[str],
) -> str:
    """Weighted input text; empty string when the page has nothing to embed."""
    title = (title or "").strip()
    h1 = (h1 or "").strip()
    meta = (meta_description or "").strip()
    parts: List[str] = []
    if title:
        parts.extend([title, title])
    if h1 and h1 != title:
        parts.extend([h1, h1])
    if meta:
        parts.append(meta)
    return " ".join(parts)


class EmbeddingClient:
    """Thin wrapper over ``AsyncOpenAI().embeddings.create``."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "text-embedding-3-small",
        dimensions: int = 1536,
        timeout: float = 30.0,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.model = model
        self.dimensions = dimensions
        # retries are handled by the batcher, not the SDK
        self._client = client or AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    async def embed(self, text: str) -> List[float]:
        text = text.strip()
        if not text:
            raise ValueError("No content available to generate embedding")
        try:
            response = await self._client.embeddings.create(model=self.model, input=text)
        except openai.RateLimitError as exc:
            raise RateLimitedError(str(exc), service="openai", status_code=429) from exc
        except openai.APIStatusError as exc:
            raise UpstreamError(str(exc), service="openai", status_code=exc.status_code) from exc
        except openai.APIError as exc:
            raise UpstreamError(str(exc), service="openai") from exc

        vector = list(response.data[0].embedding)
        if len(vector) != self.dimensions:
            raise UpstreamError(
                f"embedding has {len(vector)} dimensions, expected {self.dimensions}",
                service="openai",
            )
        return vector

    async def close(self) -> None:
        await self._client.close()


class EmbeddingBatcher:
    """
    Проход по всем страницам с ``embedding IS NULL``.

    Курсор (последний обработанный id) продвигается после каждой выборки,
    поэтому страницы, на которых запрос к API упал, пропускаются до
    следующего запуска, а цикл гарантированно завершается. Цикл
    заканчивается, когда выборка вернула ноль строк.
    """

    def __init__(self, store: PageStore, embedder: Any, settings: Optional[EmbeddingSettings] = None) -> None:
        self._store = store
        self._embedder = embedder
        self._settings = settings or EmbeddingSettings()

    async def _embed_page(self, page: Mapping[str, Any]) -> str:
        text = build_embedding_text(page.get("title"), page.get("h1"), page.get("meta_description"))
        try:
            vector = await self._embedder.embed(text)
            await self._store.set_embedding(page["id"], embedding_to_string(vector))
        except RateLimitedError:
            logger.info("Rate limit hit for page %s, will retry", page["id"])
            return _RETRY
        except (UnveilError, ValueError) as exc:
            logger.error("Failed to embed page %s: %s", page["id"], exc)
            return _FAILED
        return _OK

    async def _run_chunk(self, chunk: Sequence[Mapping[str, Any]]) -> Dict[str, int]:
        outcomes = await asyncio.gather(*(self._embed_page(page) for page in chunk))
        retry = [page for page, outcome in zip(chunk, outcomes) if outcome == _RETRY]
        counts = {"processed": outcomes.count(_OK), "failed": outcomes.count(_FAILED)}
        if retry:
            logger.info("%d rate-limited requests, waiting %.1fs", len(retry), self._settings.retry_delay)
            await asyncio.sleep(self._settings.retry_delay)
            retried = await asyncio.gather(*(self._embed_page(page) for page in retry))
            counts["processed"] += retried.count(_OK)
            # a second rate limit is counted as a failure; the page stays null
            counts["failed"] += len(retried) - retried.count(_OK)
        return counts

    async def run(self) -> Dict[str, int]:
        settings = self._settings
        totals = {"processed": 0, "failed": 0, "skipped": 0}
        cursor: Any = None
        batch_no = 0

        while True:
            pages = await self._store.pages_needing_embeddings(cursor, settings.batch_size)
            if not pages:
                break
            batch_no += 1
            cursor = pages[-1]["id"]

            empty = [
                p["id"] for p in pages
                if not build_embedding_text(p.get("title"), p.get("h1"), p.get("meta_description"))
            ]
            if empty:
                await self._store.mark_unembeddable(empty, UNEMBEDDABLE_SENTINEL)
                totals["skipped"] += len(empty)
                logger.debug("Batch %d: %d pages marked unembeddable", batch_no, len(empty))

            skip = set(empty)
            embeddable = [p for p in pages if p["id"] not in skip]
            chunks = [
                embeddable[i:i + settings.max_concurrent]
                for i in range(0, len(embeddable), settings.max_concurrent)
            ]
            for index, chunk in enumerate(chunks):
                counts = await self._run_chunk(chunk)
                totals["processed"] += counts["processed"]
                totals["failed"] += counts["failed"]
                if index < len(chunks) - 1:
                    await asyncio.sleep(settings.chunk_delay)

            logger.info(
                "Batch %d done: %d fetched, totals processed=%d failed=%d skipped=%d",
                batch_no, len(pages), totals["processed"], totals["failed"], totals["skipped"],
            )
            await asyncio.sleep(settings.batch_delay)

        logger.info(
            "Embedding generation finished: %d processed, %d failed, %d skipped",
            totals["processed"], totals["failed"], totals["skipped"],
        )
        return totals
