# File: unveil_seo/embeddings/diagnostics.py
"""Index statistics, embedding health checks and bulk reset."""
from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Sequence

from unveil_seo.embeddings.encoding import UNEMBEDDABLE_SENTINEL, embedding_from_string, is_sentinel
from unveil_seo.errors import UnveilError
from unveil_seo.logger import logger
from unveil_seo.store.base import PageStore, Row

__all__: Sequence[str] = ("index_stats", "diagnose_embeddings", "reset_embeddings")

SLOW_SEARCH_MS = 5000
SHORT_CONTENT_CHARS = 10
RESET_BATCH_SIZE = 1000


async def index_stats(store: PageStore) -> Dict[str, Any]:
    total = await store.count_pages()
    embedded = await store.count_embedded_pages()
    jobs = await store.recent_jobs(1)
    return {
        "totalPages": total,
        "pagesWithEmbeddings": embedded,
        "pagesWithoutEmbeddings": total - embedded,
        "embeddingProgress": round(embedded / total * 100) if total else 0,
        "lastSync": jobs[0].get("completed_at") if jobs else None,
    }


def _has(value: Optional[str]) -> bool:
    return bool(value and value.strip())


def _combined(page: Row) -> str:
    return " ".join(
        v for v in (page.get("title"), page.get("h1"), page.get("meta_description")) if v
    ).strip()


async def _pending_pages(store: PageStore, limit: int) -> List[Row]:
    rows: List[Row] = []
    cursor: Any = None
    while len(rows) < limit:
        batch = await store.pages_needing_embeddings(cursor, min(200, limit - len(rows)))
        if not batch:
            break
        rows.extend(batch)
        cursor = batch[-1]["id"]
    return rows


async def _search_health(store: PageStore, dimensions: int) -> Dict[str, Any]:
    started = time.perf_counter()
    try:
        rows = await store.similar_pages([0.1] * dimensions, 0.5, 1)
    except UnveilError as exc:
        logger.warning("Similarity search health check failed: %s", exc)
        return {"success": False, "error": exc.message}
    duration = round((time.perf_counter() - started) * 1000)
    return {"success": True, "duration": duration, "resultCount": len(rows)}


async def diagnose_embeddings(
    store: PageStore,
    *,
    dimensions: int = 1536,
    scan_limit: int = 1000,
    sample_size: int = 5,
) -> Dict[str, Any]:
    """
    Сводка по состоянию эмбеддингов:

    * страницы без эмбеддинга: сколько из них вообще можно векторизовать и
      какие поля у них заполнены;
    * страницы, помеченные сентинелом как невекторизуемые;
    * выборка сохранённых векторов: не повреждены ли они и совпадает ли
      размерность;
    * здоровье и задержка поиска по близости.
    """
    pending = await _pending_pages(store, scan_limit)
    embeddable = [p for p in pending if _combined(p)]
    unembeddable = [p for p in pending if not _combined(p)]
    lengths = [len(_combined(p)) for p in embeddable]

    def fields(p: Row) -> List[bool]:
        return [_has(p.get("title")), _has(p.get("h1")), _has(p.get("meta_description"))]

    stats = {
        "total": len(pending),
        "embeddable": len(embeddable),
        "unembeddable": len(unembeddable),
        "onlyTitle": sum(1 for p in pending if fields(p) == [True, False, False]),
        "onlyH1": sum(1 for p in pending if fields(p) == [False, True, False]),
        "onlyMeta": sum(1 for p in pending if fields(p) == [False, False, True]),
        "multipleFields": sum(1 for p in pending if sum(fields(p)) > 1),
        "avgLength": round(sum(lengths) / len(lengths)) if lengths else 0,
        "minLength": min(lengths) if lengths else 0,
        "maxLength": max(lengths) if lengths else 0,
    }

    short = [p for p in embeddable if len(_combined(p)) < SHORT_CONTENT_CHARS]
    marked = await store.pages_with_embedding(UNEMBEDDABLE_SENTINEL, 10)
    examples = {
        "unembeddable": [{"id": p["id"]} for p in unembeddable[:10]],
        "shortContent": [
            {"id": p["id"], "combinedLength": len(_combined(p)), "content": _combined(p)[:100]}
            for p in short[:5]
        ],
        "markedUnembeddable": [{"id": p["id"], "url": p.get("url")} for p in marked],
    }

    issues: List[str] = []
    for page in await store.sample_embeddings(sample_size):
        stored = page.get("embedding")
        if is_sentinel(stored):
            continue
        try:
            vector = embedding_from_string(stored)
        except ValueError:
            issues.append(f"Page {page['id']} has unparseable embedding")
            continue
        if not vector:
            issues.append(f"Page {page['id']} has invalid embedding format")
        elif len(vector) != dimensions:
            issues.append(f"Page {page['id']} has {len(vector)} dimensions, expected {dimensions}")

    performance = await _search_health(store, dimensions)
    if not performance["success"]:
        issues.append(f"Similarity search failing: {performance['error']}")
    elif performance["duration"] > SLOW_SEARCH_MS:
        issues.append(f"Similarity search is slow ({performance['duration']}ms), consider adding a vector index")

    recommendations = []
    if unembeddable:
        recommendations.append(f"{len(unembeddable)} pages have no content and should be marked as unembeddable")
    if embeddable:
        recommendations.append(f"{len(embeddable)} pages can be processed")
    if short:
        recommendations.append(f"{len(short)} pages have very short content (<{SHORT_CONTENT_CHARS} chars)")

    logger.info(
        "Embedding diagnosis: %d pending (%d embeddable), %d issues",
        stats["total"], stats["embeddable"], len(issues),
    )
    return {
        "message": f"Diagnosed {stats['total']} pages without embeddings",
        "stats": stats,
        "examples": examples,
        "compatibilityIssues": issues,
        "performanceCheck": performance,
        "recommendations": recommendations,
    }


async def reset_embeddings(store: PageStore, *, batch_size: int = RESET_BATCH_SIZE) -> int:
    """Null out every stored embedding (sentinels included); returns the count."""
    total = 0
    while True:
        ids = await store.embedded_page_ids(batch_size)
        if not ids:
            break
        await store.clear_embeddings(ids)
        total += len(ids)
    logger.info("Reset %d embeddings", total)
    return total
