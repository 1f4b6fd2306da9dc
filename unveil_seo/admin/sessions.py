# File: unveil_seo/admin/sessions.py
"""
Администрирование сессий краулинга: список и карточка сессии со
статистикой, ручная разметка сырых страниц, применение блоков фильтров и
перенос прошедших проверку страниц в индекс (``pages``).
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from unveil_seo.config import FilterSettings
from unveil_seo.errors import InvalidRequestError, NotFoundError
from unveil_seo.filters.blocks import FilterBlock, apply_blocks
from unveil_seo.filters.content import filter_raw_pages
from unveil_seo.logger import logger
from unveil_seo.parser.markdown_parser import process_page
from unveil_seo.store.base import PageStore, Row
from unveil_seo.utils import isoformat

__all__: Sequence[str] = ("SESSION_STATUSES", "SESSION_UPDATE_FIELDS", "SessionAdmin", "session_stats")

SESSION_STATUSES = ("pending", "running", "completed", "failed", "needs_review", "promoted")
SESSION_UPDATE_FIELDS = ("status", "client", "domain", "review_progress")
MANUAL_EXCLUSION = "Manual exclusion"


def session_stats(raw_pages: Sequence[Mapping[str, Any]], included: int) -> Dict[str, int]:
    total = len(raw_pages)
    successful = sum(1 for p in raw_pages if p.get("status_code") == 200)
    return {
        "total_pages": total,
        "included_pages": included,
        "excluded_pages": total - included,
        "success_rate": round(successful / total * 100) if total else 0,
    }


def _raw_page_to_document(page: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "markdown": page.get("content") or "",
        "metadata": {
            "sourceURL": page.get("url"),
            "title": page.get("title"),
            "description": page.get("meta_description"),
        },
    }


class SessionAdmin:
    def __init__(self, store: PageStore, filters: Optional[FilterSettings] = None) -> None:
        self._store = store
        self._filters = filters or FilterSettings()

    @property
    def url_options(self) -> Dict[str, Any]:
        return {
            "site_patterns": self._filters.site_specific_patterns,
            "max_depth": self._filters.max_path_depth,
            "numeric_id_length": self._filters.long_numeric_id,
        }

    async def _with_stats(self, session: Row) -> Row:
        raw = await self._store.list_raw_pages(session["id"])
        included = await self._store.count_session_pages(session["id"])
        return {**session, **session_stats(raw, included)}

    async def _require(self, session_id: str) -> Row:
        session = await self._store.get_session(session_id)
        if session is None:
            raise NotFoundError("Crawl session not found")
        return session

    async def list_sessions(self, *, status: Optional[str] = None, client: Optional[str] = None) -> List[Row]:
        if status == "all":
            status = None
        sessions = await self._store.list_sessions(status=status, client=client)
        return [await self._with_stats(s) for s in sessions]

    async def get_session(self, session_id: str) -> Row:
        return await self._with_stats(await self._require(session_id))

    async def create_session(self, domain: Optional[str], client: Optional[str] = None) -> Row:
        if not domain or not str(domain).strip():
            raise InvalidRequestError("Domain is required")
        now = isoformat()
        session = await self._store.insert_session(
            {"domain": str(domain).strip(), "client": client, "status": "pending",
             "review_progress": 0, "created_at": now, "updated_at": now}
        )
        logger.info("Crawl session %s created for %s", session["id"], session["domain"])
        return session

    async def update_session(self, session_id: str, body: Mapping[str, Any]) -> Row:
        updates = {k: body[k] for k in SESSION_UPDATE_FIELDS if k in body}
        if not updates:
            raise InvalidRequestError("No valid fields to update")
        if "status" in updates and updates["status"] not in SESSION_STATUSES:
            raise InvalidRequestError(f"Invalid status: {updates['status']}")
        updates["updated_at"] = isoformat()
        session = await self._store.update_session(session_id, updates)
        if session is None:
            raise NotFoundError("Crawl session not found")
        return session

    async def delete_session(self, session_id: str) -> None:
        if not await self._store.delete_session(session_id):
            raise NotFoundError("Crawl session not found")
        logger.info("Crawl session %s deleted", session_id)

    # -- raw pages -------------------------------------------------------------

    async def raw_pages(self, session_id: str) -> List[Row]:
        await self._require(session_id)
        return await self._store.list_raw_pages(session_id)

    async def update_exclusions(self, updates: Iterable[Mapping[str, Any]]) -> int:
        """Bulk set ``excluded`` on raw pages; returns the number updated."""
        count = 0
        for update in updates:
            if "id" not in update or not isinstance(update.get("excluded"), bool):
                raise InvalidRequestError("Each page update needs an id and a boolean excluded flag")
            excluded = update["excluded"]
            changes = {
                "excluded": excluded,
                "filtered_reason": (update.get("reason") or MANUAL_EXCLUSION) if excluded else None,
            }
            if await self._store.update_raw_page(update["id"], changes) is None:
                raise NotFoundError(f"Raw page {update['id']} not found")
            count += 1
        return count

    async def apply_filters(self, session_id: str, blocks: Sequence[FilterBlock]) -> Dict[str, Any]:
        """Exclude the raw pages matched by any block; returns counts per block."""
        pages = await self.raw_pages(session_id)
        matched = apply_blocks(pages, blocks)
        per_block: Dict[str, int] = {}
        for page_id, block_name in matched.items():
            await self._store.update_raw_page(
                page_id, {"excluded": True, "filtered_reason": f"Filter: {block_name}"}
            )
            per_block[block_name] = per_block.get(block_name, 0) + 1
        logger.info("Session %s: %d of %d raw pages excluded by filters", session_id, len(matched), len(pages))
        return {"total": len(pages), "excluded": len(matched), "blocks": per_block}

    async def promote(self, session_id: str) -> Dict[str, Any]:
        """Copy non-excluded, valid raw pages into the index; embeddings start null."""
        pages = await self.raw_pages(session_id)
        kept, stats = filter_raw_pages(pages, **self.url_options)
        promoted = 0
        for raw in kept:
            try:
                page = process_page(_raw_page_to_document(raw))
            except ValueError as exc:
                logger.warning("Raw page %s not promoted: %s", raw.get("id"), exc)
                continue
            if raw.get("h1"):
                page.h1 = raw["h1"]
            await self._store.upsert_page(page.to_row(session_id=session_id))
            promoted += 1
        await self._store.update_session(
            session_id, {"status": "promoted", "review_progress": 100, "updated_at": isoformat()}
        )
        logger.info("Session %s: %d pages promoted to the index", session_id, promoted)
        return {"promoted": promoted, "stats": stats.to_dict()}
