# File: unveil_seo/store/memory.py
"""
Хранилище в памяти процесса с той же семантикой, что и хостинговая база:
upsert по URL, курсорная выборка по id, поиск по косинусной близости.

Используется для локальных запусков (``store.backend: memory``) и в тестах.
"""
from __future__ import annotations

import itertools
import uuid
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from unveil_seo.embeddings.encoding import embedding_from_string, is_sentinel
from unveil_seo.errors import ConflictError
from unveil_seo.store.base import EMBEDDING_INPUT_COLUMNS, PageStore, Row
from unveil_seo.utils import isoformat

__all__: Sequence[str] = ("MemoryStore",)


class MemoryStore(PageStore):
    def __init__(self) -> None:
        self.pages: Dict[int, Row] = {}
        self.jobs: Dict[str, Row] = {}
        self.sessions: Dict[str, Row] = {}
        self.raw_pages: Dict[int, Row] = {}
        self.profiles: Dict[str, Row] = {}
        self.auth_users: Dict[str, Row] = {}
        self._page_ids = itertools.count(1)
        self._raw_ids = itertools.count(1)

    # -- pages -------------------------------------------------------------

    def _page_by_url(self, url: str) -> Optional[Row]:
        return next((p for p in self.pages.values() if p["url"] == url), None)

    async def page_exists(self, url: str) -> bool:
        return self._page_by_url(url) is not None

    async def upsert_page(self, row: Mapping[str, Any]) -> None:
        existing = self._page_by_url(row["url"])
        if existing is not None:
            existing.update(row)
            return
        page_id = next(self._page_ids)
        self.pages[page_id] = {"id": page_id, "created_at": isoformat(), "embedding": None, **row}

    def add_page(self, **fields: Any) -> Row:
        """Insert a page directly and return it (fixtures, local seeding)."""
        page_id = next(self._page_ids)
        row = {"id": page_id, "created_at": isoformat(), "embedding": None, **fields}
        self.pages[page_id] = row
        return row

    async def count_pages(self) -> int:
        return len(self.pages)

    async def count_embedded_pages(self) -> int:
        return sum(1 for p in self.pages.values() if p.get("embedding") is not None)

    async def pages_needing_embeddings(self, after_id: Any, limit: int) -> List[Row]:
        rows = sorted(
            (p for p in self.pages.values()
             if p.get("embedding") is None and (after_id is None or p["id"] > after_id)),
            key=lambda p: p["id"],
        )
        return [{k: p.get(k) for k in EMBEDDING_INPUT_COLUMNS} for p in rows[:limit]]

    async def set_embedding(self, page_id: Any, value: Optional[str]) -> None:
        if page_id in self.pages:
            self.pages[page_id]["embedding"] = value
            self.pages[page_id]["updated_at"] = isoformat()

    async def mark_unembeddable(self, page_ids: Sequence[Any], sentinel: str) -> None:
        for page_id in page_ids:
            await self.set_embedding(page_id, sentinel)

    async def similar_pages(self, embedding: Sequence[float], threshold: float, limit: int) -> List[Row]:
        query = np.asarray(embedding, dtype=float)
        query_norm = np.linalg.norm(query)
        if query_norm == 0:
            return []
        scored: List[Tuple[float, Row]] = []
        for page in self.pages.values():
            stored = page.get("embedding")
            if stored is None or is_sentinel(stored):
                continue
            vector = np.asarray(embedding_from_string(stored), dtype=float)
            if vector.shape != query.shape:
                continue
            norm = np.linalg.norm(vector)
            if norm == 0:
                continue
            similarity = float(np.dot(query, vector) / (query_norm * norm))
            if similarity >= threshold:
                scored.append((similarity, page))
        scored.sort(key=lambda item: item[0], reverse=True)
        return [
            {
                "id": page["id"],
                "url": page["url"],
                "title": page.get("title"),
                "h1": page.get("h1"),
                "meta_description": page.get("meta_description"),
                "similarity": similarity,
            }
            for similarity, page in scored[:limit]
        ]

    async def sample_embeddings(self, limit: int) -> List[Row]:
        rows = [p for p in self.pages.values() if p.get("embedding") is not None]
        return [{"id": p["id"], "url": p["url"], "embedding": p["embedding"]} for p in rows[:limit]]

    async def pages_with_embedding(self, value: str, limit: int) -> List[Row]:
        rows = [p for p in self.pages.values() if p.get("embedding") == value]
        return [{k: p.get(k) for k in ("id", "url", *EMBEDDING_INPUT_COLUMNS[1:])} for p in rows[:limit]]

    async def embedded_page_ids(self, limit: int) -> List[Any]:
        return [p["id"] for p in self.pages.values() if p.get("embedding") is not None][:limit]

    async def clear_embeddings(self, page_ids: Sequence[Any]) -> None:
        for page_id in page_ids:
            await self.set_embedding(page_id, None)

    # -- crawl jobs ----------------------------------------------------------

    async def insert_job(self, row: Mapping[str, Any]) -> Row:
        job = dict(row)
        job.setdefault("id", str(uuid.uuid4()))
        self.jobs[job["id"]] = job
        return dict(job)

    async def update_job(self, job_id: str, changes: Mapping[str, Any]) -> None:
        if job_id in self.jobs:
            self.jobs[job_id].update(changes)

    async def get_job(self, job_id: str) -> Optional[Row]:
        job = self.jobs.get(job_id)
        return dict(job) if job else None

    async def recent_jobs(self, limit: int) -> List[Row]:
        jobs = sorted(self.jobs.values(), key=lambda j: j.get("created_at") or "", reverse=True)
        return [dict(j) for j in jobs[:limit]]

    # -- crawl sessions / raw pages -------------------------------------------

    async def list_sessions(self, *, status: Optional[str] = None, client: Optional[str] = None) -> List[Row]:
        rows = [
            s for s in self.sessions.values()
            if (status is None or s.get("status") == status) and (client is None or s.get("client") == client)
        ]
        rows.sort(key=lambda s: s.get("created_at") or "", reverse=True)
        return [dict(s) for s in rows]

    async def get_session(self, session_id: str) -> Optional[Row]:
        row = self.sessions.get(session_id)
        return dict(row) if row else None

    async def insert_session(self, row: Mapping[str, Any]) -> Row:
        now = isoformat()
        session = {"id": str(uuid.uuid4()), "created_at": now, "updated_at": now, **row}
        self.sessions[session["id"]] = session
        return dict(session)

    async def update_session(self, session_id: str, changes: Mapping[str, Any]) -> Optional[Row]:
        if session_id not in self.sessions:
            return None
        self.sessions[session_id].update(changes)
        return dict(self.sessions[session_id])

    async def delete_session(self, session_id: str) -> bool:
        if self.sessions.pop(session_id, None) is None:
            return False
        for page_id in [i for i, p in self.raw_pages.items() if p.get("session_id") == session_id]:
            del self.raw_pages[page_id]
        return True

    async def list_raw_pages(self, session_id: str) -> List[Row]:
        rows = [p for p in self.raw_pages.values() if p.get("session_id") == session_id]
        return [dict(p) for p in sorted(rows, key=lambda p: p["id"])]

    async def insert_raw_pages(self, rows: Iterable[Mapping[str, Any]]) -> List[Row]:
        inserted = []
        for row in rows:
            page_id = next(self._raw_ids)
            page = {"id": page_id, "excluded": False, "filtered_reason": None, "crawled_at": isoformat(), **row}
            self.raw_pages[page_id] = page
            inserted.append(dict(page))
        return inserted

    async def update_raw_page(self, page_id: Any, changes: Mapping[str, Any]) -> Optional[Row]:
        if page_id not in self.raw_pages:
            return None
        self.raw_pages[page_id].update(changes)
        return dict(self.raw_pages[page_id])

    async def count_session_pages(self, session_id: str) -> int:
        return sum(1 for p in self.pages.values() if p.get("session_id") == session_id)

    # -- profiles / auth users ----------------------------------------------

    async def list_profiles(
        self, *, search: str = "", role: str = "", offset: int = 0, limit: int = 10
    ) -> Tuple[List[Row], int]:
        needle = search.lower()
        rows = [
            p for p in self.profiles.values()
            if (not role or p.get("role") == role)
            and (
                not needle
                or any(needle in (p.get(k) or "").lower() for k in ("full_name", "email", "company_name"))
            )
        ]
        rows.sort(key=lambda p: p.get("created_at") or "", reverse=True)
        return [dict(p) for p in rows[offset:offset + limit]], len(rows)

    async def get_profile(self, user_id: str) -> Optional[Row]:
        row = self.profiles.get(user_id)
        return dict(row) if row else None

    async def insert_profile(self, row: Mapping[str, Any]) -> Row:
        if row["id"] in self.profiles:
            raise ConflictError(f"Profile {row['id']} already exists")
        now = isoformat()
        profile = {"created_at": now, "updated_at": now, **row}
        self.profiles[profile["id"]] = profile
        return dict(profile)

    async def update_profile(self, user_id: str, changes: Mapping[str, Any]) -> Optional[Row]:
        if user_id not in self.profiles:
            return None
        self.profiles[user_id].update(changes)
        return dict(self.profiles[user_id])

    async def delete_profile(self, user_id: str) -> bool:
        return self.profiles.pop(user_id, None) is not None

    async def create_auth_user(self, email: str, password: str, metadata: Mapping[str, Any]) -> str:
        if any(u["email"].lower() == email.lower() for u in self.auth_users.values()):
            raise ConflictError("A user with this email address has already been registered")
        user_id = str(uuid.uuid4())
        self.auth_users[user_id] = {"id": user_id, "email": email, "user_metadata": dict(metadata)}
        return user_id

    async def delete_auth_user(self, user_id: str) -> None:
        self.auth_users.pop(user_id, None)
