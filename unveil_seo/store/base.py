# File: unveil_seo/store/base.py
"""Datastore interface shared by the hosted backend and the in-memory store.

Rows are plain dicts keyed by column name, as the hosted REST API returns
them. Tables: ``pages``, ``crawl_jobs``, ``crawl_sessions``, ``raw_pages``,
``profiles`` (plus auth users owned by the auth service).
"""
from __future__ import annotations

import abc
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

__all__: Sequence[str] = ("Row", "PageStore", "EMBEDDING_INPUT_COLUMNS")

Row = Dict[str, Any]

EMBEDDING_INPUT_COLUMNS: Tuple[str, ...] = ("id", "title", "h1", "meta_description")


class PageStore(abc.ABC):
    """Persistence operations used by the pipeline, the matcher and the admin API."""

    async def close(self) -> None:
        return None

    # -- pages -------------------------------------------------------------

    @abc.abstractmethod
    async def page_exists(self, url: str) -> bool: ...

    @abc.abstractmethod
    async def upsert_page(self, row: Mapping[str, Any]) -> None:
        """Insert or update by the ``url`` conflict key."""

    @abc.abstractmethod
    async def count_pages(self) -> int: ...

    @abc.abstractmethod
    async def count_embedded_pages(self) -> int:
        """Pages whose embedding is not null (sentinel included)."""

    @abc.abstractmethod
    async def pages_needing_embeddings(self, after_id: Any, limit: int) -> List[Row]:
        """Pages with a null embedding and ``id > after_id``, ordered by id.

        Only :data:`EMBEDDING_INPUT_COLUMNS` are returned.
        """

    @abc.abstractmethod
    async def set_embedding(self, page_id: Any, value: Optional[str]) -> None: ...

    @abc.abstractmethod
    async def mark_unembeddable(self, page_ids: Sequence[Any], sentinel: str) -> None: ...

    @abc.abstractmethod
    async def similar_pages(self, embedding: Sequence[float], threshold: float, limit: int) -> List[Row]:
        """Cosine-similarity search; rows carry a ``similarity`` column, best first."""

    @abc.abstractmethod
    async def sample_embeddings(self, limit: int) -> List[Row]:
        """``id``, ``url``, ``embedding`` of pages that have a non-null embedding."""

    @abc.abstractmethod
    async def pages_with_embedding(self, value: str, limit: int) -> List[Row]: ...

    @abc.abstractmethod
    async def embedded_page_ids(self, limit: int) -> List[Any]: ...

    @abc.abstractmethod
    async def clear_embeddings(self, page_ids: Sequence[Any]) -> None: ...

    # -- crawl jobs ----------------------------------------------------------

    @abc.abstractmethod
    async def insert_job(self, row: Mapping[str, Any]) -> Row: ...

    @abc.abstractmethod
    async def update_job(self, job_id: str, changes: Mapping[str, Any]) -> None: ...

    @abc.abstractmethod
    async def get_job(self, job_id: str) -> Optional[Row]: ...

    @abc.abstractmethod
    async def recent_jobs(self, limit: int) -> List[Row]: ...

    # -- crawl sessions / raw pages -------------------------------------------

    @abc.abstractmethod
    async def list_sessions(self, *, status: Optional[str] = None, client: Optional[str] = None) -> List[Row]: ...

    @abc.abstractmethod
    async def get_session(self, session_id: str) -> Optional[Row]: ...

    @abc.abstractmethod
    async def insert_session(self, row: Mapping[str, Any]) -> Row: ...

    @abc.abstractmethod
    async def update_session(self, session_id: str, changes: Mapping[str, Any]) -> Optional[Row]: ...

    @abc.abstractmethod
    async def delete_session(self, session_id: str) -> bool: ...

    @abc.abstractmethod
    async def list_raw_pages(self, session_id: str) -> List[Row]: ...

    @abc.abstractmethod
    async def insert_raw_pages(self, rows: Iterable[Mapping[str, Any]]) -> List[Row]: ...

    @abc.abstractmethod
    async def update_raw_page(self, page_id: Any, changes: Mapping[str, Any]) -> Optional[Row]: ...

    @abc.abstractmethod
    async def count_session_pages(self, session_id: str) -> int:
        """Pages promoted to the index from *session_id*."""

    # -- profiles / auth users ----------------------------------------------

    @abc.abstractmethod
    async def list_profiles(
        self, *, search: str = "", role: str = "", offset: int = 0, limit: int = 10
    ) -> Tuple[List[Row], int]: ...

    @abc.abstractmethod
    async def get_profile(self, user_id: str) -> Optional[Row]: ...

    @abc.abstractmethod
    async def insert_profile(self, row: Mapping[str, Any]) -> Row: ...

    @abc.abstractmethod
    async def update_profile(self, user_id: str, changes: Mapping[str, Any]) -> Optional[Row]: ...

    @abc.abstractmethod
    async def delete_profile(self, user_id: str) -> bool: ...

    @abc.abstractmethod
    async def create_auth_user(self, email: str, password: str, metadata: Mapping[str, Any]) -> str:
        """Create an auth user and return its id; duplicate email raises ConflictError."""

    @abc.abstractmethod
    async def delete_auth_user(self, user_id: str) -> None: ...
