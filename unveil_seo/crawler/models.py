# File: unveil_seo/crawler/models.py
"""
Модели данных конвейера краулинга: задача краулинга с конечным автоматом
статусов, запрос на запуск и нормализованная страница.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

from unveil_seo.errors import InvalidTransitionError
from unveil_seo.utils import is_http_url, isoformat

__all__: Sequence[str] = (
    "CrawlStatus",
    "CrawlRequest",
    "CrawlJob",
    "ProcessedPage",
)


class CrawlStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_PARTIAL = "completed_partial"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL: FrozenSet[CrawlStatus] = frozenset(
    {CrawlStatus.COMPLETED, CrawlStatus.COMPLETED_PARTIAL, CrawlStatus.FAILED}
)

_TRANSITIONS: Dict[CrawlStatus, FrozenSet[CrawlStatus]] = {
    CrawlStatus.PENDING: frozenset({CrawlStatus.RUNNING}),
    CrawlStatus.RUNNING: _TERMINAL,
}


class CrawlRequest(BaseModel):
    """Параметры запуска краулинга (после проверки входных данных)."""
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    base_url: str = Field(..., alias="baseUrl")
    max_pages: int = Field(10, ge=1, alias="maxPages")
    exclude_patterns: List[str] = Field(default_factory=list, alias="excludePatterns")
    force_recrawl: bool = Field(False, alias="forceRecrawl")
    session_id: Optional[str] = Field(None, alias="sessionId")

    @field_validator("base_url", mode="before")
    def _check_url(cls, v: Any) -> Any:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("baseUrl is required")
        v = v.strip()
        if not is_http_url(v):
            raise ValueError("baseUrl must be a valid http(s) URL")
        return v

    @field_validator("exclude_patterns", mode="before")
    def _split_patterns(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [p.strip() for p in v.split(",") if p.strip()]
        if isinstance(v, (list, tuple)):
            return [str(p).strip() for p in v if str(p).strip()]
        return v


@dataclass(slots=True)
class CrawlJob:
    """Одна задача краулинга; изменяется только через :meth:`transition`."""

    base_url: str
    max_pages: int
    exclude_patterns: List[str] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: CrawlStatus = CrawlStatus.PENDING
    pages_crawled: int = 0
    pages_total: Optional[int] = None
    created_at: str = field(default_factory=isoformat)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    error_message: Optional[str] = None

    def transition(self, new_status: CrawlStatus, *, error_message: Optional[str] = None) -> Dict[str, Any]:
        """Move to *new_status*; returns the changed columns for the store."""
        allowed = _TRANSITIONS.get(self.status, frozenset())
        if new_status not in allowed:
            raise InvalidTransitionError(
                f"Crawl job {self.id}: cannot go from {self.status.value} to {new_status.value}"
            )
        self.status = new_status
        changes: Dict[str, Any] = {"status": new_status.value}
        if new_status is CrawlStatus.RUNNING:
            self.started_at = isoformat()
            changes["started_at"] = self.started_at
        else:
            self.completed_at = isoformat()
            changes["completed_at"] = self.completed_at
            changes["pages_crawled"] = self.pages_crawled
        if error_message is not None:
            self.error_message = error_message
            changes["error_message"] = error_message
        return changes

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "base_url": self.base_url,
            "max_pages": self.max_pages,
            "exclude_patterns": list(self.exclude_patterns) or None,
            "status": self.status.value,
            "pages_crawled": self.pages_crawled,
            "pages_total": self.pages_total,
            "created_at": self.created_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "error_message": self.error_message,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> CrawlJob:
        return cls(
            id=str(row["id"]),
            base_url=row["base_url"],
            max_pages=int(row["max_pages"]),
            exclude_patterns=list(row.get("exclude_patterns") or []),
            status=CrawlStatus(row.get("status") or CrawlStatus.PENDING.value),
            pages_crawled=int(row.get("pages_crawled") or 0),
            pages_total=row.get("pages_total"),
            created_at=row.get("created_at") or isoformat(),
            started_at=row.get("started_at"),
            completed_at=row.get("completed_at"),
            error_message=row.get("error_message"),
        )


@dataclass(slots=True)
class ProcessedPage:
    """Страница после нормализации, готовая к upsert в таблицу ``pages``."""

    url: str
    title: str = ""
    meta_description: str = ""
    h1: str = ""
    h2_tags: List[str] = field(default_factory=list)
    h3_tags: List[str] = field(default_factory=list)
    primary_keywords: List[str] = field(default_factory=list)
    word_count: int = 0
    content_snippet: str = ""

    def to_row(self, *, session_id: Optional[str] = None) -> Dict[str, Any]:
        now = isoformat()
        row: Dict[str, Any] = {
            "url": self.url,
            "title": self.title or None,
            "meta_description": self.meta_description or None,
            "h1": self.h1 or None,
            "h2_tags": list(self.h2_tags),
            "h3_tags": list(self.h3_tags),
            "primary_keywords": list(self.primary_keywords),
            "word_count": self.word_count,
            "content_snippet": self.content_snippet or None,
            # re-crawled content invalidates the previous vector
            "embedding": None,
            "last_crawled": now,
            "updated_at": now,
        }
        if session_id is not None:
            row["session_id"] = session_id
        return row
