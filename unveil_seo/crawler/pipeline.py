# File: unveil_seo/crawler/pipeline.py
"""
Конвейер загрузки сайта: запуск краулинга во внешнем сервисе, опрос
статуса и сохранение нормализованных страниц.

Задача краулинга проходит состояния
``pending -> running -> completed | completed_partial | failed``.
Ожидание построено на фиксированных паузах ``asyncio.sleep`` между
опросами, поэтому одна задача занимает цикл событий лишь на время
отдельных запросов.

Если в запросе указан ``session_id``, документы не попадают в индекс
напрямую, а записываются в ``raw_pages`` этой сессии для ручной проверки.
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set

from unveil_seo.config import CrawlSettings, FilterSettings
from unveil_seo.crawler.firecrawl import CrawlStatusReport
from unveil_seo.crawler.models import CrawlJob, CrawlRequest, CrawlStatus
from unveil_seo.errors import UnveilError
from unveil_seo.filters.urlfilter import exclusion_reason
from unveil_seo.logger import logger
from unveil_seo.parser.markdown_parser import document_url, process_page
from unveil_seo.store.base import PageStore, Row

__all__: Sequence[str] = ("CrawlPipeline", "raw_page_row")


def _describe_duration(seconds: float) -> str:
    if seconds >= 60:
        minutes = round(seconds / 60)
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    return f"{round(seconds)} seconds"


def raw_page_row(document: Mapping[str, Any], session_id: str) -> Row:
    """Row for ``raw_pages`` from one crawl document."""
    page = process_page(document)
    metadata = document.get("metadata") or {}
    status = metadata.get("statusCode")
    return {
        "session_id": session_id,
        "url": page.url,
        "title": page.title or None,
        "meta_description": page.meta_description or None,
        "h1": page.h1 or None,
        "content": document.get("markdown") or None,
        "status_code": int(status) if isinstance(status, (int, str)) and str(status).isdigit() else None,
        "excluded": False,
        "filtered_reason": None,
    }


class CrawlPipeline:
    def __init__(
        self,
        store: PageStore,
        crawler: Any,
        settings: Optional[CrawlSettings] = None,
        filters: Optional[FilterSettings] = None,
    ) -> None:
        self._store = store
        self._crawler = crawler
        self._settings = settings or CrawlSettings()
        self._filters = filters or FilterSettings()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def tasks(self) -> Set[asyncio.Task]:
        """Crawls scheduled by :meth:`start` and still running."""
        return set(self._tasks)

    # -- job lifecycle ---------------------------------------------------------

    async def create_job(self, request: CrawlRequest) -> CrawlJob:
        job = CrawlJob(
            base_url=request.base_url,
            max_pages=request.max_pages,
            exclude_patterns=list(request.exclude_patterns),
        )
        await self._store.insert_job(job.to_row())
        logger.info("Crawl job %s created for %s (max %d pages)", job.id, job.base_url, job.max_pages)
        return job

    async def _transition(self, job: CrawlJob, status: CrawlStatus, *, error_message: Optional[str] = None) -> None:
        changes = job.transition(status, error_message=error_message)
        await self._store.update_job(job.id, changes)
        if status is CrawlStatus.FAILED:
            logger.error("Crawl job %s failed: %s", job.id, error_message)
        else:
            logger.info("Crawl job %s -> %s", job.id, status.value)

    async def start(self, request: CrawlRequest) -> str:
        """Create the job, schedule the crawl in the background and return the job id."""
        job = await self.create_job(request)
        task = asyncio.create_task(self.run(job, request), name=f"crawl-{job.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return job.id

    async def crawl(self, request: CrawlRequest) -> CrawlJob:
        """Run a crawl to its terminal state."""
        job = await self.create_job(request)
        return await self.run(job, request)

    async def run(self, job: CrawlJob, request: CrawlRequest) -> CrawlJob:
        try:
            await self._transition(job, CrawlStatus.RUNNING)
            await self._set_session_status(request, "running")
            await self._poll(job, request)
        except Exception as exc:
            # the job row must reach a terminal state whatever happened
            if not job.status.is_terminal:
                message = exc.message if isinstance(exc, UnveilError) else str(exc) or type(exc).__name__
                await self._transition(job, CrawlStatus.FAILED, error_message=message)
            if not isinstance(exc, UnveilError):
                logger.exception("Unexpected error in crawl job %s", job.id)
        await self._set_session_status(
            request, "failed" if job.status is CrawlStatus.FAILED else "needs_review"
        )
        return job

    async def _set_session_status(self, request: CrawlRequest, status: str) -> None:
        if request.session_id:
            await self._store.update_session(request.session_id, {"status": status})

    # -- polling -------------------------------------------------------------

    async def _poll(self, job: CrawlJob, request: CrawlRequest) -> None:
        s = self._settings
        try:
            remote_id = await self._crawler.start_crawl(
                job.base_url,
                limit=job.max_pages,
                exclude_paths=job.exclude_patterns,
                wait_for=s.wait_for_ms,
            )
        except UnveilError as exc:
            await self._transition(job, CrawlStatus.FAILED, error_message=f"Failed to start crawl: {exc.message}")
            return

        last_count = 0
        unchanged = 0
        errors = 0
        for attempt in range(1, s.max_poll_attempts + 1):
            await asyncio.sleep(s.poll_interval)
            try:
                report = await self._crawler.check_status(remote_id)
            except UnveilError as exc:
                errors += 1
                logger.warning("Polling attempt %d for job %s failed: %s", attempt, job.id, exc.message)
                if errors > s.max_poll_errors:
                    await self._transition(
                        job,
                        CrawlStatus.FAILED,
                        error_message=f"Failed to poll crawl status after {attempt} attempts: {exc.message}",
                    )
                    return
                continue
            errors = 0

            count = len(report.documents)
            logger.debug(
                "Polling attempt %d for job %s: %s, %d pages fetched of %d discovered",
                attempt, job.id, report.status, count, report.page_count,
            )

            if report.is_completed:
                await self._ingest(job, request, report)
                await self._transition(job, CrawlStatus.COMPLETED)
                return
            if report.is_failed:
                await self._transition(job, CrawlStatus.FAILED, error_message=f"Crawl {report.status} on the crawl service")
                return

            if report.is_scraping and count == last_count:
                unchanged += 1
                if unchanged >= s.stuck_poll_threshold and count > 0:
                    logger.warning("Job %s looks stuck at %d pages, processing what was discovered", job.id, count)
                    await self._ingest(job, request, report)
                    await self._transition(
                        job,
                        CrawlStatus.COMPLETED_PARTIAL,
                        error_message=f"Crawl appeared stuck after discovering {count} pages. Processing available pages.",
                    )
                    return
            else:
                unchanged = 0
            last_count = count

        await self._transition(
            job,
            CrawlStatus.FAILED,
            error_message=f"Crawl polling timed out after {_describe_duration(s.max_poll_attempts * s.poll_interval)}",
        )

    # -- page processing -------------------------------------------------------

    def _excluded(self, url: str, document: Mapping[str, Any]) -> Optional[str]:
        if not self._settings.apply_url_filter:
            return None
        metadata = document.get("metadata") or {}
        return exclusion_reason(
            url,
            metadata.get("description") if isinstance(metadata.get("description"), str) else None,
            site_patterns=self._filters.site_specific_patterns,
            max_depth=self._filters.max_path_depth,
            numeric_id_length=self._filters.long_numeric_id,
        )

    async def _ingest(self, job: CrawlJob, request: CrawlRequest, report: CrawlStatusReport) -> None:
        job.pages_total = len(report.documents)
        await self._store.update_job(job.id, {"pages_total": job.pages_total})
        if request.session_id:
            await self._ingest_raw(job, request.session_id, report.documents)
            return

        for index, document in enumerate(report.documents):
            if job.pages_crawled >= job.max_pages:
                break
            url: Optional[str] = None
            try:
                url = document_url(document)
                if not url:
                    logger.debug("Skipping document #%d without URL", index)
                    continue
                reason = self._excluded(url, document)
                if reason:
                    logger.debug("Skipping %s: %s", url, reason)
                    continue
                if not request.force_recrawl and await self._store.page_exists(url):
                    logger.debug("Skipping existing page: %s", url)
                    continue
                page = process_page(document)
                await self._store.upsert_page(page.to_row())
                job.pages_crawled += 1
                await self._store.update_job(job.id, {"pages_crawled": job.pages_crawled})
                logger.info("Stored page %d/%d: %s", job.pages_crawled, job.max_pages, url)
            except Exception:
                logger.exception("Failed to process page %s", url or f"#{index}")
                continue
            await asyncio.sleep(self._settings.page_delay)

    async def _ingest_raw(self, job: CrawlJob, session_id: str, documents: List[Dict[str, Any]]) -> None:
        rows: List[Row] = []
        for index, document in enumerate(documents[: job.max_pages]):
            try:
                rows.append(raw_page_row(document, session_id))
            except ValueError as exc:
                logger.debug("Skipping document #%d: %s", index, exc)
            except Exception:
                logger.exception("Failed to read document #%d", index)
        await self._store.insert_raw_pages(rows)
        job.pages_crawled = len(rows)
        await self._store.update_job(job.id, {"pages_crawled": job.pages_crawled})
        logger.info("Session %s: %d raw pages stored for review", session_id, len(rows))
