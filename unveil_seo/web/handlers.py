# File: unveil_seo/web/handlers.py
"""Public API routes: crawl jobs, embeddings, anchors, suggestions and URL checks."""
from __future__ import annotations

import json
from typing import Any, Dict

from aiohttp import web

from unveil_seo.crawler.models import CrawlRequest
from unveil_seo.embeddings.diagnostics import diagnose_embeddings, index_stats, reset_embeddings
from unveil_seo.engine import Engine
from unveil_seo.errors import InvalidRequestError, NotFoundError
from unveil_seo.filters.urlfilter import exclusion_reason
from unveil_seo.linking.anchors import analysis_stats, extract_anchor_candidates
from unveil_seo.logger import logger
from unveil_seo.web.keys import ENGINE_KEY
from unveil_seo.web.schemas import (
    CandidatesRequest,
    SuggestionRequest,
    TextRequest,
    UrlCheckRequest,
    parse_body,
)

__all__ = ["routes", "read_json", "ok"]

routes = web.RouteTableDef()

RECENT_JOBS = 10
MAX_URLS_PER_CHECK = 1000


def ok(payload: Dict[str, Any], *, status: int = 200) -> web.Response:
    return web.json_response({"success": True, **payload}, status=status)


async def read_json(request: web.Request) -> Dict[str, Any]:
    try:
        data = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidRequestError("Invalid JSON in request body") from exc
    if not isinstance(data, dict):
        raise InvalidRequestError("Request body must be a JSON object")
    return data


def _engine(request: web.Request) -> Engine:
    return request.app[ENGINE_KEY]


def _check_text_length(engine: Engine, text: str) -> None:
    limit = engine.config.server.max_text_length
    if len(text) > limit:
        raise InvalidRequestError(f"Text too long (max {limit:,} characters)")


# -- crawl -------------------------------------------------------------------


@routes.post("/api/crawl")
async def start_crawl(request: web.Request) -> web.Response:
    engine = _engine(request)
    body = await read_json(request)
    limits = engine.config.crawl
    body.setdefault("maxPages", limits.default_max_pages)
    crawl = parse_body(CrawlRequest, body)
    if crawl.max_pages > limits.max_pages_limit:
        raise InvalidRequestError(f"Max pages must be between 1 and {limits.max_pages_limit}")

    job_id = await engine.pipeline.start(crawl)
    return ok(
        {
            "jobId": job_id,
            "message": f"Crawl started for {crawl.base_url} (max {crawl.max_pages} pages)",
            "config": {
                "baseUrl": crawl.base_url,
                "maxPages": crawl.max_pages,
                "excludePatterns": crawl.exclude_patterns or None,
                "forceRecrawl": crawl.force_recrawl,
            },
        }
    )


@routes.get("/api/crawl")
async def crawl_status(request: web.Request) -> web.Response:
    store = _engine(request).store
    job_id = request.query.get("jobId")
    if job_id:
        job = await store.get_job(job_id)
        if job is None:
            raise NotFoundError("Crawl job not found")
        return ok({"job": job})
    return ok({"jobs": await store.recent_jobs(RECENT_JOBS)})


# -- embeddings --------------------------------------------------------------


@routes.post("/api/embeddings")
async def generate_embeddings(request: web.Request) -> web.Response:
    result = await _engine(request).batcher().run()
    return ok({**result, "message": f"Generated embeddings for {result['processed']} pages"})


@routes.get("/api/stats")
async def stats(request: web.Request) -> web.Response:
    return ok({"stats": await index_stats(_engine(request).store)})


@routes.get("/api/diagnose-embeddings")
async def diagnose(request: web.Request) -> web.Response:
    engine = _engine(request)
    report = await diagnose_embeddings(engine.store, dimensions=engine.config.embedding.dimensions)
    return ok(report)


@routes.post("/api/reset-embeddings")
async def reset(request: web.Request) -> web.Response:
    return ok({"totalReset": await reset_embeddings(_engine(request).store)})


# -- anchors / suggestions ---------------------------------------------------


@routes.post("/api/anchors")
async def anchors(request: web.Request) -> web.Response:
    engine = _engine(request)
    body = parse_body(TextRequest, await read_json(request))
    _check_text_length(engine, body.text)

    candidates = extract_anchor_candidates(body.text)
    payload: Dict[str, Any] = {
        "candidates": [c.to_dict() for c in candidates],
        "stats": analysis_stats(body.text, candidates),
    }
    if body.match and candidates:
        result = await engine.matcher().match_candidates(
            candidates, max_options=body.max_options, min_similarity=body.min_similarity
        )
        payload.update(result.to_dict())
    return ok(payload)


@routes.post("/api/anchors/matches")
async def anchor_matches(request: web.Request) -> web.Response:
    engine = _engine(request)
    body = parse_body(CandidatesRequest, await read_json(request))
    if body.candidates is not None:
        candidates = [c.to_candidate() for c in body.candidates]
    elif body.text is not None:
        _check_text_length(engine, body.text)
        candidates = extract_anchor_candidates(body.text)
    else:
        raise InvalidRequestError("Either candidates or text is required")

    result = await engine.matcher().match_candidates(
        candidates, max_options=body.max_options, min_similarity=body.min_similarity
    )
    return ok(result.to_dict())


@routes.post("/api/suggestions")
async def suggestions(request: web.Request) -> web.Response:
    engine = _engine(request)
    body = parse_body(SuggestionRequest, await read_json(request))
    limit = engine.config.server.max_anchor_length
    if len(body.anchor_text) > limit:
        raise InvalidRequestError(f"Anchor text too long - must be {limit} characters or less")

    capped = min(body.max_suggestions, engine.config.matching.max_suggestions)
    logger.info("Finding suggestions for %r (max %d)", body.anchor_text, capped)
    options = await engine.matcher().match_anchor(
        body.anchor_text, max_options=capped, min_similarity=body.min_similarity
    )
    return ok(
        {
            "suggestions": [o.to_dict() for o in options],
            "meta": {"query": body.anchor_text, "count": len(options), "maxRequested": body.max_suggestions},
        }
    )


# -- url filter --------------------------------------------------------------


@routes.post("/api/url-check")
async def url_check(request: web.Request) -> web.Response:
    filters = _engine(request).config.filters
    body = parse_body(UrlCheckRequest, await read_json(request))
    urls = list(body.urls or [])
    if body.url is not None:
        urls.insert(0, body.url)
    if not urls:
        raise InvalidRequestError("url or urls is required")
    if len(urls) > MAX_URLS_PER_CHECK:
        raise InvalidRequestError(f"At most {MAX_URLS_PER_CHECK} URLs per request")

    results = []
    for url in urls:
        reason = exclusion_reason(
            url,
            body.meta_description,
            site_patterns=filters.site_specific_patterns,
            max_depth=filters.max_path_depth,
            numeric_id_length=filters.long_numeric_id,
        )
        results.append({"url": url, "excluded": reason is not None, "reason": reason})
    return ok({"results": results, "excludedCount": sum(1 for r in results if r["excluded"])})
