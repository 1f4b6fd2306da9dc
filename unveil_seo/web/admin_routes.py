# File: unveil_seo/web/admin_routes.py
"""Admin API: crawl sessions, raw-page review, filters, promotion, export and users."""
from __future__ import annotations

from aiohttp import web

from unveil_seo.admin.export import XLSX_CONTENT_TYPE, export_xlsx
from unveil_seo.admin.users import NewUser
from unveil_seo.crawler.models import CrawlRequest
from unveil_seo.errors import InvalidRequestError
from unveil_seo.filters.blocks import get_preset
from unveil_seo.utils import is_http_url
from unveil_seo.web.handlers import ok, read_json
from unveil_seo.web.keys import ENGINE_KEY
from unveil_seo.web.schemas import FiltersRequest, NewSessionRequest, RawPagesPatch, parse_body

__all__ = ["admin_routes"]

admin_routes = web.RouteTableDef()


def _int_query(request: web.Request, name: str, default: int) -> int:
    raw = request.query.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise InvalidRequestError(f"{name} must be an integer") from exc


# -- crawl sessions ----------------------------------------------------------


@admin_routes.get("/api/admin/crawl-sessions")
async def list_sessions(request: web.Request) -> web.Response:
    sessions = request.app[ENGINE_KEY].sessions()
    rows = await sessions.list_sessions(
        status=request.query.get("status") or None, client=request.query.get("client") or None
    )
    return web.json_response(rows)


@admin_routes.post("/api/admin/crawl-sessions")
async def create_session(request: web.Request) -> web.Response:
    engine = request.app[ENGINE_KEY]
    body = parse_body(NewSessionRequest, await read_json(request))
    session = await engine.sessions().create_session(body.domain, body.client)
    payload = dict(session)
    if body.start_crawl:
        base_url = body.domain if is_http_url(body.domain) else f"https://{body.domain.strip().strip('/')}"
        crawl = CrawlRequest(
            base_url=base_url,
            max_pages=min(body.max_pages or engine.config.crawl.default_max_pages, engine.config.crawl.max_pages_limit),
            session_id=session["id"],
        )
        payload["jobId"] = await engine.pipeline.start(crawl)
    return web.json_response(payload, status=201)


@admin_routes.get("/api/admin/crawl-sessions/{id}")
async def get_session(request: web.Request) -> web.Response:
    session = await request.app[ENGINE_KEY].sessions().get_session(request.match_info["id"])
    return web.json_response(session)


@admin_routes.put("/api/admin/crawl-sessions/{id}")
@admin_routes.patch("/api/admin/crawl-sessions/{id}")
async def update_session(request: web.Request) -> web.Response:
    body = await read_json(request)
    session = await request.app[ENGINE_KEY].sessions().update_session(request.match_info["id"], body)
    return web.json_response(session)


@admin_routes.delete("/api/admin/crawl-sessions/{id}")
async def delete_session(request: web.Request) -> web.Response:
    await request.app[ENGINE_KEY].sessions().delete_session(request.match_info["id"])
    return ok({"message": "Crawl session deleted"})


@admin_routes.get("/api/admin/crawl-sessions/{id}/raw-pages")
async def raw_pages(request: web.Request) -> web.Response:
    rows = await request.app[ENGINE_KEY].sessions().raw_pages(request.match_info["id"])
    return web.json_response(rows)


@admin_routes.post("/api/admin/crawl-sessions/{id}/filters")
async def apply_filters(request: web.Request) -> web.Response:
    body = parse_body(FiltersRequest, await read_json(request))
    blocks = list(body.blocks)
    for preset_id in body.presets:
        preset = get_preset(preset_id)
        if preset is None:
            raise InvalidRequestError(f"Unknown filter preset: {preset_id}")
        blocks.append(preset)
    if not blocks:
        raise InvalidRequestError("At least one filter block or preset is required")
    result = await request.app[ENGINE_KEY].sessions().apply_filters(request.match_info["id"], blocks)
    return ok(result)


@admin_routes.post("/api/admin/crawl-sessions/{id}/promote")
async def promote(request: web.Request) -> web.Response:
    result = await request.app[ENGINE_KEY].sessions().promote(request.match_info["id"])
    return ok(result)


@admin_routes.get("/api/admin/crawl-sessions/{id}/export")
async def export(request: web.Request) -> web.Response:
    sessions = request.app[ENGINE_KEY].sessions()
    session = await sessions.get_session(request.match_info["id"])
    pages = await sessions.raw_pages(session["id"])
    filename = f"crawl-{session.get('domain') or session['id']}.xlsx".replace('"', "")
    return web.Response(
        body=export_xlsx(pages, url_options=sessions.url_options),
        content_type=XLSX_CONTENT_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@admin_routes.patch("/api/admin/raw-pages")
async def update_raw_pages(request: web.Request) -> web.Response:
    body = parse_body(RawPagesPatch, await read_json(request))
    count = await request.app[ENGINE_KEY].sessions().update_exclusions(
        [u.model_dump() for u in body.page_updates]
    )
    return ok({"message": f"Updated {count} pages successfully", "updatedCount": count})


# -- users -------------------------------------------------------------------


@admin_routes.get("/api/admin/users")
async def list_users(request: web.Request) -> web.Response:
    result = await request.app[ENGINE_KEY].users().list_users(
        page=_int_query(request, "page", 1),
        limit=_int_query(request, "limit", 10),
        search=request.query.get("search", ""),
        role=request.query.get("role", ""),
    )
    return web.json_response(result)


@admin_routes.post("/api/admin/users")
async def create_user(request: web.Request) -> web.Response:
    new = parse_body(NewUser, await read_json(request))
    profile = await request.app[ENGINE_KEY].users().create_user(new)
    return ok({"user": profile}, status=201)


@admin_routes.get("/api/admin/users/{id}")
async def get_user(request: web.Request) -> web.Response:
    user = await request.app[ENGINE_KEY].users().get_user(request.match_info["id"])
    return web.json_response({"user": user})


@admin_routes.put("/api/admin/users/{id}")
async def update_user(request: web.Request) -> web.Response:
    body = await read_json(request)
    user = await request.app[ENGINE_KEY].users().update_user(request.match_info["id"], body)
    return ok({"user": user})


@admin_routes.delete("/api/admin/users/{id}")
async def delete_user(request: web.Request) -> web.Response:
    await request.app[ENGINE_KEY].users().delete_user(request.match_info["id"])
    return ok({"message": "User deleted"})
