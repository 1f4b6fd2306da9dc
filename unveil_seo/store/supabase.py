# File: unveil_seo/store/supabase.py
"""Hosted Postgres/pgvector backend reached through Supabase's REST endpoints.

* tables via PostgREST (``/rest/v1/<table>``) with the service-role key;
* vector search via the ``find_similar_pages`` stored procedure
  (``/rest/v1/rpc/find_similar_pages``);
* user accounts via the auth admin API (``/auth/v1/admin/users``).

Filters use PostgREST syntax (``url=eq.<value>``, ``id=gt.<cursor>``,
``embedding=is.null``); counts come from the ``Content-Range`` header with
``Prefer: count=exact``.
"""
from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from unveil_seo.crawler.fetcher import HttpResponse, JsonHttpClient
from unveil_seo.embeddings.encoding import embedding_to_string
from unveil_seo.errors import ConflictError, InvalidRequestError, UpstreamError
from unveil_seo.logger import logger
from unveil_seo.store.base import EMBEDDING_INPUT_COLUMNS, PageStore, Row

__all__: Sequence[str] = ("SupabaseStore", "parse_content_range")

_RETURN_ROWS = {"Prefer": "return=representation"}
_RETURN_NONE = {"Prefer": "return=minimal"}
_SEARCH_UNSAFE_RE = re.compile(r"[,()\"*]")


def parse_content_range(value: Optional[str]) -> int:
    """Total from a ``Content-Range`` header such as ``0-24/3573`` or ``*/0``."""
    if not value or "/" not in value:
        return 0
    total = value.rsplit("/", 1)[1].strip()
    return int(total) if total.isdigit() else 0


def _in_list(values: Iterable[Any]) -> str:
    return "in.(" + ",".join(str(v) for v in values) + ")"


def _header(resp: HttpResponse, name: str) -> Optional[str]:
    lowered = name.lower()
    return next((v for k, v in resp.headers.items() if k.lower() == lowered), None)


class SupabaseStore(PageStore):
    def __init__(
        self,
        url: str,
        service_key: str,
        *,
        timeout: float = 30.0,
        retry_times: int = 2,
        backoff_base: float = 1.0,
    ) -> None:
        base = url.rstrip("/")
        headers = {
            "apikey": service_key,
            "Authorization": f"Bearer {service_key}",
            "Content-Type": "application/json",
        }
        self._rest = JsonHttpClient(
            f"{base}/rest/v1", service="supabase", headers=headers,
            timeout=timeout, retry_times=retry_times, backoff_base=backoff_base,
        )
        self._auth = JsonHttpClient(
            f"{base}/auth/v1", service="supabase-auth", headers=headers,
            timeout=timeout, retry_times=retry_times, backoff_base=backoff_base,
        )

    async def close(self) -> None:
        await self._rest.close()
        await self._auth.close()

    # -- low-level helpers -----------------------------------------------------

    async def _select(self, table: str, params: Mapping[str, Any]) -> List[Row]:
        resp = await self._rest.request("GET", f"/{table}", params=dict(params))
        return list(resp.data or [])

    async def _count(self, table: str, params: Optional[Mapping[str, Any]] = None) -> int:
        resp = await self._rest.request(
            "HEAD",
            f"/{table}",
            params={"select": "id", **(params or {})},
            headers={"Prefer": "count=exact", "Range-Unit": "items", "Range": "0-0"},
        )
        return parse_content_range(_header(resp, "Content-Range"))

    async def _insert(self, table: str, body: Any) -> List[Row]:
        resp = await self._rest.request("POST", f"/{table}", json_body=body, headers=_RETURN_ROWS)
        return list(resp.data or [])

    async def _update(self, table: str, params: Mapping[str, Any], changes: Mapping[str, Any]) -> List[Row]:
        resp = await self._rest.request(
            "PATCH", f"/{table}", params=dict(params), json_body=dict(changes), headers=_RETURN_ROWS
        )
        return list(resp.data or [])

    async def _delete(self, table: str, params: Mapping[str, Any]) -> List[Row]:
        resp = await self._rest.request("DELETE", f"/{table}", params=dict(params), headers=_RETURN_ROWS)
        return list(resp.data or [])

    # -- pages -------------------------------------------------------------

    async def page_exists(self, url: str) -> bool:
        rows = await self._select("pages", {"select": "id", "url": f"eq.{url}", "limit": 1})
        return bool(rows)

    async def upsert_page(self, row: Mapping[str, Any]) -> None:
        await self._rest.request(
            "POST",
            "/pages",
            params={"on_conflict": "url"},
            json_body=dict(row),
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    async def count_pages(self) -> int:
        return await self._count("pages")

    async def count_embedded_pages(self) -> int:
        return await self._count("pages", {"embedding": "not.is.null"})

    async def pages_needing_embeddings(self, after_id: Any, limit: int) -> List[Row]:
        params: Dict[str, Any] = {
            "select": ",".join(EMBEDDING_INPUT_COLUMNS),
            "embedding": "is.null",
            "order": "id.asc",
            "limit": limit,
        }
        if after_id is not None:
            params["id"] = f"gt.{after_id}"
        return await self._select("pages", params)

    async def set_embedding(self, page_id: Any, value: Optional[str]) -> None:
        await self._rest.request(
            "PATCH",
            "/pages",
            params={"id": f"eq.{page_id}"},
            json_body={"embedding": value},
            headers=_RETURN_NONE,
        )

    async def mark_unembeddable(self, page_ids: Sequence[Any], sentinel: str) -> None:
        if not page_ids:
            return
        await self._rest.request(
            "PATCH",
            "/pages",
            params={"id": _in_list(page_ids)},
            json_body={"embedding": sentinel},
            headers=_RETURN_NONE,
        )

    async def similar_pages(self, embedding: Sequence[float], threshold: float, limit: int) -> List[Row]:
        resp = await self._rest.request(
            "POST",
            "/rpc/find_similar_pages",
            json_body={
                "query_embedding": embedding_to_string(embedding),
                "similarity_threshold": threshold,
                "match_limit": limit,
            },
        )
        return list(resp.data or [])

    async def sample_embeddings(self, limit: int) -> List[Row]:
        return await self._select(
            "pages", {"select": "id,url,embedding", "embedding": "not.is.null", "limit": limit}
        )

    async def pages_with_embedding(self, value: str, limit: int) -> List[Row]:
        return await self._select(
            "pages", {"select": "id,url,title,h1,meta_description", "embedding": f"eq.{value}", "limit": limit}
        )

    async def embedded_page_ids(self, limit: int) -> List[Any]:
        rows = await self._select("pages", {"select": "id", "embedding": "not.is.null", "limit": limit})
        return [r["id"] for r in rows]

    async def clear_embeddings(self, page_ids: Sequence[Any]) -> None:
        if not page_ids:
            return
        await self._rest.request(
            "PATCH",
            "/pages",
            params={"id": _in_list(page_ids)},
            json_body={"embedding": None},
            headers=_RETURN_NONE,
        )

    # -- crawl jobs ----------------------------------------------------------

    async def insert_job(self, row: Mapping[str, Any]) -> Row:
        rows = await self._insert("crawl_jobs", dict(row))
        if not rows:
            raise UpstreamError("crawl_jobs insert returned no row", service="supabase")
        return rows[0]

    async def update_job(self, job_id: str, changes: Mapping[str, Any]) -> None:
        await self._rest.request(
            "PATCH", "/crawl_jobs", params={"id": f"eq.{job_id}"}, json_body=dict(changes), headers=_RETURN_NONE
        )

    async def get_job(self, job_id: str) -> Optional[Row]:
        rows = await self._select("crawl_jobs", {"select": "*", "id": f"eq.{job_id}", "limit": 1})
        return rows[0] if rows else None

    async def recent_jobs(self, limit: int) -> List[Row]:
        return await self._select("crawl_jobs", {"select": "*", "order": "created_at.desc", "limit": limit})

    # -- crawl sessions / raw pages -------------------------------------------

    async def list_sessions(self, *, status: Optional[str] = None, client: Optional[str] = None) -> List[Row]:
        params: Dict[str, Any] = {"select": "*", "order": "created_at.desc"}
        if status:
            params["status"] = f"eq.{status}"
        if client:
            params["client"] = f"eq.{client}"
        return await self._select("crawl_sessions", params)

    async def get_session(self, session_id: str) -> Optional[Row]:
        rows = await self._select("crawl_sessions", {"select": "*", "id": f"eq.{session_id}", "limit": 1})
        return rows[0] if rows else None

    async def insert_session(self, row: Mapping[str, Any]) -> Row:
        rows = await self._insert("crawl_sessions", dict(row))
        if not rows:
            raise UpstreamError("crawl_sessions insert returned no row", service="supabase")
        return rows[0]

    async def update_session(self, session_id: str, changes: Mapping[str, Any]) -> Optional[Row]:
        rows = await self._update("crawl_sessions", {"id": f"eq.{session_id}"}, changes)
        return rows[0] if rows else None

    async def delete_session(self, session_id: str) -> bool:
        return bool(await self._delete("crawl_sessions", {"id": f"eq.{session_id}"}))

    async def list_raw_pages(self, session_id: str) -> List[Row]:
        return await self._select(
            "raw_pages", {"select": "*", "session_id": f"eq.{session_id}", "order": "id.asc"}
        )

    async def insert_raw_pages(self, rows: Iterable[Mapping[str, Any]]) -> List[Row]:
        body = [dict(r) for r in rows]
        if not body:
            return []
        return await self._insert("raw_pages", body)

    async def update_raw_page(self, page_id: Any, changes: Mapping[str, Any]) -> Optional[Row]:
        rows = await self._update("raw_pages", {"id": f"eq.{page_id}"}, changes)
        return rows[0] if rows else None

    async def count_session_pages(self, session_id: str) -> int:
        return await self._count("pages", {"session_id": f"eq.{session_id}"})

    # -- profiles / auth users ----------------------------------------------

    async def list_profiles(
        self, *, search: str = "", role: str = "", offset: int = 0, limit: int = 10
    ) -> Tuple[List[Row], int]:
        params: Dict[str, Any] = {
            "select": "id,email,full_name,company_name,role,created_at,updated_at",
            "order": "created_at.desc",
            "offset": offset,
            "limit": limit,
        }
        term = _SEARCH_UNSAFE_RE.sub(" ", search).strip()
        if term:
            params["or"] = (
                f"(full_name.ilike.*{term}*,email.ilike.*{term}*,company_name.ilike.*{term}*)"
            )
        if role:
            params["role"] = f"eq.{role}"
        resp = await self._rest.request("GET", "/profiles", params=params, headers={"Prefer": "count=exact"})
        return list(resp.data or []), parse_content_range(_header(resp, "Content-Range"))

    async def get_profile(self, user_id: str) -> Optional[Row]:
        rows = await self._select("profiles", {"select": "*", "id": f"eq.{user_id}", "limit": 1})
        return rows[0] if rows else None

    async def insert_profile(self, row: Mapping[str, Any]) -> Row:
        try:
            rows = await self._insert("profiles", dict(row))
        except UpstreamError as exc:
            if exc.status_code == 409:
                raise ConflictError(f"Profile {row.get('id')} already exists") from exc
            raise
        if not rows:
            raise UpstreamError("profiles insert returned no row", service="supabase")
        return rows[0]

    async def update_profile(self, user_id: str, changes: Mapping[str, Any]) -> Optional[Row]:
        rows = await self._update("profiles", {"id": f"eq.{user_id}"}, changes)
        return rows[0] if rows else None

    async def delete_profile(self, user_id: str) -> bool:
        return bool(await self._delete("profiles", {"id": f"eq.{user_id}"}))

    async def create_auth_user(self, email: str, password: str, metadata: Mapping[str, Any]) -> str:
        try:
            resp = await self._auth.request(
                "POST",
                "/admin/users",
                json_body={
                    "email": email,
                    "password": password,
                    "email_confirm": True,
                    "user_metadata": dict(metadata),
                },
            )
        except UpstreamError as exc:
            if exc.status_code in (400, 409, 422):
                detail = exc.details if isinstance(exc.details, dict) else {}
                message = detail.get("msg") or detail.get("message") or detail.get("error_description") or ""
                if exc.status_code == 409 or "already" in str(message).lower() or detail.get("error_code") == "email_exists":
                    raise ConflictError(message or "User already exists") from exc
                raise InvalidRequestError(message or "Invalid user data") from exc
            raise
        user = resp.data or {}
        if isinstance(user, dict) and isinstance(user.get("user"), dict):
            user = user["user"]
        user_id = user.get("id") if isinstance(user, dict) else None
        if not user_id:
            raise UpstreamError("auth user creation returned no id", service="supabase-auth", details=resp.data)
        logger.info("Auth user %s created for %s", user_id, email)
        return str(user_id)

    async def delete_auth_user(self, user_id: str) -> None:
        await self._auth.request("DELETE", f"/admin/users/{user_id}")
