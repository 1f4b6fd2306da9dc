# File: unveil_seo/admin/export.py
"""
Выгрузка сырых страниц сессии в Excel (.xlsx).

Таблица строится через pandas, файл пишет движок openpyxl. Колонка
Category вычисляется по форме URL. Excluded и Exclusion Reason
считаются заново: решение ревьюера, затем статус и правила URL.
"""
from __future__ import annotations

import io
import re
from typing import Any, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from unveil_seo.filters.urlfilter import exclusion_reason

__all__: Sequence[str] = (
    "EXPORT_COLUMNS", "XLSX_CONTENT_TYPE", "determine_page_category", "export_exclusion", "raw_pages_frame",
    "export_xlsx",
)

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

EXPORT_COLUMNS: List[str] = [
    "URL",
    "Title",
    "Category",
    "Status Code",
    "Word Count",
    "H1",
    "Meta Description",
    "Excluded",
    "Exclusion Reason",
]

_ARTICLE_ID_RE = re.compile(r",\d+\.")


def determine_page_category(url: str) -> str:
    """``category``, ``article``, ``page`` or ``unknown`` from the URL shape."""
    slashes = url.count("/")
    if "/tags/" in url or (url.endswith("/") and slashes <= 4):
        return "category"
    if ".html" in url or _ARTICLE_ID_RE.search(url):
        return "article"
    if slashes <= 3:
        return "page"
    return "unknown"


def export_exclusion(page: Mapping[str, Any], url_options: Optional[Mapping[str, Any]] = None) -> Optional[str]:
    """Why a raw page stays out of the index.

    A reviewer decision wins; otherwise the page is checked the way
    promotion would check it: missing URL, non-200 status, URL rules.
    """
    if page.get("excluded"):
        return page.get("filtered_reason") or "Manual exclusion"
    url = page.get("url")
    if not url:
        return "No URL"
    status = page.get("status_code")
    if status is not None and int(status) != 200:
        return f"Status code: {status}"
    return exclusion_reason(url, page.get("meta_description"), **(url_options or {}))


def raw_pages_frame(
    pages: Iterable[Mapping[str, Any]], url_options: Optional[Mapping[str, Any]] = None
) -> pd.DataFrame:
    rows = []
    for page in pages:
        url = page.get("url") or ""
        content = page.get("content") or ""
        reason = export_exclusion(page, url_options)
        rows.append(
            {
                "URL": url,
                "Title": page.get("title") or "",
                "Category": determine_page_category(url),
                "Status Code": page.get("status_code"),
                "Word Count": len(content.split()),
                "H1": page.get("h1") or "",
                "Meta Description": page.get("meta_description") or "",
                "Excluded": "YES" if reason else "NO",
                "Exclusion Reason": reason or "",
            }
        )
    return pd.DataFrame(rows, columns=EXPORT_COLUMNS)


def export_xlsx(
    pages: Iterable[Mapping[str, Any]],
    *,
    url_options: Optional[Mapping[str, Any]] = None,
    sheet_name: str = "Raw Pages",
) -> bytes:
    frame = raw_pages_frame(pages, url_options)
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        frame.to_excel(writer, sheet_name=sheet_name, index=False)
    return buffer.getvalue()
