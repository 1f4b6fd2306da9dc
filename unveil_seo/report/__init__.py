# File: unveil_seo/report/__init__.py
"""unveil_seo.report: Отчёты по якорям и подсказкам ссылок (JSON и HTML), используются CLI."""

from __future__ import annotations

from unveil_seo.report.html_report import TEMPLATE_DIR, render_html
from unveil_seo.report.json_report import render_json

__all__ = ["render_json", "render_html", "TEMPLATE_DIR"]
