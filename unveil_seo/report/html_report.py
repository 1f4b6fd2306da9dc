# File: unveil_seo/report/html_report.py
"""unveil_seo.report.html_report: Генерация HTML-отчёта с помощью Jinja2."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from jinja2 import Environment, FileSystemLoader, select_autoescape

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
TEMPLATE_NAME = "anchors.html.j2"


def highlight_segments(text: str, anchors: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Split *text* into plain and anchor segments using ``startIndex``/``endIndex``.

    Overlapping anchors are skipped; anchors may carry an ``options`` list.
    """
    segments: List[Dict[str, Any]] = []
    position = 0
    for anchor in sorted(anchors, key=lambda a: a["startIndex"]):
        start, end = anchor["startIndex"], anchor["endIndex"]
        if start < position or end > len(text):
            continue
        if start > position:
            segments.append({"text": text[position:start], "anchor": None})
        segments.append({"text": text[start:end], "anchor": anchor})
        position = end
    if position < len(text):
        segments.append({"text": text[position:], "anchor": None})
    return segments


def render_html(
    result: Mapping[str, Any],
    template_dir: Union[Path, str, None],
    output_path: Union[Path, str],
    *,
    source_text: Optional[str] = None,
) -> Path:
    """Рендерит HTML-отчёт из шаблона и сохраняет его по указанному пути.

    Args:
        result: словарь с ключами ``candidates`` и/или ``matches``,
            ``stats``, как их отдаёт HTTP API.
        template_dir: директория с Jinja2-шаблонами (``None`` -> встроенные).
        output_path: путь к итоговому HTML-файлу.
        source_text: исходный текст; якоря в нём подсвечиваются.

    Returns:
        Path до сохранённого HTML-файла.
    """
    template_dir = Path(template_dir) if template_dir else TEMPLATE_DIR
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    env = Environment(
        loader=FileSystemLoader(str(template_dir)),
        autoescape=select_autoescape(["html", "xml", "j2"]),
    )
    template = env.get_template(TEMPLATE_NAME)

    matches = list(result.get("matches") or [])
    anchors: List[Dict[str, Any]] = [
        {**m["anchor"], "options": m.get("options", [])} for m in matches
    ] or [dict(c) for c in result.get("candidates") or []]

    context: dict[str, Any] = {
        "segments": highlight_segments(source_text, anchors) if source_text else [],
        "anchors": anchors,
        "stats": result.get("stats") or {},
        "matching": {k: result[k] for k in ("totalCandidates", "totalMatches", "averageScore") if k in result},
    }

    output_path.write_text(template.render(**context), encoding="utf-8")
    return output_path
