# File: tests/test_reports.py
import json

from unveil_seo.report.html_report import highlight_segments, render_html
from unveil_seo.report.json_report import render_json

TEXT = "Le paillage protège le sol <du> potager."

RESULT = {
    "candidates": [
        {"text": "paillage", "startIndex": 3, "endIndex": 11, "contextBefore": "Le",
         "contextAfter": "protège le sol", "score": 4},
    ],
    "stats": {"wordCount": 7, "candidateCount": 1, "linkDensity": 14.29, "averageScore": 4.0},
}


def test_highlight_segments_skips_overlaps():
    anchors = [
        {"startIndex": 3, "endIndex": 11},
        {"startIndex": 5, "endIndex": 9},
        {"startIndex": 35, "endIndex": 99},
    ]
    segments = highlight_segments(TEXT, anchors)
    assert "".join(s["text"] for s in segments) == TEXT
    assert [s["text"] for s in segments if s["anchor"]] == ["paillage"]


def test_render_json(tmp_path):
    out = render_json(RESULT, tmp_path / "nested" / "report.json")
    assert out.exists()
    assert json.loads(out.read_text(encoding="utf-8")) == RESULT


def test_render_html_candidates(tmp_path):
    out = render_html(RESULT, None, tmp_path / "report.html", source_text=TEXT)
    html = out.read_text(encoding="utf-8")
    assert '<mark title="score 4">paillage</mark>' in html
    assert "&lt;du&gt;" in html
    assert "Candidates: 1" in html
    assert "Anchors matched" not in html


def test_render_html_matches(tmp_path):
    result = {
        **RESULT,
        "matches": [
            {
                "anchor": RESULT["candidates"][0],
                "options": [
                    {"url": "https://example.com/paillage", "title": "Pailler son potager",
                     "matchedSection": "Title", "relevanceScore": 0.95},
                ],
            }
        ],
        "totalCandidates": 1,
        "totalMatches": 1,
        "averageScore": 0.95,
    }
    html = render_html(result, None, tmp_path / "report.html").read_text(encoding="utf-8")
    assert '<a href="https://example.com/paillage">Pailler son potager</a> (Title, 0.95)' in html
    assert "Anchors matched: 1 / 1" in html
    assert "Source text" not in html


def test_render_html_custom_template(tmp_path):
    templates = tmp_path / "tpl"
    templates.mkdir()
    (templates / "anchors.html.j2").write_text("{{ anchors | length }} anchors", encoding="utf-8")
    out = render_html(RESULT, templates, tmp_path / "custom.html")
    assert out.read_text(encoding="utf-8") == "1 anchors"
