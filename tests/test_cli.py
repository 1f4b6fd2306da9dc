# File: tests/test_cli.py
"""Тесты для CLI (`unveil_seo/cli.py`) с использованием click.testing.CliRunner.
Корутины, которые ходят во внешние сервисы, подменяются через monkeypatch.
"""
import json

import pytest
from click.testing import CliRunner

import unveil_seo.cli as cli_module
from unveil_seo.cli import cli
from unveil_seo.errors import NotConfiguredError

ARTICLE = (
    "Le paillage protège le sol du potager. Un bon paillage garde l'humidité en été. "
    "Pour les semis de tomates, préparez un terreau fin et léger."
)

QUIET = ["--log-level", "ERROR"]


@pytest.fixture()
def runner():
    return CliRunner()


@pytest.fixture()
def article(tmp_path):
    path = tmp_path / "article.txt"
    path.write_text(ARTICLE, encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def patch_reports(monkeypatch):
    """Патчим render_json и render_html для предсказуемости."""
    calls = {}

    def fake_json(data, path):
        calls["json"] = data
        return str(path)

    def fake_html(data, tpl, path, source_text=None):
        calls["html"] = (data, source_text)
        return str(path)

    monkeypatch.setattr(cli_module, "render_json", fake_json)
    monkeypatch.setattr(cli_module, "render_html", fake_html)
    return calls


def test_version_option(runner):
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "Unveil SEO, version" in result.output


def test_show_config(runner, tmp_path):
    cfg_file = tmp_path / "config.json"
    cfg_file.write_text(json.dumps({"matching": {"min_similarity": 0.8}, "store": {"backend": "memory"}}))

    result = runner.invoke(cli, [*QUIET, "--config", str(cfg_file), "config"])

    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["matching"]["min_similarity"] == 0.8
    assert data["store"]["backend"] == "memory"


def test_bad_config_is_reported(runner, tmp_path):
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text("matching: [unclosed", encoding="utf-8")
    result = runner.invoke(cli, [*QUIET, "--config", str(cfg_file), "config"])
    assert result.exit_code == 1
    assert "Ошибка загрузки конфигурации" in result.output


# --------------------------------------------------------------------------- #
#                                    crawl                                    #
# --------------------------------------------------------------------------- #


def test_crawl_prints_job(runner, monkeypatch):
    seen = {}

    async def fake_crawl(cfg, request):
        seen["request"] = request
        return {"id": "j1", "status": "completed", "pages_crawled": 3}

    monkeypatch.setattr(cli_module, "run_crawl", fake_crawl)
    result = runner.invoke(cli, [*QUIET, "crawl", "https://example.com", "-n", "25", "-x", "/blog/*", "--force"])

    assert result.exit_code == 0
    assert json.loads(result.output)["pages_crawled"] == 3
    request = seen["request"]
    assert (request.max_pages, request.exclude_patterns, request.force_recrawl) == (25, ["/blog/*"], True)


def test_crawl_failed_job_exits_2(runner, monkeypatch):
    async def fake_crawl(cfg, request):
        return {"id": "j1", "status": "failed", "error_message": "Crawl failed on the crawl service"}

    monkeypatch.setattr(cli_module, "run_crawl", fake_crawl)
    result = runner.invoke(cli, [*QUIET, "crawl", "https://example.com"])
    assert result.exit_code == 2


@pytest.mark.parametrize(
    "args,message",
    [
        (["https://example.com", "--max-pages", "5000"], "Max pages must be between 1 and 1000"),
        (["example.com"], "Некорректные параметры"),
    ],
)
def test_crawl_rejects_bad_arguments(runner, args, message):
    result = runner.invoke(cli, [*QUIET, "crawl", *args])
    assert result.exit_code == 1
    assert message in result.output


def test_crawl_missing_key(runner, monkeypatch):
    async def fake_crawl(cfg, request):
        raise NotConfiguredError("FIRECRAWL_API_KEY")

    monkeypatch.setattr(cli_module, "run_crawl", fake_crawl)
    result = runner.invoke(cli, [*QUIET, "crawl", "https://example.com"])
    assert result.exit_code == 1
    assert "FIRECRAWL_API_KEY not configured" in result.output


# --------------------------------------------------------------------------- #
#                                embed / suggest                              #
# --------------------------------------------------------------------------- #


def test_embed(runner, monkeypatch):
    async def fake_embed(cfg):
        return {"processed": 4, "failed": 0, "skipped": 1}

    monkeypatch.setattr(cli_module, "run_embeddings", fake_embed)
    result = runner.invoke(cli, [*QUIET, "embed"])
    assert result.exit_code == 0
    assert json.loads(result.output) == {"processed": 4, "failed": 0, "skipped": 1}


def test_suggest_caps_max_options(runner, monkeypatch):
    seen = {}

    async def fake_suggest(cfg, anchor_text, max_options):
        seen.update(anchor=anchor_text, max=max_options)
        return [{"url": "https://example.com/paillage", "relevanceScore": 0.93}]

    monkeypatch.setattr(cli_module, "suggest_links", fake_suggest)
    result = runner.invoke(cli, [*QUIET, "suggest", "paillage", "--max", "50"])

    assert result.exit_code == 0
    assert json.loads(result.output)[0]["url"] == "https://example.com/paillage"
    assert seen == {"anchor": "paillage", "max": 10}


def test_suggest_rejects_blank_anchor(runner):
    result = runner.invoke(cli, [*QUIET, "suggest", "   "])
    assert result.exit_code == 1


# --------------------------------------------------------------------------- #
#                                   anchors                                   #
# --------------------------------------------------------------------------- #


def test_anchors_stdout(runner, article):
    result = runner.invoke(cli, [*QUIET, "anchors", str(article)])
    assert result.exit_code == 0
    output = json.loads(result.output)
    assert output["candidates"]
    assert output["stats"]["candidateCount"] == len(output["candidates"])
    assert "matches" not in output


def test_anchors_from_stdin(runner):
    result = runner.invoke(cli, [*QUIET, "anchors", "-"], input=ARTICLE)
    assert result.exit_code == 0
    assert json.loads(result.output)["stats"]["wordCount"] == len(ARTICLE.split())


def test_anchors_with_match(runner, article, monkeypatch):
    async def fake_match(cfg, candidates):
        return {"matches": [], "totalCandidates": len(candidates), "totalMatches": 0, "averageScore": 0.0}

    monkeypatch.setattr(cli_module, "match_candidates", fake_match)
    result = runner.invoke(cli, [*QUIET, "anchors", str(article), "--match"])

    output = json.loads(result.output)
    assert output["totalCandidates"] == len(output["candidates"])


def test_anchors_report_files(runner, article, tmp_path, patch_reports):
    out_json = tmp_path / "anchors.json"
    out_html = tmp_path / "anchors.html"
    result = runner.invoke(cli, [*QUIET, "anchors", str(article), "--json", str(out_json), "--html", str(out_html)])

    assert result.exit_code == 0
    assert f"JSON report: {out_json}" in result.output
    assert f"HTML report: {out_html}" in result.output
    assert patch_reports["json"]["candidates"]
    assert patch_reports["html"][1] == ARTICLE


def test_anchors_report_write_error(runner, article, tmp_path, monkeypatch):
    def broken(data, path):
        raise OSError("disk full")

    monkeypatch.setattr(cli_module, "render_json", broken)
    result = runner.invoke(cli, [*QUIET, "anchors", str(article), "--json", str(tmp_path / "a.json")])
    assert result.exit_code == 1
    assert "disk full" in result.output


# --------------------------------------------------------------------------- #
#                                  check-url                                  #
# --------------------------------------------------------------------------- #


def test_check_url(runner):
    result = runner.invoke(
        cli, [*QUIET, "check-url", "https://example.com/potager", "https://example.com/admin/login"]
    )
    assert result.exit_code == 0
    lines = result.output.splitlines()
    assert lines[0] == "INDEX   https://example.com/potager"
    assert lines[1] == "EXCLUDE https://example.com/admin/login  (Excluded pattern: /admin)"


def test_check_url_meta_description(runner):
    result = runner.invoke(
        cli, [*QUIET, "check-url", "https://example.com/question", "--meta", "Bonjour, quelqu'un peut m'aider ?"]
    )
    assert result.output.startswith("EXCLUDE")
