# File: tests/test_config.py
import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from unveil_seo.config import AppConfig, Secrets, config_overrides, load_config
from unveil_seo.errors import NotConfiguredError


def write_file(tmp_path: Path, content: str, suffix: str) -> Path:
    path = tmp_path / f"config{suffix}"
    path.write_text(content, encoding="utf-8")
    return path


@pytest.mark.parametrize(
    "content,suffix,expect_exc",
    [
        ("crawl:\n  default_max_pages: 25\n", ".yaml", None),
        (json.dumps({"crawl": {"default_max_pages": 25}}), ".json", None),
        ("crawl:\n  unknown_option: 1\n", ".yaml", ValidationError),
        ("::invalid yaml: [", ".yaml", ValueError),
        ("- just\n- a list\n", ".yaml", TypeError),
        ("crawl = 1", ".toml", ValueError),
    ],
)
def test_load_config_variants(tmp_path, content, suffix, expect_exc):
    cfg_path = write_file(tmp_path, content, suffix)
    if expect_exc:
        with pytest.raises(expect_exc):
            load_config(cfg_path)
    else:
        cfg = load_config(cfg_path)
        assert isinstance(cfg, AppConfig)
        assert cfg.crawl.default_max_pages == 25
        # untouched sections keep their defaults
        assert cfg.matching.min_similarity == 0.7


def test_load_config_default_missing_uses_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    cfg = load_config(None)
    assert cfg == AppConfig()


def test_load_config_default_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "configs").mkdir()
    (tmp_path / "configs" / "default.yaml").write_text("server:\n  port: 9000\n", encoding="utf-8")
    assert load_config(None).server.port == 9000


def test_explicit_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_shipped_default_yaml_is_valid():
    shipped = Path(__file__).resolve().parents[1] / "configs" / "default.yaml"
    cfg = load_config(shipped)
    assert cfg == AppConfig()


def test_default_max_pages_cannot_exceed_limit():
    with pytest.raises(ValidationError):
        AppConfig(crawl={"default_max_pages": 50, "max_pages_limit": 10})


def test_section_bonuses_must_be_ordered():
    with pytest.raises(ValidationError):
        AppConfig(matching={"bonuses": {"title": 0.05, "h1": 0.10, "meta": 0.15}})


def test_site_patterns_are_lowercased():
    cfg = AppConfig(filters={"site_specific_patterns": ["Forum", " ", "TAGS"]})
    assert cfg.filters.site_specific_patterns == ["forum", "tags"]


def test_config_overrides_validates():
    cfg = config_overrides(AppConfig(), {"crawl": {"poll_interval": 0}})
    assert cfg.crawl.poll_interval == 0
    with pytest.raises(ValidationError):
        config_overrides(AppConfig(), {"server": {"port": 0}})


def test_secrets_read_at_call_time():
    env = {"OPENAI_API_KEY": "  sk-test  ", "FIRECRAWL_API_KEY": ""}
    secrets = Secrets(env)
    assert secrets.require(Secrets.OPENAI_API_KEY) == "sk-test"
    assert secrets.get(Secrets.FIRECRAWL_API_KEY) is None
    with pytest.raises(NotConfiguredError) as exc_info:
        secrets.require(Secrets.FIRECRAWL_API_KEY)
    assert exc_info.value.message == "FIRECRAWL_API_KEY not configured"
    env["FIRECRAWL_API_KEY"] = "fc-key"
    assert secrets.require(Secrets.FIRECRAWL_API_KEY) == "fc-key"
