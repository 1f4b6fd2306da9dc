# === FILE: unveil_seo/config.py ===
"""
Модуль для загрузки и валидации конфигурации Unveil SEO.
Используется Pydantic для описания схемы и проверки данных.

Секреты (ключи API, учётные данные администратора) в файл конфигурации
не попадают: они читаются из окружения в момент запроса через :class:`Secrets`.
"""
from __future__ import annotations

import errno
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    ValidationError,
    field_validator,
    model_validator,
)

from unveil_seo.errors import NotConfiguredError


class CrawlSettings(BaseModel):
    """Параметры конвейера краулинга и опроса внешнего краулера."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    default_max_pages: int = Field(10, ge=1, description="Лимит страниц, если клиент его не передал.")
    max_pages_limit: int = Field(1000, ge=1, description="Верхняя граница max_pages.")
    poll_interval: float = Field(5.0, ge=0, description="Пауза между опросами статуса (секунд).")
    max_poll_attempts: int = Field(120, ge=1, description="Потолок числа опросов (120 x 5 с = 10 минут).")
    stuck_poll_threshold: int = Field(2, ge=1, description="Сколько опросов подряд число страниц может не меняться.")
    max_poll_errors: int = Field(3, ge=0, description="Допустимое число ошибок опроса подряд.")
    page_delay: float = Field(0.1, ge=0, description="Пауза между сохранением страниц (секунд).")
    apply_url_filter: bool = Field(True, description="Отбрасывать URL по правилам фильтра перед индексацией.")
    wait_for_ms: int = Field(1000, ge=0, description="Ожидание рендеринга страницы у краулера (мс).")

    @model_validator(mode="after")
    def _check_limits(self) -> CrawlSettings:
        if self.default_max_pages > self.max_pages_limit:
            raise ValueError("default_max_pages must not exceed max_pages_limit")
        return self


class EmbeddingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    model: str = Field("text-embedding-3-small", min_length=1)
    dimensions: int = Field(1536, ge=1)
    batch_size: int = Field(200, ge=1, description="Размер выборки страниц без эмбеддинга.")
    max_concurrent: int = Field(20, ge=1, description="Одновременных запросов к API эмбеддингов.")
    chunk_delay: float = Field(0.2, ge=0)
    batch_delay: float = Field(0.5, ge=0)
    retry_delay: float = Field(2.0, ge=0, description="Пауза перед повтором после HTTP 429.")


class SectionBonuses(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    title: float = Field(0.15, ge=0)
    h1: float = Field(0.10, ge=0)
    meta: float = Field(0.05, ge=0)

    @model_validator(mode="after")
    def _check_order(self) -> SectionBonuses:
        if not self.title > self.h1 > self.meta:
            raise ValueError("section bonuses must satisfy title > h1 > meta")
        return self


class MatchingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    min_similarity: float = Field(0.7, ge=0, le=1)
    max_options: int = Field(3, ge=1, description="Вариантов на один якорь при пакетном подборе.")
    max_suggestions: int = Field(10, ge=1, description="Потолок вариантов для одиночного якоря.")
    relaxed_floor: float = Field(0.5, ge=0, le=1)
    relaxed_margin: float = Field(0.2, ge=0, le=1)
    search_limit_cap: int = Field(20, ge=1)
    search_timeout: float = Field(8.0, gt=0)
    candidate_delay: float = Field(0.1, ge=0)
    bonuses: SectionBonuses = Field(default_factory=SectionBonuses)


class FilterSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    site_specific_patterns: List[str] = Field(default_factory=lambda: ["forum", "tags"])
    max_path_depth: int = Field(6, ge=1)
    long_numeric_id: int = Field(6, ge=1, description="Числовой сегмент длиннее этого считается ID.")

    @field_validator("site_specific_patterns", mode="before")
    def _lower_patterns(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [str(p).lower() for p in v if str(p).strip()]
        return v


class ServiceSettings(BaseModel):
    """Адреса внешних сервисов и параметры HTTP-клиента."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    firecrawl_url: HttpUrl = Field("https://api.firecrawl.dev", validate_default=True, description="Базовый URL API краулера.")
    timeout: float = Field(30.0, gt=0, description="Таймаут на один запрос (секунд).")
    retry_times: int = Field(3, ge=0, description="Число повторных попыток при 5xx/429.")
    user_agent: str = Field("UnveilSEO/1.0", min_length=1)

    @field_validator("firecrawl_url", mode="before")
    def _strip_trailing_slash(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.rstrip("/")
        return v


class StoreSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    backend: Literal["supabase", "memory"] = "supabase"


class ServerSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    host: str = "127.0.0.1"
    port: int = Field(8080, ge=1, le=65535)
    max_text_length: int = Field(10_000, ge=1)
    max_anchor_length: int = Field(200, ge=1)


class AppConfig(BaseModel):
    """Полная конфигурация приложения."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    crawl: CrawlSettings = Field(default_factory=CrawlSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    filters: FilterSettings = Field(default_factory=FilterSettings)
    services: ServiceSettings = Field(default_factory=ServiceSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)


class Secrets:
    """Read-at-request-time view over the process environment."""

    FIRECRAWL_API_KEY = "FIRECRAWL_API_KEY"
    OPENAI_API_KEY = "OPENAI_API_KEY"
    SUPABASE_URL = "SUPABASE_URL"
    SUPABASE_SERVICE_ROLE_KEY = "SUPABASE_SERVICE_ROLE_KEY"
    ADMIN_USERNAME = "ADMIN_USERNAME"
    ADMIN_PASSWORD = "ADMIN_PASSWORD"

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        self._environ = environ

    @property
    def environ(self) -> Mapping[str, str]:
        return os.environ if self._environ is None else self._environ

    def get(self, name: str) -> Optional[str]:
        value = self.environ.get(name, "").strip()
        return value or None

    def require(self, name: str) -> str:
        value = self.get(name)
        if value is None:
            raise NotConfiguredError(name)
        return value


_DEFAULT_CFG = Path("configs/default.yaml")


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Неправильный YAML в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень YAML должен быть mapping, получено {type(data).__name__}")
    return data


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8")) or {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"Неправильный JSON в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень JSON должен быть mapping, получено {type(data).__name__}")
    return data


def load_config(path: Union[str, Path, None] = None) -> AppConfig:
    """
    Читает YAML или JSON и возвращает проверенный объект AppConfig.

    Без пути берётся ``configs/default.yaml``, а если его нет, значения по
    умолчанию. Явно указанный, но отсутствующий файл даёт FileNotFoundError.
    """
    if path is None:
        if not _DEFAULT_CFG.exists():
            return AppConfig()
        path_obj = _DEFAULT_CFG
    else:
        path_obj = Path(path).expanduser().resolve()
        if not path_obj.is_file():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path_obj))

    suffix = path_obj.suffix.lower()
    if suffix in (".yaml", ".yml"):
        data = _read_yaml(path_obj)
    elif suffix == ".json":
        data = _read_json(path_obj)
    else:
        raise ValueError(f"Неподдерживаемый формат конфига: {suffix}")

    return AppConfig(**data)


def config_overrides(config: AppConfig, updates: Dict[str, Dict[str, Any]]) -> AppConfig:
    """Return a copy of *config* with per-section field updates applied and validated."""
    data = config.model_dump(mode="json")
    for section, fields in updates.items():
        data.setdefault(section, {}).update(fields)
    return AppConfig.model_validate(data)


__all__ = [
    "AppConfig",
    "CrawlSettings",
    "EmbeddingSettings",
    "MatchingSettings",
    "SectionBonuses",
    "FilterSettings",
    "ServiceSettings",
    "StoreSettings",
    "ServerSettings",
    "Secrets",
    "ValidationError",
    "load_config",
    "config_overrides",
]
