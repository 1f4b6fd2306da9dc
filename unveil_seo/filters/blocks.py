# File: unveil_seo/filters/blocks.py
"""
Блоки фильтров для ручной модерации сырых страниц сессии краулинга.

Критерий (FilterCriterion) проверяет одно поле страницы одним оператором.
Блок (FilterBlock) совпадает со страницей, если совпал ЛЮБОЙ из его критериев.
Страница исключается, если совпал хотя бы один активный блок.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

__all__: Sequence[str] = (
    "FilterCriterion",
    "FilterBlock",
    "FILTER_PRESETS",
    "get_preset",
    "evaluate_criterion",
    "block_matches",
    "apply_blocks",
)

FilterField = Literal["url", "title", "meta_description", "content_length", "status_code"]
FilterOperator = Literal[
    "contains",
    "not_contains",
    "is_empty",
    "is_not_empty",
    "equals",
    "not_equals",
    "greater_than",
    "less_than",
    "is_one_of",
]

_TEXT_FIELDS = ("url", "title", "meta_description")


class FilterCriterion(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    field: FilterField
    operator: FilterOperator
    value: str = ""
    label: str = ""

    def describe(self) -> str:
        return self.label or f"{self.field} {self.operator.replace('_', ' ')} {self.value}".strip()


class FilterBlock(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    name: str
    criteria: List[FilterCriterion] = Field(default_factory=list)


FILTER_PRESETS: Dict[str, FilterBlock] = {
    "admin-pages": FilterBlock(
        id="admin-pages",
        name="Admin Pages",
        criteria=[FilterCriterion(field="url", operator="contains", value="/admin/", label="URL contains /admin/")],
    ),
    "error-pages": FilterBlock(
        id="error-pages",
        name="Error Pages",
        criteria=[
            FilterCriterion(
                field="status_code",
                operator="is_one_of",
                value="404,500,502,503",
                label="Status code is one of 404, 500, 502, 503",
            )
        ],
    ),
    "short-content": FilterBlock(
        id="short-content",
        name="Short Content",
        criteria=[
            FilterCriterion(
                field="content_length", operator="less_than", value="100", label="Content length is less than 100"
            )
        ],
    ),
    "missing-seo": FilterBlock(
        id="missing-seo",
        name="Missing SEO",
        criteria=[FilterCriterion(field="title", operator="is_empty", label="Title is empty")],
    ),
}


def get_preset(preset_id: str) -> Optional[FilterBlock]:
    return FILTER_PRESETS.get(preset_id)


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _text_match(text: str, operator: str, value: str) -> bool:
    if operator == "contains":
        return value.lower() in text.lower()
    if operator == "not_contains":
        return value.lower() not in text.lower()
    if operator == "is_empty":
        return not text.strip()
    if operator == "is_not_empty":
        return bool(text.strip())
    return False


def _content_length_match(length: int, operator: str, value: str) -> bool:
    if operator == "is_empty":
        return length == 0
    number = _to_int(value)
    if number is None:
        return False
    if operator == "equals":
        return length == number
    if operator == "not_equals":
        return length != number
    if operator == "greater_than":
        return length > number
    if operator == "less_than":
        return length < number
    return False


def _status_code_match(status: Optional[int], operator: str, value: str) -> bool:
    if operator == "is_empty":
        return not status
    if operator == "equals":
        return status == _to_int(value)
    if operator == "not_equals":
        return status != _to_int(value)
    if operator == "is_one_of":
        for code in value.split(","):
            code = code.strip().lower()
            if code == "null":
                if not status:
                    return True
            elif status is not None and status == _to_int(code):
                return True
        return False
    return False


def evaluate_criterion(page: Mapping[str, Any], criterion: FilterCriterion) -> bool:
    """True when *page* (raw page row) satisfies *criterion*."""
    if criterion.field in _TEXT_FIELDS:
        return _text_match(page.get(criterion.field) or "", criterion.operator, criterion.value)
    if criterion.field == "content_length":
        return _content_length_match(len(page.get("content") or ""), criterion.operator, criterion.value)
    if criterion.field == "status_code":
        return _status_code_match(_to_int(page.get("status_code")), criterion.operator, criterion.value)
    return False


def block_matches(page: Mapping[str, Any], block: FilterBlock) -> bool:
    return any(evaluate_criterion(page, c) for c in block.criteria)


def apply_blocks(pages: Iterable[Mapping[str, Any]], blocks: Sequence[FilterBlock]) -> Dict[Any, str]:
    """Map page id -> name of the first block that excludes it."""
    excluded: Dict[Any, str] = {}
    for page in pages:
        for block in blocks:
            if block_matches(page, block):
                excluded[page["id"]] = block.name
                break
    return excluded
