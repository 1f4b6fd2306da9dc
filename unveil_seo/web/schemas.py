# File: unveil_seo/web/schemas.py
"""Request bodies of the HTTP API (camelCase on the wire)."""
from __future__ import annotations

from typing import Any, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from unveil_seo.errors import InvalidRequestError
from unveil_seo.filters.blocks import FilterBlock
from unveil_seo.linking.anchors import AnchorCandidate

__all__: Sequence[str] = (
    "parse_body",
    "TextRequest",
    "CandidatesRequest",
    "SuggestionRequest",
    "UrlCheckRequest",
    "RawPageUpdate",
    "RawPagesPatch",
    "FiltersRequest",
    "NewSessionRequest",
)

M = TypeVar("M", bound=BaseModel)


def _messages(exc: ValidationError) -> List[str]:
    out = []
    for err in exc.errors():
        msg = str(err.get("msg", "invalid value"))
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "__root__")
        out.append(f"{loc}: {msg}" if loc else msg)
    return out


def parse_body(model: Type[M], data: Any) -> M:
    """Validate *data* into *model*; failures become a 400 with field messages."""
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        messages = _messages(exc)
        raise InvalidRequestError(messages[0], details=messages) from exc


class _Body(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TextRequest(_Body):
    text: str
    match: bool = False
    min_similarity: Optional[float] = Field(None, ge=0, le=1, alias="minSimilarity")
    max_options: Optional[int] = Field(None, ge=1, alias="maxOptionsPerAnchor")

    @field_validator("text")
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Text cannot be empty")
        return v


class CandidateBody(_Body):
    text: str = Field(..., min_length=1)
    start_index: int = Field(0, ge=0, alias="startIndex")
    end_index: int = Field(0, ge=0, alias="endIndex")
    context_before: str = Field("", alias="contextBefore")
    context_after: str = Field("", alias="contextAfter")
    score: int = 1

    def to_candidate(self) -> AnchorCandidate:
        return AnchorCandidate(
            text=self.text,
            start_index=self.start_index,
            end_index=self.end_index or self.start_index + len(self.text),
            context_before=self.context_before,
            context_after=self.context_after,
            score=self.score,
        )


class CandidatesRequest(_Body):
    """Either ready-made candidates or a text to extract them from."""

    candidates: Optional[List[CandidateBody]] = None
    text: Optional[str] = None
    min_similarity: Optional[float] = Field(None, ge=0, le=1, alias="minSimilarity")
    max_options: Optional[int] = Field(None, ge=1, alias="maxOptionsPerAnchor")


class SuggestionRequest(_Body):
    anchor_text: str = Field(..., alias="anchorText")
    max_suggestions: int = Field(5, ge=1, alias="maxSuggestions")
    min_similarity: Optional[float] = Field(None, ge=0, le=1, alias="minSimilarity")

    @field_validator("anchor_text")
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Invalid anchor text - must be a non-empty string")
        return v


class UrlCheckRequest(_Body):
    url: Optional[str] = None
    urls: Optional[List[str]] = None
    meta_description: Optional[str] = Field(None, alias="metaDescription")


class RawPageUpdate(_Body):
    id: Any
    excluded: bool
    reason: Optional[str] = None


class RawPagesPatch(_Body):
    page_updates: List[RawPageUpdate] = Field(..., alias="pageUpdates")


class FiltersRequest(_Body):
    blocks: List[FilterBlock] = Field(default_factory=list)
    presets: List[str] = Field(default_factory=list)


class NewSessionRequest(_Body):
    domain: str
    client: Optional[str] = None
    start_crawl: bool = Field(False, alias="startCrawl")
    max_pages: Optional[int] = Field(None, ge=1, alias="maxPages")
