# File: unveil_seo/embeddings/encoding.py
"""String encoding of embedding vectors as stored in the ``pages.embedding`` column.

Vectors travel as JSON arrays (``"[0.1,0.2,...]"``), the literal format the
vector column accepts. ``repr``-based float serialisation makes the round
trip exact.

``UNEMBEDDABLE_SENTINEL`` marks pages that have no text to embed, so the
"needs embedding" selection (``embedding IS NULL``) never returns them again.
"""
from __future__ import annotations

import json
from typing import List, Optional, Sequence

__all__: Sequence[str] = (
    "UNEMBEDDABLE_SENTINEL",
    "embedding_to_string",
    "embedding_from_string",
    "is_sentinel",
)

UNEMBEDDABLE_SENTINEL = "[]"


def embedding_to_string(vector: Sequence[float]) -> str:
    return json.dumps([float(x) for x in vector], separators=(",", ":"))


def embedding_from_string(value: Optional[str]) -> List[float]:
    """Decode a stored embedding; ``None`` and the sentinel give an empty list.

    Raises ``ValueError`` on anything that is not a JSON array of numbers.
    """
    if value is None:
        return []
    if isinstance(value, list):
        return [float(x) for x in value]
    try:
        data = json.loads(value)
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid embedding literal: {value[:40]!r}") from exc
    if not isinstance(data, list) or not all(isinstance(x, (int, float)) and not isinstance(x, bool) for x in data):
        raise ValueError("embedding must be a JSON array of numbers")
    return [float(x) for x in data]


def is_sentinel(value: Optional[str]) -> bool:
    return isinstance(value, str) and value.strip() == UNEMBEDDABLE_SENTINEL
