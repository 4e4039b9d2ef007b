"""Shared pieces for the extraction handlers: criticality levels and context caps."""
import json
from typing import Any, Literal, Sequence

# Four-level criticality scale used across tickets, alerts and vulnerabilities
Criticality = Literal["Baixa", "Média", "Alta", "Crítica"]
CRITICALITY_LEVELS: tuple[str, ...] = ("Baixa", "Média", "Alta", "Crítica")

MAX_CONTEXT_CHARS = 30_000
MAX_CONTEXT_ITEMS = 50


def cap_items(items: Sequence, limit: int = MAX_CONTEXT_ITEMS) -> list:
    """First *limit* items; oversized context is truncated, never chunked."""
    return list(items)[:max(0, limit)]


def cap_text(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit]


def to_context_json(data: Any, limit: int = MAX_CONTEXT_CHARS) -> str:
    """Serialise *data* for embedding in a prompt, truncated to *limit* characters."""
    return cap_text(json.dumps(data, ensure_ascii=False, default=str), limit)
