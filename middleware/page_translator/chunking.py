# Chunk policy for batch translation requests.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional


class ChunkPolicyError(RuntimeError):
    pass


@dataclass(frozen=True)
class ChunkLimits:
    max_items: int
    max_chars: int


# Token-session backend translates phrase by phrase; the chat backend takes one prompt per chunk.
ENGINE_LIMITS: Dict[str, ChunkLimits] = {
    "bing": ChunkLimits(max_items=50, max_chars=5000),
    "ai": ChunkLimits(max_items=500, max_chars=50000),
}


@dataclass
class Chunk:
    texts: List[str] = field(default_factory=list)
    start_index: int = 0

    @property
    def end_index(self) -> int:
        return self.start_index + len(self.texts)

    @property
    def char_count(self) -> int:
        return sum(len(text) for text in self.texts)


class ChunkPolicy:
    def __init__(self, limits: ChunkLimits):
        if limits.max_items <= 0 or limits.max_chars <= 0:
            raise ChunkPolicyError(f"Invalid chunk limits: {limits}")
        self.limits = limits

    def chunk(self, units: List[str]) -> List[Chunk]:
        chunks: List[Chunk] = []
        current = Chunk(start_index=0)
        current_chars = 0

        for index, text in enumerate(units):
            over_count = len(current.texts) >= self.limits.max_items
            over_chars = current_chars + len(text) > self.limits.max_chars
            if (over_count or over_chars) and current.texts:
                chunks.append(current)
                current = Chunk(start_index=index)
                current_chars = 0
            current.texts.append(text)
            current_chars += len(text)

        if current.texts:
            chunks.append(current)
        return chunks


def resolve_limits(
    engine: str, overrides: Optional[Dict[str, Dict[str, int]]] = None
) -> ChunkLimits:
    base = ENGINE_LIMITS.get(engine)
    if base is None:
        raise ChunkPolicyError(f"Unsupported engine: {engine}")
    override = (overrides or {}).get(engine) or {}
    return ChunkLimits(
        max_items=int(override.get("max_items") or base.max_items),
        max_chars=int(override.get("max_chars") or base.max_chars),
    )


def chunk_texts(
    units: List[str],
    engine: str,
    overrides: Optional[Dict[str, Dict[str, int]]] = None,
) -> List[Chunk]:
    return ChunkPolicy(resolve_limits(engine, overrides)).chunk(units)
