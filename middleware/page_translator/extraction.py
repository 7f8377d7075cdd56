"""Text extraction and indexing over a document tree."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set
import logging
import re

from page_translator.document.base import DocumentTree, TextHandle

logger = logging.getLogger("page_translator.extraction")

MAX_TEXT_LENGTH = 4000
_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: Optional[str]) -> str:
    return _WHITESPACE.sub(" ", text or "").strip()


@dataclass
class NodeBinding:
    handle: TextHandle
    index: int


@dataclass
class ExtractionResult:
    units: List[str] = field(default_factory=list)
    bindings: List[NodeBinding] = field(default_factory=list)

    @property
    def indexes(self) -> List[int]:
        return [binding.index for binding in self.bindings]


def source_text(document: DocumentTree, handle: TextHandle) -> str:
    """Original text of a node: its stash when present, else its live text."""
    stash = document.get_stash(handle)
    return stash if stash is not None else document.get_text(handle)


def _accept(normalized: str) -> bool:
    return bool(normalized) and len(normalized) <= MAX_TEXT_LENGTH


def extract_text_units(document: DocumentTree) -> ExtractionResult:
    """Collect distinct normalized strings in first-seen order plus node bindings.

    Overlays left by an earlier bilingual pass are first turned back into plain
    source text so their content is indexed once, as source.
    """
    for overlay in document.overlays():
        document.unwrap_overlay(overlay)

    result = ExtractionResult()
    text_map: Dict[str, int] = {}

    def accept(handle: TextHandle) -> bool:
        if document.is_excluded(handle):
            return False
        return _accept(normalize_text(source_text(document, handle)))

    for root in document.iter_roots():
        try:
            handles = document.traverse(accept, root=root)
        except Exception as exc:
            logger.debug("Skipping unreadable root: %s", exc)
            continue
        for handle in handles:
            normalized = normalize_text(source_text(document, handle))
            index = text_map.get(normalized)
            if index is None:
                index = len(result.units)
                result.units.append(normalized)
                text_map[normalized] = index
            result.bindings.append(NodeBinding(handle=handle, index=index))

    return result


def is_fresh_text(document: DocumentTree, handle: TextHandle) -> bool:
    """Text that was never translated: no stash and not inside an overlay."""
    if document.is_excluded(handle) or document.in_overlay(handle):
        return False
    if document.get_stash(handle) is not None:
        return False
    return _accept(normalize_text(document.get_text(handle)))


def collect_new_texts(
    document: DocumentTree,
    limit: int = 100,
    skip: Optional[Set[str]] = None,
) -> List[str]:
    texts: List[str] = []
    seen: Set[str] = set(skip or ())
    for root in document.iter_roots():
        try:
            handles = document.traverse(lambda h: is_fresh_text(document, h), root=root)
        except Exception as exc:
            logger.debug("Skipping unreadable root: %s", exc)
            continue
        for handle in handles:
            normalized = normalize_text(document.get_text(handle))
            if normalized in seen:
                continue
            seen.add(normalized)
            texts.append(normalized)
            if len(texts) >= limit:
                return texts
    return texts
