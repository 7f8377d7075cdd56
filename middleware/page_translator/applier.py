"""Incremental application of translations onto a document, and exact restore."""

from __future__ import annotations

from typing import Any, Dict, List
import logging

from page_translator.document.base import DocumentTree, TextHandle
from page_translator.extraction import (
    NodeBinding,
    is_fresh_text,
    normalize_text,
    source_text,
)

logger = logging.getLogger("page_translator.applier")

REPLACE = "replace"
BILINGUAL = "bilingual"


def _apply_one(
    document: DocumentTree,
    handle: TextHandle,
    translation: str,
    mode: str,
    index: int | None,
) -> bool:
    if mode == BILINGUAL:
        if not document.is_attached(handle) or document.in_overlay(handle):
            return False
        original = source_text(document, handle)
        document.create_overlay(handle, original, translation, index)
        document.ensure_style()
        return True

    if not document.is_attached(handle):
        return False
    # Stash exactly once; later passes must not capture translated text.
    if document.get_stash(handle) is None:
        document.set_stash(handle, document.get_text(handle))
    document.set_text(handle, translation)
    return True


def apply_translations(
    document: DocumentTree,
    bindings: List[NodeBinding],
    translations: List[str],
    mode: str = REPLACE,
    start_index: int = 0,
) -> int:
    """Apply unit translations to bound nodes, leaving indices below ``start_index`` alone.

    ``translations`` is indexed by unit index. Returns the number of nodes written.
    """
    applied = 0
    existing: Dict[int, List[Any]] = {}
    if mode == BILINGUAL:
        for overlay in document.overlays():
            overlay_index = document.overlay_index(overlay)
            if overlay_index is not None:
                existing.setdefault(overlay_index, []).append(overlay)

    for binding in bindings:
        index = binding.index
        if index < start_index or index >= len(translations):
            continue
        translation = translations[index]
        if not translation:
            continue
        if index in existing:
            # Overlays already rendered for this unit are rewritten, never duplicated.
            for overlay in existing.pop(index):
                document.set_overlay_translation(overlay, translation)
                applied += 1
            continue
        if _apply_one(document, binding.handle, translation, mode, index):
            applied += 1
    return applied


def apply_by_text(
    document: DocumentTree,
    sources: List[str],
    translations: List[str],
    mode: str = REPLACE,
) -> int:
    """Apply to fresh nodes whose normalized text equals a source string."""
    lookup: Dict[str, str] = {}
    for source, translation in zip(sources, translations):
        if translation:
            lookup[source] = translation
    if not lookup:
        return 0

    applied = 0
    for root in document.iter_roots():
        try:
            handles = document.traverse(lambda h: is_fresh_text(document, h), root=root)
        except Exception as exc:
            logger.debug("Skipping unreadable root: %s", exc)
            continue
        for handle in handles:
            translation = lookup.get(normalize_text(document.get_text(handle)))
            if translation and _apply_one(document, handle, translation, mode, None):
                applied += 1
    return applied


def restore_document(document: DocumentTree, bindings: List[NodeBinding]) -> int:
    """Undo every replacement and overlay. Safe when nothing was applied."""
    restored = 0
    handles: Dict[int, TextHandle] = {}
    for binding in bindings:
        handles[id(binding.handle)] = binding.handle
    for root in document.iter_roots():
        try:
            for handle in document.traverse(root=root):
                handles.setdefault(id(handle), handle)
        except Exception as exc:
            logger.debug("Skipping unreadable root: %s", exc)

    for handle in handles.values():
        stash = document.get_stash(handle)
        if stash is None:
            continue
        if document.is_attached(handle):
            document.set_text(handle, stash)
            restored += 1
        document.clear_stash(handle)

    for overlay in document.overlays():
        document.unwrap_overlay(overlay)
        restored += 1

    document.remove_style()
    return restored
