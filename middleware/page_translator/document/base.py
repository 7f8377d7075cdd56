"""Document tree interface used by the translation pipeline.

The pipeline never touches a concrete tree API. Adapters expose text nodes as
opaque handles that stay valid while the node's text is rewritten, plus the
few structural primitives the pipeline needs (stash, overlay, style).
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, List, Optional


class TextHandle:
    """Stable reference to one text node of a document."""

    __slots__ = ("node",)

    def __init__(self, node: Any):
        self.node = node

    def __repr__(self) -> str:
        return f"TextHandle({str(self.node)[:40]!r})"


class DocumentTree:
    url: str = ""

    def iter_roots(self) -> Iterable[Any]:
        """Main root first, then reachable sub-roots (shadow trees, same-origin frames)."""
        raise NotImplementedError

    def traverse(
        self,
        predicate: Optional[Callable[[TextHandle], bool]] = None,
        root: Any = None,
    ) -> List[TextHandle]:
        raise NotImplementedError

    def get_text(self, handle: TextHandle) -> str:
        raise NotImplementedError

    def set_text(self, handle: TextHandle, value: str) -> None:
        raise NotImplementedError

    def is_attached(self, handle: TextHandle) -> bool:
        raise NotImplementedError

    def is_excluded(self, handle: TextHandle) -> bool:
        """True for text under control elements, hidden subtrees and edit regions."""
        raise NotImplementedError

    # -- stash (original text kept on the node itself) --

    def get_stash(self, handle: TextHandle) -> Optional[str]:
        raise NotImplementedError

    def set_stash(self, handle: TextHandle, value: str) -> None:
        raise NotImplementedError

    def clear_stash(self, handle: TextHandle) -> None:
        raise NotImplementedError

    # -- bilingual overlays --

    def in_overlay(self, handle: TextHandle) -> bool:
        raise NotImplementedError

    def create_overlay(
        self, handle: TextHandle, source: str, translation: str, index: Optional[int]
    ) -> Any:
        """Swap ``handle``'s node for an overlay showing source and translation."""
        raise NotImplementedError

    def overlays(self) -> List[Any]:
        raise NotImplementedError

    def overlay_index(self, overlay: Any) -> Optional[int]:
        raise NotImplementedError

    def overlay_source(self, overlay: Any) -> str:
        raise NotImplementedError

    def set_overlay_translation(self, overlay: Any, translation: str) -> None:
        raise NotImplementedError

    def unwrap_overlay(self, overlay: Any) -> TextHandle:
        """Replace an overlay with a plain text node holding its source."""
        raise NotImplementedError

    # -- injected styling --

    def ensure_style(self) -> None:
        raise NotImplementedError

    def remove_style(self) -> None:
        raise NotImplementedError
