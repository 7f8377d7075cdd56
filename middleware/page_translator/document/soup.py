"""BeautifulSoup-backed document adapter."""

from __future__ import annotations

from typing import Any, Callable, Iterable, List, Optional, Tuple
import logging
import re

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

from .base import DocumentTree, TextHandle

logger = logging.getLogger("page_translator.document")

EXCLUDED_TAGS = frozenset(
    {"script", "style", "noscript", "textarea", "input", "select", "option", "template"}
)

WRAPPER_ATTR = "data-pt-translation-wrapper"
SOURCE_ATTR = "data-pt-source"
INDEX_ATTR = "data-pt-translation-index"
SOURCE_LINE_ATTR = "data-pt-source-line"
TARGET_LINE_ATTR = "data-pt-target-line"
STYLE_ID = "__page-translator-style"

STYLE_TEXT = "".join(
    [
        f'[{WRAPPER_ATTR}="1"]{{display:inline-block;vertical-align:baseline;line-height:1.4;}}',
        f'[{SOURCE_LINE_ATTR}="1"]{{display:block;opacity:.82;}}',
        f'[{TARGET_LINE_ATTR}="1"]{{display:block;font-weight:600;margin-top:2px;}}',
    ]
)

_STASH_ATTR = "_pt_original_text"
_HANDLE_ATTR = "_pt_handle"
_HIDDEN_STYLE = re.compile(r"(display\s*:\s*none|visibility\s*:\s*hidden)", re.I)


def _is_text_node(node: Any) -> bool:
    # Comments, CDATA, doctypes are PreformattedString subclasses.
    return isinstance(node, NavigableString) and not isinstance(node, PreformattedString)


def _is_shadow_template(tag: Tag) -> bool:
    return tag.name == "template" and (
        tag.has_attr("shadowrootmode") or tag.has_attr("shadowroot")
    )


class SoupDocument(DocumentTree):
    def __init__(self, soup: BeautifulSoup, url: str = ""):
        self.soup = soup
        self.url = url
        self._frames: List[Tuple[Tag, BeautifulSoup]] = []
        self._frames_loaded = False

    @classmethod
    def from_html(cls, html: str, url: str = "") -> "SoupDocument":
        return cls(BeautifulSoup(html, "html.parser"), url=url)

    def serialize(self) -> str:
        for iframe, frame_soup in self._frames:
            iframe["srcdoc"] = str(frame_soup)
        return str(self.soup)

    # -- roots --

    def _main_root(self, soup: BeautifulSoup) -> Tag:
        return soup.body or soup

    def _frame_soup(self, iframe: Tag) -> BeautifulSoup:
        srcdoc = iframe.get("srcdoc")
        if srcdoc is None:
            # Only inline documents are reachable; a src= frame is a foreign browsing context.
            raise PermissionError(f"frame not accessible: {iframe.get('src') or '<empty>'}")
        return BeautifulSoup(str(srcdoc), "html.parser")

    def _load_frames(self) -> None:
        if self._frames_loaded:
            return
        self._frames_loaded = True
        for iframe in self.soup.find_all("iframe"):
            try:
                self._frames.append((iframe, self._frame_soup(iframe)))
            except Exception as exc:
                logger.debug("Skipping frame: %s", exc)

    def _soups(self) -> List[BeautifulSoup]:
        self._load_frames()
        return [self.soup] + [frame for _, frame in self._frames]

    def iter_roots(self) -> Iterable[Any]:
        for soup in self._soups():
            yield self._main_root(soup)
            try:
                shadow_roots = [t for t in soup.find_all("template") if _is_shadow_template(t)]
            except Exception as exc:
                logger.debug("Skipping shadow roots: %s", exc)
                continue
            for template in shadow_roots:
                yield template

    # -- traversal --

    def _handle_for(self, node: NavigableString) -> TextHandle:
        handle = getattr(node, _HANDLE_ATTR, None)
        if handle is None:
            handle = TextHandle(node)
            setattr(node, _HANDLE_ATTR, handle)
        return handle

    def _iter_text_nodes(self, root: Any) -> Iterable[NavigableString]:
        stack = list(reversed(list(getattr(root, "contents", []))))
        while stack:
            node = stack.pop()
            if isinstance(node, Tag):
                # Templates and frames are separate roots.
                if node.name in {"template", "iframe"}:
                    continue
                stack.extend(reversed(list(node.contents)))
            elif _is_text_node(node):
                yield node

    def traverse(
        self,
        predicate: Optional[Callable[[TextHandle], bool]] = None,
        root: Any = None,
    ) -> List[TextHandle]:
        roots = [root] if root is not None else list(self.iter_roots())
        handles: List[TextHandle] = []
        for current in roots:
            for node in self._iter_text_nodes(current):
                handle = self._handle_for(node)
                if predicate is None or predicate(handle):
                    handles.append(handle)
        return handles

    def get_text(self, handle: TextHandle) -> str:
        return str(handle.node)

    def set_text(self, handle: TextHandle, value: str) -> None:
        old = handle.node
        new = NavigableString(value)
        stash = getattr(old, _STASH_ATTR, None)
        if stash is not None:
            setattr(new, _STASH_ATTR, stash)
        setattr(new, _HANDLE_ATTR, handle)
        if old.parent is not None:
            old.replace_with(new)
        handle.node = new

    def is_attached(self, handle: TextHandle) -> bool:
        return handle.node.parent is not None

    def is_excluded(self, handle: TextHandle) -> bool:
        parent = handle.node.parent
        if parent is None:
            return True
        for tag in [parent, *parent.parents]:
            if not isinstance(tag, Tag) or isinstance(tag, BeautifulSoup):
                break
            if _is_shadow_template(tag):
                break
            if tag.name in EXCLUDED_TAGS:
                return True
            editable = tag.get("contenteditable")
            if editable is not None and str(editable).strip().lower() in {"", "true"}:
                return True
            if tag.has_attr("hidden"):
                return True
            style = tag.get("style")
            if style and _HIDDEN_STYLE.search(str(style)):
                return True
        return False

    # -- stash --

    def get_stash(self, handle: TextHandle) -> Optional[str]:
        value = getattr(handle.node, _STASH_ATTR, None)
        return value if isinstance(value, str) else None

    def set_stash(self, handle: TextHandle, value: str) -> None:
        setattr(handle.node, _STASH_ATTR, value)

    def clear_stash(self, handle: TextHandle) -> None:
        if _STASH_ATTR in handle.node.__dict__:
            delattr(handle.node, _STASH_ATTR)

    # -- overlays --

    def _owner(self, node: Any) -> BeautifulSoup:
        for parent in getattr(node, "parents", []):
            if isinstance(parent, BeautifulSoup):
                return parent
        return self.soup

    def in_overlay(self, handle: TextHandle) -> bool:
        parent = handle.node.parent
        if parent is None:
            return False
        for tag in [parent, *parent.parents]:
            if isinstance(tag, Tag) and tag.get(WRAPPER_ATTR) == "1":
                return True
        return False

    def create_overlay(
        self, handle: TextHandle, source: str, translation: str, index: Optional[int]
    ) -> Tag:
        soup = self._owner(handle.node)
        wrapper = soup.new_tag("span")
        wrapper[WRAPPER_ATTR] = "1"
        wrapper[SOURCE_ATTR] = source
        if index is not None:
            wrapper[INDEX_ATTR] = str(index)

        source_line = soup.new_tag("span")
        source_line[SOURCE_LINE_ATTR] = "1"
        source_line.string = source

        target_line = soup.new_tag("span")
        target_line[TARGET_LINE_ATTR] = "1"
        target_line.string = translation

        wrapper.append(source_line)
        wrapper.append(target_line)
        handle.node.replace_with(wrapper)
        return wrapper

    def overlays(self) -> List[Tag]:
        found: List[Tag] = []
        for soup in self._soups():
            found.extend(soup.find_all(attrs={WRAPPER_ATTR: "1"}))
        return found

    def overlay_index(self, overlay: Tag) -> Optional[int]:
        raw = overlay.get(INDEX_ATTR)
        if raw is None:
            return None
        try:
            return int(raw)
        except (TypeError, ValueError):
            return None

    def overlay_source(self, overlay: Tag) -> str:
        return str(overlay.get(SOURCE_ATTR) or "")

    def set_overlay_translation(self, overlay: Tag, translation: str) -> None:
        target_line = overlay.find(attrs={TARGET_LINE_ATTR: "1"})
        if target_line is not None:
            target_line.string = translation

    def unwrap_overlay(self, overlay: Tag) -> TextHandle:
        node = NavigableString(self.overlay_source(overlay))
        overlay.replace_with(node)
        return self._handle_for(node)

    # -- style --

    def ensure_style(self) -> None:
        for soup in self._soups():
            if soup.find(id=STYLE_ID) is not None:
                continue
            style = soup.new_tag("style", id=STYLE_ID)
            style.string = STYLE_TEXT
            (soup.head or soup).append(style)

    def remove_style(self) -> None:
        for soup in self._soups():
            style = soup.find(id=STYLE_ID)
            if style is not None:
                style.decompose()
