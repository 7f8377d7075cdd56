"""Numbered-line convention used to batch many items into one chat prompt."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List
import re

ITEM_LABEL = "T"

_STRICT_LINE_PATTERN = re.compile(rf"^{ITEM_LABEL}(?P<id>\d+):\s?(?P<text>.*)$")
# Tolerates spacing, full-width colons and items glued onto one line.
_LOOSE_ITEM_PATTERN = re.compile(
    rf"{ITEM_LABEL}\s*(?P<id>\d+)\s*[:：]\s*(?P<text>[\s\S]*?)"
    rf"(?=\s*{ITEM_LABEL}\s*\d+\s*[:：]|\Z)"
)
_THINK_PATTERN = re.compile(r"<think>.*?(?:</think>|$)", re.IGNORECASE | re.DOTALL)
_CODE_FENCE_PATTERN = re.compile(r"```(?:text|txt)?\s*([\s\S]*?)(?:```|$)", re.IGNORECASE)


@dataclass
class ReconciledItems:
    items: List[str]
    parsed_count: int
    expected_count: int
    used_loose: bool = False

    @property
    def mismatch(self) -> bool:
        return self.parsed_count != self.expected_count


def format_items(texts: List[str]) -> str:
    return "\n".join(f"{ITEM_LABEL}{i + 1}: {text}" for i, text in enumerate(texts))


def _clean(text: str) -> str:
    cleaned = _THINK_PATTERN.sub("", text or "")
    match = _CODE_FENCE_PATTERN.search(cleaned)
    if match:
        cleaned = match.group(1)
    return cleaned


def parse_items_strict(text: str) -> List[str]:
    items: List[str] = []
    for raw in _clean(text).split("\n"):
        match = _STRICT_LINE_PATTERN.match(raw.strip())
        if match:
            items.append(match.group("text").strip())
    return items


def parse_items_loose(text: str) -> List[str]:
    return [
        " ".join(match.group("text").split())
        for match in _LOOSE_ITEM_PATTERN.finditer(_clean(text))
    ]


def parse_completed_items(text: str) -> List[str]:
    """Items on lines already terminated by a newline; the trailing fragment may still grow."""
    cut = text.rfind("\n")
    if cut < 0:
        return []
    return parse_items_strict(text[:cut])


def reconcile_items(text: str, sources: List[str]) -> ReconciledItems:
    expected = len(sources)
    items = parse_items_strict(text)
    used_loose = False
    if len(items) != expected:
        loose = parse_items_loose(text)
        if len(loose) == expected or (len(items) < expected and len(loose) > len(items)):
            items = loose
            used_loose = True
    parsed_count = len(items)
    items = items[:expected]
    if len(items) < expected:
        # Missing tail items fall back to their source text.
        items = items + list(sources[len(items):])
    return ReconciledItems(
        items=items,
        parsed_count=parsed_count,
        expected_count=expected,
        used_loose=used_loose,
    )
