"""Incremental parsing of SSE / newline-delimited streaming bodies."""

from __future__ import annotations

from typing import Any, List, Optional
import json

DONE_MARKER = "[DONE]"


class LineBuffer:
    """Splits streamed text into complete lines, holding back the unterminated tail."""

    def __init__(self) -> None:
        self._pending = ""

    def feed(self, text: str) -> List[str]:
        if not text:
            return []
        self._pending += text
        lines = self._pending.split("\n")
        self._pending = lines.pop()
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> List[str]:
        pending, self._pending = self._pending, ""
        return [pending.rstrip("\r")] if pending.strip() else []


def _payload_of(line: str) -> Optional[str]:
    trimmed = (line or "").strip()
    if not trimmed or trimmed.startswith(":"):
        return None
    if trimmed.startswith("data:"):
        trimmed = trimmed[5:].strip()
    elif not trimmed.startswith("{"):
        # event:, id:, retry: fields carry no content
        return None
    if not trimmed or trimmed == DONE_MARKER:
        return None
    return trimmed


def extract_stream_delta(line: str, request_type: str) -> Optional[str]:
    """Text delta carried by one stream line, or None."""
    payload = _payload_of(line)
    if payload is None:
        return None
    try:
        data: Any = json.loads(payload)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    if request_type == "anthropic":
        if data.get("type") == "content_block_delta":
            text = (data.get("delta") or {}).get("text")
            return text if isinstance(text, str) and text else None
        return None

    if request_type == "openai-response":
        if data.get("type") == "response.output_text.delta":
            delta = data.get("delta")
            return delta if isinstance(delta, str) and delta else None
        return None

    choices = data.get("choices")
    if isinstance(choices, list) and choices:
        first = choices[0] if isinstance(choices[0], dict) else {}
        content = (first.get("delta") or {}).get("content")
        return content if isinstance(content, str) and content else None
    # Newline-delimited chat bodies put the fragment under message.content.
    message = data.get("message")
    if isinstance(message, dict):
        content = message.get("content")
        return content if isinstance(content, str) and content else None
    return None
