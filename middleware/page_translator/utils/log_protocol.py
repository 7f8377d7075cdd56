"""JSON line protocol for the embedding host.

Emits structured events on stdout that the host UI parses.
Protocol prefixes:
  JSON_TRANSLATION_PROGRESS: – incremental translations for one page
  JSON_TRANSLATION_FINISHED: – end of a translation run
  JSON_WARNING:              – recoverable anomalies (count mismatch, ...)
  JSON_ERROR:                – run failures shown to the user
"""

from __future__ import annotations

import json
import sys
import threading
from typing import Any, Dict, List, Optional

_stdout_lock = threading.Lock()


def emit(prefix: str, data: Dict[str, Any]) -> None:
    """Thread-safe JSON event emission."""
    with _stdout_lock:
        sys.stdout.write(f"\n{prefix}:{json.dumps(data, ensure_ascii=False)}\n")
        sys.stdout.flush()


def emit_translation_progress(
    *,
    page_id: str,
    translations: List[str],
    start_index: int,
    total: int,
    incremental: bool = True,
) -> None:
    emit("JSON_TRANSLATION_PROGRESS", {
        "pageId": page_id,
        "translations": list(translations),
        "incremental": incremental,
        "startIndex": start_index,
        "total": total,
    })


def emit_translation_finished(
    *,
    page_id: str,
    ok: bool,
    translated: int = 0,
    applied: int = 0,
    message: Optional[str] = None,
) -> None:
    payload: Dict[str, Any] = {
        "pageId": page_id,
        "ok": ok,
        "translated": translated,
        "applied": applied,
    }
    if message:
        payload["message"] = message
    emit("JSON_TRANSLATION_FINISHED", payload)


def emit_warning(message: str, warn_type: str = "quality", **extra: Any) -> None:
    """Emit JSON_WARNING for recoverable anomalies."""
    payload: Dict[str, Any] = {"type": warn_type, "message": message}
    payload.update(extra)
    emit("JSON_WARNING", payload)


def emit_error(message: str, title: str = "Page Translation Error") -> None:
    """Emit JSON_ERROR for failures shown to the user."""
    emit("JSON_ERROR", {
        "title": title,
        "message": message,
    })


def emit_chunk_progress(*, page_id: str, current: int, total: int) -> None:
    emit("JSON_TRANSLATION_PROGRESS", {
        "pageId": page_id,
        "status": "translating",
        "current": current,
        "total": total,
    })
