"""Fixed-interval rescan that translates content inserted after a completed run."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Optional, Set
import asyncio
import logging

from page_translator.applier import apply_by_text
from page_translator.chunking import chunk_texts
from page_translator.document.base import DocumentTree
from page_translator.extraction import collect_new_texts
from page_translator.settings import TranslationSettings

logger = logging.getLogger("page_translator.watcher")

WATCH_INTERVAL_SECONDS = 2.0
MAX_UNITS_PER_TICK = 100

BatchTranslate = Callable[[List[str], TranslationSettings], Awaitable[Dict[str, Any]]]


class DynamicContentWatcher:
    def __init__(
        self,
        document: DocumentTree,
        translate_batch: BatchTranslate,
        settings: TranslationSettings,
        url: str = "",
        interval: float = WATCH_INTERVAL_SECONDS,
        max_units: int = MAX_UNITS_PER_TICK,
        current_url: Optional[Callable[[], str]] = None,
    ):
        self.document = document
        self.translate_batch = translate_batch
        self.settings = settings
        self.url = url
        self.interval = interval
        self.max_units = max_units
        self._current_url = current_url
        self._attempted: Set[str] = set()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    def _navigated(self) -> bool:
        return self._current_url is not None and self._current_url() != self.url

    async def tick(self) -> int:
        texts = collect_new_texts(self.document, limit=self.max_units, skip=self._attempted)
        if not texts:
            return 0
        applied = 0
        for chunk in chunk_texts(texts, self.settings.engine, self.settings.chunk_limits):
            result = await self.translate_batch(chunk.texts, self.settings)
            if self._navigated():
                return applied
            if not result.get("ok"):
                logger.debug("Dynamic chunk failed: %s", result.get("message"))
                continue
            # Answered items are not resent; failed chunks are retried next tick.
            self._attempted.update(chunk.texts)
            applied += apply_by_text(
                self.document,
                chunk.texts,
                list(result.get("translations") or []),
                self.settings.display_mode,
            )
        if applied:
            logger.info("Dynamic content: applied %d new nodes", applied)
        return applied

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if self._navigated():
                logger.debug("Page navigated, watcher exits")
                return
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.debug("Watcher tick failed: %s", exc)
