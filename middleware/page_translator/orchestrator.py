"""Per-page translation runs: guards, chunked dispatch, streaming apply, restore."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
import hashlib
import logging
import time

from page_translator.applier import apply_translations, restore_document
from page_translator.bridge import TranslationBridge
from page_translator.chunking import Chunk, chunk_texts
from page_translator.document.base import DocumentTree
from page_translator.errors import (
    ConfigError,
    StaleRunError,
    TranslationError,
    describe_error,
)
from page_translator.extraction import NodeBinding, extract_text_units
from page_translator.settings import (
    ENGINES,
    SettingsStore,
    TranslationSettings,
    get_settings,
    save_settings,
)
from page_translator.utils import log_protocol
from page_translator.watcher import DynamicContentWatcher

logger = logging.getLogger("page_translator.orchestrator")

COOLDOWN_SECONDS = 4.0

EventListener = Callable[[str, Dict[str, Any]], None]


@dataclass
class PageHandle:
    page_id: str
    document: DocumentTree
    url: str = ""


@dataclass
class RunState:
    request_id: int = 0
    last_signature: Optional[str] = None
    last_request_at: float = 0.0
    completed_signature: Optional[str] = None
    is_translating: bool = False
    units: List[str] = field(default_factory=list)
    bindings: List[NodeBinding] = field(default_factory=list)
    watcher: Optional[DynamicContentWatcher] = None


def run_signature(url: str, settings: TranslationSettings) -> str:
    raw = "|".join([url, settings.engine, settings.target_language, settings.display_mode])
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


def _is_navigable(url: str) -> bool:
    lowered = (url or "").strip().lower()
    return lowered.startswith("http://") or lowered.startswith("https://")


def _skipped(reason: str, message: Optional[str] = None) -> Dict[str, Any]:
    result: Dict[str, Any] = {"ok": False, "skipped": reason}
    if message:
        result["message"] = message
    return result


class TranslationOrchestrator:
    def __init__(
        self,
        store: SettingsStore,
        bridge: Optional[TranslationBridge] = None,
        clock: Callable[[], float] = time.monotonic,
        on_event: Optional[EventListener] = None,
        watcher_interval: Optional[float] = None,
    ):
        self.store = store
        self.bridge = bridge or TranslationBridge()
        self.clock = clock
        self.on_event = on_event
        self.watcher_interval = watcher_interval
        self._states: Dict[str, RunState] = {}

    # -- settings --

    def get_settings(self) -> TranslationSettings:
        return get_settings(self.store)

    def save_settings(self, partial: Dict[str, Any]) -> TranslationSettings:
        return save_settings(self.store, partial)

    # -- state --

    def state_for(self, page: PageHandle) -> RunState:
        state = self._states.get(page.page_id)
        if state is None:
            state = RunState()
            self._states[page.page_id] = state
        return state

    def _event(self, kind: str, payload: Dict[str, Any]) -> None:
        if self.on_event is not None:
            try:
                self.on_event(kind, payload)
            except Exception as exc:
                logger.debug("Event listener failed: %s", exc)

    def _stop_watcher(self, state: RunState) -> None:
        if state.watcher is not None:
            state.watcher.stop()
            state.watcher = None

    def _reset(self, state: RunState) -> None:
        self._stop_watcher(state)
        state.request_id += 1
        state.units = []
        state.bindings = []
        state.completed_signature = None

    # -- dispatch --

    async def _translate_chunk(
        self,
        texts: List[str],
        settings: TranslationSettings,
        on_partial=None,
    ) -> Dict[str, Any]:
        if settings.engine == "ai":
            payload = {
                "texts": texts,
                "targetLanguage": settings.target_language,
                "endpoint": settings.endpoint,
                "apiKey": settings.api_key,
                "requestType": settings.request_type,
                "model": settings.model,
                "streaming": settings.streaming,
                "timeout": settings.timeout,
            }
            return await self.bridge.translate_text_ai(payload, on_partial)
        return await self.bridge.translate_text_batch(
            {"engine": settings.engine, "texts": texts, "targetLanguage": settings.target_language}
        )

    async def _translate_plain(
        self, texts: List[str], settings: TranslationSettings
    ) -> Dict[str, Any]:
        return await self._translate_chunk(texts, settings.with_overrides(streaming=False))

    # -- runs --

    async def translate_webview(
        self, page: PageHandle, force: bool = False, notify: bool = True
    ) -> Dict[str, Any]:
        """Translate one page. Never raises; always answers an ``ok`` dict."""
        settings = self.get_settings()
        state = self.state_for(page)

        if not settings.enabled and not force:
            return _skipped("disabled")
        try:
            if settings.engine not in ENGINES:
                raise ConfigError(f"Unsupported translation engine: {settings.engine}")
            if settings.engine == "ai" and not settings.has_ai_credentials():
                raise ConfigError("AI translation requires endpoint and API key")
        except ConfigError as exc:
            message = describe_error(exc)
            logger.info("Translation skipped for %s: %s", page.page_id, message)
            if notify:
                log_protocol.emit_error(message, title="Translation Not Configured")
            reason = "missing_credentials" if settings.engine == "ai" else "invalid_config"
            return _skipped(reason, message)

        url = page.url
        if not _is_navigable(url):
            return _skipped("unsupported_url")

        signature = run_signature(url, settings)
        now = self.clock()
        if (
            not force
            and state.last_signature == signature
            and now - state.last_request_at < COOLDOWN_SECONDS
        ):
            return _skipped("cooldown")
        if state.is_translating:
            return _skipped("busy")
        if not force and state.completed_signature == signature:
            return _skipped("already_translated")

        state.is_translating = True
        state.request_id += 1
        request_id = state.request_id
        state.last_signature = signature
        state.last_request_at = now
        try:
            result = await self._run(page, state, settings, request_id, url)
        except StaleRunError:
            logger.debug("Run %d for %s superseded", request_id, page.page_id)
            return {"ok": False, "stale": True}
        except Exception as exc:
            message = describe_error(exc)
            logger.warning("Translation failed for %s: %s", page.page_id, message)
            if notify:
                log_protocol.emit_error(message, title="Translation Failed")
            self._finished(page, ok=False, message=message)
            return {"ok": False, "message": message}
        finally:
            state.is_translating = False

        state.completed_signature = signature
        if settings.dynamic_enabled:
            self._start_watcher(page, state, settings)
        self._finished(
            page, ok=True, translated=result["translated"], applied=result["applied"]
        )
        return result

    def _check_fresh(self, page: PageHandle, state: RunState, request_id: int, url: str) -> None:
        if state.request_id != request_id or page.url != url:
            raise StaleRunError("Translation run superseded")

    def _is_fresh(self, page: PageHandle, state: RunState, request_id: int, url: str) -> bool:
        return state.request_id == request_id and page.url == url

    async def _run(
        self,
        page: PageHandle,
        state: RunState,
        settings: TranslationSettings,
        request_id: int,
        url: str,
    ) -> Dict[str, Any]:
        self._stop_watcher(state)
        extraction = extract_text_units(page.document)
        state.units = extraction.units
        state.bindings = extraction.bindings
        units = extraction.units
        if not units:
            return {"ok": True, "translated": 0, "applied": 0}

        chunks = chunk_texts(units, settings.engine, settings.chunk_limits)
        translations: List[str] = [""] * len(units)
        applied = 0
        logger.info(
            "Translating %s: %d units in %d chunks via %s",
            page.page_id,
            len(units),
            len(chunks),
            settings.engine,
        )

        for position, chunk in enumerate(chunks):
            self._check_fresh(page, state, request_id, url)
            log_protocol.emit_chunk_progress(
                page_id=page.page_id, current=position + 1, total=len(chunks)
            )
            applied += await self._run_chunk(
                page, state, settings, request_id, url, chunk, translations
            )

        return {"ok": True, "translated": len(units), "applied": applied}

    async def _run_chunk(
        self,
        page: PageHandle,
        state: RunState,
        settings: TranslationSettings,
        request_id: int,
        url: str,
        chunk: Chunk,
        translations: List[str],
    ) -> int:
        applied_upto = chunk.start_index
        applied = 0

        def on_partial(items: List[str], start: int) -> None:
            nonlocal applied_upto, applied
            if not self._is_fresh(page, state, request_id, url):
                return
            base = chunk.start_index + start
            for offset, text in enumerate(items):
                if base + offset < chunk.end_index:
                    translations[base + offset] = text
            upto = min(base + len(items), chunk.end_index)
            applied += apply_translations(
                page.document,
                state.bindings,
                translations[:upto],
                settings.display_mode,
                start_index=applied_upto,
            )
            applied_upto = max(applied_upto, upto)
            self._progress(page, translations[base:upto], base, len(translations))

        result = await self._translate_chunk(chunk.texts, settings, on_partial)
        # Before finalizing
        self._check_fresh(page, state, request_id, url)
        if not result.get("ok"):
            raise TranslationError(str(result.get("message") or "Translation failed"))

        final = list(result.get("translations") or [])
        translations[chunk.start_index:chunk.end_index] = final
        # Before final application
        self._check_fresh(page, state, request_id, url)
        applied += apply_translations(
            page.document,
            state.bindings,
            translations[:chunk.end_index],
            settings.display_mode,
            start_index=applied_upto,
        )
        if applied_upto < chunk.end_index:
            self._progress(
                page,
                translations[applied_upto:chunk.end_index],
                applied_upto,
                len(translations),
            )
        return applied

    def _progress(
        self, page: PageHandle, items: List[str], start_index: int, total: int
    ) -> None:
        payload = {
            "translations": list(items),
            "incremental": True,
            "startIndex": start_index,
            "total": total,
        }
        log_protocol.emit_translation_progress(
            page_id=page.page_id, translations=items, start_index=start_index, total=total
        )
        self._event("progress", payload)

    def _finished(
        self,
        page: PageHandle,
        ok: bool,
        translated: int = 0,
        applied: int = 0,
        message: Optional[str] = None,
    ) -> None:
        log_protocol.emit_translation_finished(
            page_id=page.page_id,
            ok=ok,
            translated=translated,
            applied=applied,
            message=message,
        )
        payload: Dict[str, Any] = {"ok": ok, "translated": translated, "applied": applied}
        if message:
            payload["message"] = message
        self._event("finished", payload)

    def _start_watcher(
        self, page: PageHandle, state: RunState, settings: TranslationSettings
    ) -> None:
        self._stop_watcher(state)
        kwargs: Dict[str, Any] = {}
        if self.watcher_interval is not None:
            kwargs["interval"] = self.watcher_interval
        watcher = DynamicContentWatcher(
            page.document,
            self._translate_plain,
            settings,
            url=page.url,
            current_url=lambda: page.url,
            **kwargs,
        )
        watcher.start()
        state.watcher = watcher

    # -- restore / cancel / navigation --

    def restore_original_text(self, page: PageHandle) -> Dict[str, Any]:
        state = self.state_for(page)
        bindings = state.bindings
        self._reset(state)
        try:
            restored = restore_document(page.document, bindings)
        except Exception as exc:
            logger.warning("Restore failed for %s: %s", page.page_id, exc)
            return {"ok": False, "message": describe_error(exc)}
        return {"ok": True, "restored": restored}

    def cancel_translation(self, page: PageHandle) -> Dict[str, Any]:
        state = self.state_for(page)
        was_running = state.is_translating
        state.request_id += 1
        return {"ok": True, "cancelled": was_running}

    def on_page_navigated(
        self, page: PageHandle, url: str, document: Optional[DocumentTree] = None
    ) -> bool:
        """Drop page state for a new URL. True when the caller should retranslate."""
        state = self.state_for(page)
        was_translated = state.completed_signature is not None
        self._reset(state)
        page.url = url
        if document is not None:
            page.document = document
        settings = self.get_settings()
        return was_translated and settings.enabled and settings.auto_retranslate

    def stop(self) -> None:
        for state in self._states.values():
            self._stop_watcher(state)
