"""Unified batch translation boundary shared by the page pipeline and the HTTP API.

Every call answers ``{"ok": True, "translations": [...]}`` or
``{"ok": False, "message": ...}``; exceptions never cross this boundary.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
import logging

from page_translator.backends.ai_chat import (
    DEFAULT_TIMEOUT_SECONDS as AI_TIMEOUT_SECONDS,
    AIChatTranslator,
    ChatConfig,
    PartialCallback,
)
from page_translator.backends.bing import BingTranslator
from page_translator.errors import (
    ConfigError,
    CountMismatchError,
    TranslationError,
    describe_error,
)
from page_translator.settings import parse_bool_flag, parse_timeout_seconds
from page_translator.utils.request_meta import generate_request_id

logger = logging.getLogger("page_translator.bridge")


def _failure(message: str, error_type: Optional[str] = None) -> Dict[str, Any]:
    result: Dict[str, Any] = {"ok": False, "message": message}
    if error_type:
        result["errorType"] = error_type
    return result


def _texts_of(payload: Dict[str, Any]) -> List[str]:
    raw = payload.get("texts")
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigError("texts must be a list")
    return [str(item) if item is not None else "" for item in raw]


def _check_count(texts: List[str], translations: List[str]) -> None:
    if len(translations) != len(texts):
        raise CountMismatchError(
            f"Translation count mismatch: expected {len(texts)}, got {len(translations)}",
            expected=len(texts),
            actual=len(translations),
        )


class TranslationBridge:
    def __init__(
        self,
        bing: Optional[BingTranslator] = None,
        chat: Optional[AIChatTranslator] = None,
    ):
        self.bing = bing or BingTranslator()
        self.chat = chat or AIChatTranslator()

    async def translate_text_batch(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Token-session batch: ``{engine, texts, targetLanguage}``."""
        request_id = generate_request_id()
        try:
            engine = str(payload.get("engine") or "bing").strip()
            if engine != "bing":
                raise ConfigError(f"Unsupported translation engine: {engine}")
            texts = _texts_of(payload)
            if not texts:
                return {"ok": True, "translations": []}
            if any(not text.strip() for text in texts):
                return _failure("Source text cannot be empty", "invalid_input")
            target = str(payload.get("targetLanguage") or "").strip()
            if not target:
                return _failure("Missing target language", "invalid_input")

            translations = await self.bing.translate_texts(texts, target)
            _check_count(texts, translations)
            return {"ok": True, "translations": translations}
        except TranslationError as exc:
            logger.warning("[%s] Bing batch failed: %s", request_id, describe_error(exc))
            return _failure(describe_error(exc), exc.error_type)

    async def translate_text_ai(
        self,
        payload: Dict[str, Any],
        on_progress: Optional[PartialCallback] = None,
    ) -> Dict[str, Any]:
        """Chat batch: ``{texts, targetLanguage, endpoint, apiKey, requestType, model, streaming}``."""
        request_id = generate_request_id()
        try:
            texts = _texts_of(payload)
            if not texts:
                return {"ok": True, "translations": []}
            target = str(payload.get("targetLanguage") or "").strip()
            if not target:
                return _failure("Missing target language", "invalid_input")
            config = ChatConfig(
                endpoint=str(payload.get("endpoint") or "").strip(),
                api_key=str(payload.get("apiKey") or "").strip(),
                request_type=str(payload.get("requestType") or "openai-chat"),
                model=str(payload.get("model") or ""),
                streaming=parse_bool_flag(payload.get("streaming", False)),
                timeout=parse_timeout_seconds(payload.get("timeout")) or AI_TIMEOUT_SECONDS,
            )
            if not config.endpoint or not config.api_key:
                raise ConfigError("AI translation requires endpoint and API key")

            translations = await self.chat.translate(texts, target, config, on_progress)
            _check_count(texts, translations)
            return {"ok": True, "translations": translations}
        except TranslationError as exc:
            logger.warning("[%s] AI batch failed: %s", request_id, describe_error(exc))
            return _failure(describe_error(exc), exc.error_type)
