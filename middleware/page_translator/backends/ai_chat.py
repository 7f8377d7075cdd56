"""Chat-completion style translation client (OpenAI chat, OpenAI responses, Anthropic)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
import asyncio
import codecs
import inspect
import json
import logging
import re

import requests

from page_translator.errors import ConfigError, ParseError, TransportError
from page_translator.utils.line_format import (
    format_items,
    parse_completed_items,
    reconcile_items,
)
from page_translator.utils.log_protocol import emit_warning
from page_translator.utils.request_meta import generate_request_id, sanitize_headers
from page_translator.utils.sse import LineBuffer, extract_stream_delta

logger = logging.getLogger("page_translator.backends.ai_chat")

DEFAULT_TIMEOUT_SECONDS = 120
DEFAULT_MAX_TOKENS = 8192
DEFAULT_TEMPERATURE = 0.3
ANTHROPIC_VERSION = "2023-06-01"

REQUEST_PATHS = {
    "openai-chat": "/chat/completions",
    "openai-response": "/responses",
    "anthropic": "/messages",
}
DEFAULT_MODELS = {
    "openai-chat": "gpt-3.5-turbo",
    "openai-response": "gpt-4",
    "anthropic": "claude-3-sonnet-20240229",
}
LANGUAGE_NAMES = {
    "zh-Hans": "Simplified Chinese",
    "en": "English",
    "ja": "Japanese",
    "ko": "Korean",
    "fr": "French",
    "de": "German",
    "es": "Spanish",
    "ru": "Russian",
}

_VERSION_SUFFIX = re.compile(r"/v\d+$")

PartialCallback = Callable[[List[str], int], Union[None, Awaitable[None]]]


@dataclass
class ChatConfig:
    endpoint: str
    api_key: str
    request_type: str = "openai-chat"
    model: str = ""
    streaming: bool = True
    timeout: int = DEFAULT_TIMEOUT_SECONDS


def normalize_request_type(value: Optional[str]) -> str:
    value = str(value or "").strip()
    return value if value in REQUEST_PATHS else "openai-chat"


def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code, code)


def build_url(endpoint: str, request_type: str) -> str:
    base = endpoint.strip().rstrip("/")
    path = REQUEST_PATHS[request_type]
    if path in base:
        return base
    if _VERSION_SUFFIX.search(base):
        return f"{base}{path}"
    return f"{base}/v1{path}"


def build_headers(config: ChatConfig, request_type: str) -> Dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if request_type == "anthropic":
        headers["x-api-key"] = config.api_key
        headers["anthropic-version"] = ANTHROPIC_VERSION
    else:
        headers["Authorization"] = f"Bearer {config.api_key}"
    if config.streaming:
        headers["Accept"] = "text/event-stream"
        headers["Cache-Control"] = "no-cache"
    return headers


def build_system_prompt(count: int, target_language: str) -> str:
    name = language_name(target_language)
    return (
        f"You are a professional translator. Translate each numbered line into {name}.\n"
        f"The input has {count} lines formatted as 'T<n>: <text>'.\n"
        f"Reply with exactly {count} lines in the same 'T<n>: <translation>' form, "
        "one per input line, in the same order.\n"
        "Do not merge, split, skip or explain lines. Output nothing else."
    )


def build_payload(
    texts: List[str], target_language: str, config: ChatConfig, request_type: str
) -> Dict[str, Any]:
    system_prompt = build_system_prompt(len(texts), target_language)
    user_content = format_items(texts)
    model = config.model.strip() or DEFAULT_MODELS[request_type]
    if request_type == "openai-response":
        return {
            "model": model,
            "instructions": system_prompt,
            "input": user_content,
            "stream": config.streaming,
        }
    if request_type == "anthropic":
        return {
            "model": model,
            "max_tokens": DEFAULT_MAX_TOKENS,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_content}],
            "stream": config.streaming,
        }
    return {
        "model": model,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_content},
        ],
        "temperature": DEFAULT_TEMPERATURE,
        "max_tokens": DEFAULT_MAX_TOKENS,
        "stream": config.streaming,
    }


def _require_text(value: Any) -> str:
    if not isinstance(value, str) or not value:
        raise ParseError("Chat response content is empty or not text")
    return value


def extract_message_text(data: Any, request_type: str) -> str:
    """Full reply text of a non-streaming response body."""
    if not isinstance(data, dict):
        raise ParseError("Chat response is not an object")
    try:
        if request_type == "anthropic":
            return _require_text(data["content"][0]["text"])
        if request_type == "openai-response":
            output_text = data.get("output_text")
            if isinstance(output_text, str) and output_text:
                return output_text
            parts: List[str] = []
            for item in data.get("output") or []:
                for content in (item or {}).get("content") or []:
                    text = (content or {}).get("text")
                    if isinstance(text, str):
                        parts.append(text)
            if parts:
                return _require_text("".join(parts))
            raise KeyError("output")
        return _require_text(data["choices"][0]["message"]["content"])
    except (KeyError, IndexError, TypeError) as exc:
        raise ParseError("Chat response missing content") from exc


async def _notify(callback: Optional[PartialCallback], items: List[str], start: int) -> None:
    if callback is None:
        return
    result = callback(items, start)
    if inspect.isawaitable(result):
        await result


class AIChatTranslator:
    def __init__(self, session: Optional[requests.Session] = None):
        self._session = session or requests.Session()

    async def translate(
        self,
        texts: List[str],
        target_language: str,
        config: ChatConfig,
        on_partial: Optional[PartialCallback] = None,
    ) -> List[str]:
        if not texts:
            return []
        if not config.endpoint.strip() or not config.api_key.strip():
            raise ConfigError("AI translation requires endpoint and API key")

        request_type = normalize_request_type(config.request_type)
        url = build_url(config.endpoint, request_type)
        headers = build_headers(config, request_type)
        payload = build_payload(texts, target_language, config, request_type)
        request_id = generate_request_id()
        logger.debug(
            "[%s] POST %s (%s, %d items, stream=%s) headers=%s",
            request_id,
            url,
            request_type,
            len(texts),
            config.streaming,
            sanitize_headers(headers),
        )

        resp = await self._send(url, headers, payload, config)
        try:
            if resp.status_code < 200 or resp.status_code >= 300:
                body = (resp.text or "").strip()
                raise TransportError(
                    f"AI HTTP {resp.status_code}: {body[:200]}",
                    status_code=resp.status_code,
                    url=url,
                    response_text=body,
                )
            if config.streaming:
                full_text = await self._read_stream(resp, request_type, on_partial)
            else:
                try:
                    data = resp.json()
                except ValueError as exc:
                    raise ParseError(
                        "AI response is not JSON",
                        error_type="invalid_json",
                        status_code=resp.status_code,
                        url=url,
                        response_text=(resp.text or "").strip(),
                    ) from exc
                full_text = extract_message_text(data, request_type)
        finally:
            close = getattr(resp, "close", None)
            if callable(close):
                close()

        reconciled = reconcile_items(full_text, texts)
        if reconciled.mismatch:
            message = (
                f"AI returned {reconciled.parsed_count} items for {reconciled.expected_count}"
                f"{' (loose parse)' if reconciled.used_loose else ''}; padded with source text"
            )
            logger.warning("[%s] %s", request_id, message)
            emit_warning(
                message,
                warn_type="count_mismatch",
                expected=reconciled.expected_count,
                actual=reconciled.parsed_count,
            )
        return reconciled.items

    async def _send(
        self, url: str, headers: Dict[str, str], payload: Dict[str, Any], config: ChatConfig
    ) -> requests.Response:
        try:
            return await asyncio.to_thread(
                self._session.post,
                url,
                headers=headers,
                data=json.dumps(payload, ensure_ascii=False).encode("utf-8"),
                timeout=config.timeout,
                stream=config.streaming,
            )
        except requests.Timeout as exc:
            raise TransportError(
                f"AI request timeout: {exc}", error_type="timeout", url=url
            ) from exc
        except requests.RequestException as exc:
            raise TransportError(
                f"AI request failed: {exc}", error_type="network_error", url=url
            ) from exc

    async def _read_stream(
        self,
        resp: requests.Response,
        request_type: str,
        on_partial: Optional[PartialCallback],
    ) -> str:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        buffer = LineBuffer()
        accumulated = ""
        emitted = 0
        chunks = resp.iter_content(chunk_size=None)

        async def consume(lines: List[str]) -> None:
            nonlocal accumulated, emitted
            for line in lines:
                delta = extract_stream_delta(line, request_type)
                if not delta:
                    continue
                accumulated += delta
                completed = parse_completed_items(accumulated)
                if len(completed) > emitted:
                    fresh = completed[emitted:]
                    start = emitted
                    emitted = len(completed)
                    await _notify(on_partial, fresh, start)

        while True:
            try:
                piece = await asyncio.to_thread(next, chunks, None)
            except requests.RequestException as exc:
                raise TransportError(
                    f"AI stream interrupted: {exc}", error_type="network_error"
                ) from exc
            if piece is None:
                break
            if isinstance(piece, bytes):
                piece = decoder.decode(piece)
            await consume(buffer.feed(piece))

        await consume(buffer.feed(decoder.decode(b"", final=True)) + buffer.flush())
        return accumulated
