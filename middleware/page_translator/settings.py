"""Translation settings: YAML-backed store and immutable run snapshots."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional
import logging
import os
import threading

import yaml

logger = logging.getLogger("page_translator.settings")

SETTINGS_ENV = "PAGE_TRANSLATOR_SETTINGS"

ENGINES = ("bing", "ai")
DISPLAY_MODES = ("replace", "bilingual")
REQUEST_TYPES = ("openai-chat", "openai-response", "anthropic")

DEFAULTS: Dict[str, Any] = {
    "translation.enabled": True,
    "translation.engine": "bing",
    "translation.targetLanguage": "zh-Hans",
    "translation.displayMode": "replace",
    "translation.streaming": True,
    "translation.dynamicEnabled": True,
    "translation.autoRetranslate": True,
    "translation.ai.endpoint": "",
    "translation.ai.apiKey": "",
    "translation.ai.requestType": "openai-chat",
    "translation.ai.model": "",
    "translation.ai.timeout": None,
}

# Snapshot field -> store key
_FIELD_KEYS = {
    "enabled": "translation.enabled",
    "engine": "translation.engine",
    "target_language": "translation.targetLanguage",
    "display_mode": "translation.displayMode",
    "streaming": "translation.streaming",
    "dynamic_enabled": "translation.dynamicEnabled",
    "auto_retranslate": "translation.autoRetranslate",
    "endpoint": "translation.ai.endpoint",
    "api_key": "translation.ai.apiKey",
    "request_type": "translation.ai.requestType",
    "model": "translation.ai.model",
    "timeout": "translation.ai.timeout",
}


def parse_bool_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    normalized = str(value or "").strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off", ""}:
        return False
    return bool(value)


def parse_timeout_seconds(value: Any) -> Optional[int]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        parsed = int(float(text))
    except (ValueError, TypeError):
        return None
    return parsed if parsed > 0 else None


@dataclass(frozen=True)
class TranslationSettings:
    """Immutable snapshot taken at the start of a run."""

    enabled: bool = True
    engine: str = "bing"
    target_language: str = "zh-Hans"
    display_mode: str = "replace"
    streaming: bool = True
    dynamic_enabled: bool = True
    auto_retranslate: bool = True
    endpoint: str = ""
    api_key: str = ""
    request_type: str = "openai-chat"
    model: str = ""
    timeout: Optional[int] = None
    chunk_limits: Dict[str, Dict[str, int]] = field(default_factory=dict, compare=False)

    def with_overrides(self, **changes: Any) -> "TranslationSettings":
        return replace(self, **changes)

    def has_ai_credentials(self) -> bool:
        return bool(self.endpoint.strip() and self.api_key.strip())


class SettingsStore:
    """Dotted-key settings persisted as a nested YAML mapping.

    With ``path=None`` the store is memory-only (useful for embedding and tests).
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._lock = threading.Lock()
        self._data: Dict[str, Any] = {}
        if path and os.path.exists(path):
            self._data = self._load(path)

    @classmethod
    def from_env(cls, path: Optional[str] = None) -> "SettingsStore":
        return cls(path or os.environ.get(SETTINGS_ENV) or None)

    @staticmethod
    def _load(path: str) -> Dict[str, Any]:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Invalid settings YAML: {path}")
        return data

    def _save(self) -> None:
        if not self.path:
            return
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self._data, f, sort_keys=False, allow_unicode=True)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            current: Any = self._data
            for part in key.split("."):
                if not isinstance(current, dict) or part not in current:
                    return default
                current = current[part]
            return current

    def set(self, key: str, value: Any) -> None:
        parts = [part for part in key.split(".") if part]
        if not parts:
            raise ValueError("settings key must not be empty")
        with self._lock:
            current = self._data
            for part in parts[:-1]:
                child = current.get(part)
                if not isinstance(child, dict):
                    child = {}
                    current[part] = child
                current = child
            current[parts[-1]] = value
            self._save()


def _choice(store: SettingsStore, key: str, allowed: tuple) -> str:
    default = DEFAULTS[key]
    value = str(store.get(key, default) or "").strip()
    if value not in allowed:
        if value:
            logger.warning("Invalid setting %s=%r, fallback to %s", key, value, default)
        return default
    return value


def _chunk_limits(store: SettingsStore) -> Dict[str, Dict[str, int]]:
    limits: Dict[str, Dict[str, int]] = {}
    for engine in ENGINES:
        entry: Dict[str, int] = {}
        for name, key in (("max_items", "maxItems"), ("max_chars", "maxChars")):
            raw = store.get(f"translation.chunk.{engine}.{key}")
            if raw is None:
                continue
            try:
                value = int(raw)
            except (TypeError, ValueError):
                logger.warning("Invalid chunk limit %s.%s=%r, ignored", engine, key, raw)
                continue
            if value > 0:
                entry[name] = value
        if entry:
            limits[engine] = entry
    return limits


def get_settings(store: SettingsStore) -> TranslationSettings:
    # Unknown engines stay as stored so the run reports them instead of picking one.
    engine = str(store.get("translation.engine") or "").strip() or DEFAULTS["translation.engine"]
    return TranslationSettings(
        enabled=parse_bool_flag(store.get("translation.enabled", True)),
        engine=engine,
        target_language=str(
            store.get("translation.targetLanguage", DEFAULTS["translation.targetLanguage"])
            or DEFAULTS["translation.targetLanguage"]
        ).strip(),
        display_mode=_choice(store, "translation.displayMode", DISPLAY_MODES),
        streaming=parse_bool_flag(store.get("translation.streaming", True)),
        dynamic_enabled=parse_bool_flag(store.get("translation.dynamicEnabled", True)),
        auto_retranslate=parse_bool_flag(store.get("translation.autoRetranslate", True)),
        endpoint=str(store.get("translation.ai.endpoint", "") or "").strip(),
        api_key=str(store.get("translation.ai.apiKey", "") or "").strip(),
        request_type=_choice(store, "translation.ai.requestType", REQUEST_TYPES),
        model=str(store.get("translation.ai.model", "") or "").strip(),
        timeout=parse_timeout_seconds(store.get("translation.ai.timeout")),
        chunk_limits=_chunk_limits(store),
    )


def save_settings(store: SettingsStore, partial: Dict[str, Any]) -> TranslationSettings:
    """Persist a partial update given either snapshot field names or store keys."""
    for name, value in (partial or {}).items():
        key = _FIELD_KEYS.get(name, name)
        if key not in DEFAULTS and not key.startswith("translation."):
            raise KeyError(f"Unknown translation setting: {name}")
        store.set(key, value)
    return get_settings(store)
