import asyncio

import pytest

from page_translator.bridge import TranslationBridge
from page_translator.errors import RateLimitError


class FakeBing:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def translate_texts(self, texts, target_language):
        self.calls.append((list(texts), target_language))
        if self.error is not None:
            raise self.error
        if self.result is not None:
            return list(self.result)
        return [f"{target_language}:{t}" for t in texts]


class FakeChat:
    def __init__(self, result=None):
        self.result = result
        self.calls = []

    async def translate(self, texts, target_language, config, on_partial=None):
        self.calls.append({"texts": list(texts), "target": target_language, "config": config})
        if on_partial is not None:
            on_partial(["partial"], 0)
        if self.result is not None:
            return list(self.result)
        return [t.upper() for t in texts]


def _run(coro):
    return asyncio.run(coro)


@pytest.mark.unit
def test_batch_success():
    bridge = TranslationBridge(bing=FakeBing(), chat=FakeChat())
    result = _run(bridge.translate_text_batch({"engine": "bing", "texts": ["a", "b"], "targetLanguage": "ja"}))
    assert result == {"ok": True, "translations": ["ja:a", "ja:b"]}


@pytest.mark.unit
def test_batch_validation_messages():
    bing = FakeBing()
    bridge = TranslationBridge(bing=bing, chat=FakeChat())
    assert _run(bridge.translate_text_batch({"texts": [], "targetLanguage": "ja"})) == {
        "ok": True,
        "translations": [],
    }
    blank = _run(bridge.translate_text_batch({"texts": ["a", "  "], "targetLanguage": "ja"}))
    assert blank["ok"] is False
    assert blank["message"] == "Source text cannot be empty"
    no_target = _run(bridge.translate_text_batch({"texts": ["a"], "targetLanguage": ""}))
    assert no_target["message"] == "Missing target language"
    wrong_engine = _run(bridge.translate_text_batch({"engine": "ai", "texts": ["a"], "targetLanguage": "ja"}))
    assert wrong_engine["ok"] is False
    assert wrong_engine["errorType"] == "invalid_config"
    assert bing.calls == []


@pytest.mark.unit
def test_batch_count_mismatch_is_failure():
    bridge = TranslationBridge(bing=FakeBing(result=["only one"]), chat=FakeChat())
    result = _run(bridge.translate_text_batch({"texts": ["a", "b"], "targetLanguage": "ja"}))
    assert result["ok"] is False
    assert result["errorType"] == "count_mismatch"


@pytest.mark.unit
def test_batch_backend_error_is_reported():
    bridge = TranslationBridge(bing=FakeBing(error=RateLimitError("Bing rate limited", status_code=429)), chat=FakeChat())
    result = _run(bridge.translate_text_batch({"texts": ["a"], "targetLanguage": "ja"}))
    assert result == {"ok": False, "message": "Bing rate limited (HTTP 429)", "errorType": "rate_limited"}


@pytest.mark.unit
def test_ai_batch_builds_config_and_forwards_progress():
    chat = FakeChat()
    bridge = TranslationBridge(bing=FakeBing(), chat=chat)
    progress = []
    result = _run(
        bridge.translate_text_ai(
            {
                "texts": ["a", "b"],
                "targetLanguage": "fr",
                "endpoint": " https://api.example.com ",
                "apiKey": "k",
                "requestType": "anthropic",
                "model": "m",
                "streaming": True,
            },
            on_progress=lambda items, start: progress.append((items, start)),
        )
    )
    assert result == {"ok": True, "translations": ["A", "B"]}
    config = chat.calls[0]["config"]
    assert config.endpoint == "https://api.example.com"
    assert config.request_type == "anthropic"
    assert config.streaming is True
    assert config.timeout == 120
    assert progress == [(["partial"], 0)]


@pytest.mark.unit
def test_ai_batch_requires_credentials():
    chat = FakeChat()
    bridge = TranslationBridge(bing=FakeBing(), chat=chat)
    result = _run(bridge.translate_text_ai({"texts": ["a"], "targetLanguage": "fr", "endpoint": "https://x"}))
    assert result["ok"] is False
    assert result["errorType"] == "invalid_config"
    assert chat.calls == []


@pytest.mark.unit
def test_ai_batch_enforces_count_contract():
    bridge = TranslationBridge(bing=FakeBing(), chat=FakeChat(result=["x"]))
    result = _run(
        bridge.translate_text_ai(
            {"texts": ["a", "b"], "targetLanguage": "fr", "endpoint": "https://x", "apiKey": "k"}
        )
    )
    assert result["ok"] is False
    assert "mismatch" in result["message"]
