import asyncio

import pytest

from page_translator.document.soup import SoupDocument
from page_translator.extraction import extract_text_units
from page_translator.applier import apply_translations
from page_translator.settings import TranslationSettings
from page_translator.watcher import DynamicContentWatcher


class FakeBatch:
    def __init__(self, fail_first=False):
        self.calls = []
        self.fail_first = fail_first

    async def __call__(self, texts, settings):
        self.calls.append((list(texts), settings.streaming))
        if self.fail_first and len(self.calls) == 1:
            return {"ok": False, "message": "boom"}
        return {"ok": True, "translations": [f"<{t}>" for t in texts]}


def _translated_page():
    document = SoupDocument.from_html("<body><div id='feed'><p>Initial</p></div></body>")
    result = extract_text_units(document)
    apply_translations(document, result.bindings, ["初始"], "replace")
    return document


def _insert(document, text):
    feed = document.soup.find(id="feed")
    tag = document.soup.new_tag("p")
    tag.string = text
    feed.append(tag)


@pytest.mark.unit
def test_tick_translates_only_new_content():
    document = _translated_page()
    _insert(document, "Fresh")
    _insert(document, "Fresh")
    batch = FakeBatch()
    watcher = DynamicContentWatcher(document, batch, TranslationSettings(streaming=False))

    assert asyncio.run(watcher.tick()) == 2
    assert batch.calls == [(["Fresh"], False)]
    texts = [document.get_text(h) for h in document.traverse()]
    assert texts == ["初始", "<Fresh>", "<Fresh>"]

    assert asyncio.run(watcher.tick()) == 0
    assert len(batch.calls) == 1


@pytest.mark.unit
def test_tick_caps_units():
    document = _translated_page()
    for i in range(5):
        _insert(document, f"Item {i}")
    batch = FakeBatch()
    watcher = DynamicContentWatcher(document, batch, TranslationSettings(), max_units=3)
    asyncio.run(watcher.tick())
    assert batch.calls[0][0] == ["Item 0", "Item 1", "Item 2"]


@pytest.mark.unit
def test_failed_tick_is_retried_next_time():
    document = _translated_page()
    _insert(document, "Later")
    batch = FakeBatch(fail_first=True)
    watcher = DynamicContentWatcher(document, batch, TranslationSettings())
    assert asyncio.run(watcher.tick()) == 0
    assert asyncio.run(watcher.tick()) == 1
    assert len(batch.calls) == 2


@pytest.mark.unit
def test_bilingual_watcher_leaves_overlays_alone():
    document = SoupDocument.from_html("<body><p>Initial</p></body>")
    result = extract_text_units(document)
    apply_translations(document, result.bindings, ["初始"], "bilingual")
    batch = FakeBatch()
    watcher = DynamicContentWatcher(
        document, batch, TranslationSettings(display_mode="bilingual")
    )
    assert asyncio.run(watcher.tick()) == 0
    assert batch.calls == []


@pytest.mark.unit
def test_loop_runs_swallows_errors_and_stops():
    document = _translated_page()
    _insert(document, "Polled")

    class Exploding:
        calls = 0

        async def __call__(self, texts, settings):
            Exploding.calls += 1
            if Exploding.calls == 1:
                raise RuntimeError("network down")
            return {"ok": True, "translations": ["已轮询"]}

    async def scenario():
        watcher = DynamicContentWatcher(
            document, Exploding(), TranslationSettings(), interval=0.01
        )
        watcher.start()
        assert watcher.running
        for _ in range(200):
            await asyncio.sleep(0.01)
            if Exploding.calls >= 2:
                break
        watcher.stop()
        await asyncio.sleep(0)
        return watcher

    watcher = asyncio.run(scenario())
    assert Exploding.calls >= 2
    assert watcher.running is False
    assert "已轮询" in document.serialize()


@pytest.mark.unit
def test_loop_exits_after_navigation():
    document = _translated_page()
    current = {"url": "https://a.example/"}

    async def scenario():
        watcher = DynamicContentWatcher(
            document,
            FakeBatch(),
            TranslationSettings(),
            url="https://a.example/",
            interval=0.01,
            current_url=lambda: current["url"],
        )
        watcher.start()
        current["url"] = "https://b.example/"
        await asyncio.sleep(0.05)
        return watcher

    watcher = asyncio.run(scenario())
    assert watcher.running is False
