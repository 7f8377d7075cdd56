import pytest
import yaml

from page_translator.settings import (
    SETTINGS_ENV,
    SettingsStore,
    TranslationSettings,
    get_settings,
    save_settings,
)


@pytest.mark.unit
def test_defaults_without_file():
    settings = get_settings(SettingsStore())
    assert settings.enabled is True
    assert settings.engine == "bing"
    assert settings.target_language == "zh-Hans"
    assert settings.display_mode == "replace"
    assert settings.streaming is True
    assert settings.request_type == "openai-chat"
    assert settings.has_ai_credentials() is False


@pytest.mark.unit
def test_store_roundtrip_writes_nested_yaml(tmp_path):
    path = tmp_path / "settings.yaml"
    store = SettingsStore(str(path))
    save_settings(store, {"engine": "ai", "translation.ai.endpoint": "https://api.example.com"})

    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    assert data["translation"]["engine"] == "ai"
    assert data["translation"]["ai"]["endpoint"] == "https://api.example.com"

    reloaded = get_settings(SettingsStore(str(path)))
    assert reloaded.engine == "ai"
    assert reloaded.endpoint == "https://api.example.com"


@pytest.mark.unit
def test_invalid_choices_fall_back_to_defaults(caplog):
    store = SettingsStore()
    store.set("translation.displayMode", "sideways")
    store.set("translation.ai.requestType", "gemini")
    with caplog.at_level("WARNING", logger="page_translator.settings"):
        settings = get_settings(store)
    assert settings.display_mode == "replace"
    assert settings.request_type == "openai-chat"
    assert "translation.ai.requestType" in caplog.text


@pytest.mark.unit
def test_unknown_engine_is_kept_for_the_run_to_reject():
    store = SettingsStore()
    assert get_settings(store).engine == "bing"
    store.set("translation.engine", "  ")
    assert get_settings(store).engine == "bing"
    store.set("translation.engine", "deepl")
    assert get_settings(store).engine == "deepl"


@pytest.mark.unit
def test_flags_and_timeout_are_parsed_leniently():
    store = SettingsStore()
    store.set("translation.streaming", "off")
    store.set("translation.dynamicEnabled", 0)
    store.set("translation.ai.timeout", "45")
    settings = get_settings(store)
    assert settings.streaming is False
    assert settings.dynamic_enabled is False
    assert settings.timeout == 45


@pytest.mark.unit
def test_chunk_limit_overrides_are_collected():
    store = SettingsStore()
    store.set("translation.chunk.bing.maxItems", 10)
    store.set("translation.chunk.ai.maxChars", "bogus")
    settings = get_settings(store)
    assert settings.chunk_limits == {"bing": {"max_items": 10}}


@pytest.mark.unit
def test_save_settings_rejects_unknown_keys():
    with pytest.raises(KeyError):
        save_settings(SettingsStore(), {"browser.homepage": "x"})


@pytest.mark.unit
def test_store_from_env(tmp_path, monkeypatch):
    path = tmp_path / "env.yaml"
    path.write_text("translation:\n  targetLanguage: ja\n", encoding="utf-8")
    monkeypatch.setenv(SETTINGS_ENV, str(path))
    assert get_settings(SettingsStore.from_env()).target_language == "ja"


@pytest.mark.unit
def test_snapshot_is_immutable():
    settings = TranslationSettings()
    changed = settings.with_overrides(streaming=False)
    assert settings.streaming is True
    assert changed.streaming is False
    with pytest.raises(Exception):
        settings.engine = "ai"
