import pytest
from fastapi.testclient import TestClient

from page_translator.api_server import create_app
from page_translator.settings import SettingsStore


class FakeBridge:
    def __init__(self):
        self.batch_payloads = []
        self.ai_payloads = []

    async def translate_text_batch(self, payload):
        self.batch_payloads.append(payload)
        return {"ok": True, "translations": [t[::-1] for t in payload["texts"]]}

    async def translate_text_ai(self, payload, on_progress=None):
        self.ai_payloads.append(payload)
        return {"ok": False, "message": "AI translation requires endpoint and API key"}


def _client(store=None, host="127.0.0.1"):
    bridge = FakeBridge()
    app = create_app(bridge, store or SettingsStore())
    return TestClient(app, client=(host, 50000)), bridge


@pytest.mark.unit
def test_local_only_allows_loopback():
    client, _ = _client()
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


@pytest.mark.unit
def test_local_only_blocks_non_loopback():
    client, _ = _client(host="203.0.113.7")
    assert client.get("/health").status_code == 403


@pytest.mark.unit
def test_translate_batch_endpoint():
    client, bridge = _client()
    response = client.post(
        "/translate/batch",
        json={"engine": "bing", "texts": ["abc", "de"], "targetLanguage": "ja"},
    )
    assert response.status_code == 200
    assert response.json() == {"ok": True, "translations": ["cba", "ed"]}
    assert bridge.batch_payloads[0]["targetLanguage"] == "ja"


@pytest.mark.unit
def test_translate_ai_endpoint_passes_failures_through():
    client, bridge = _client()
    response = client.post("/translate/ai", json={"texts": ["a"], "targetLanguage": "en"})
    assert response.status_code == 200
    assert response.json()["ok"] is False
    assert bridge.ai_payloads[0]["requestType"] == "openai-chat"


@pytest.mark.unit
def test_settings_roundtrip_redacts_api_key(tmp_path):
    store = SettingsStore(str(tmp_path / "settings.yaml"))
    client, _ = _client(store)

    response = client.post(
        "/settings",
        json={"values": {"engine": "ai", "api_key": "sk-secret", "target_language": "ko"}},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["engine"] == "ai"
    assert body["target_language"] == "ko"
    assert body["api_key"] == "[REDACTED]"
    assert store.get("translation.ai.apiKey") == "sk-secret"

    assert client.get("/settings").json()["engine"] == "ai"


@pytest.mark.unit
def test_settings_rejects_unknown_key():
    client, _ = _client()
    response = client.post("/settings", json={"values": {"window.size": 3}})
    assert response.status_code == 400
