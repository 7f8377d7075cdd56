# Local HTTP bridge exposing batch translation and settings to the host shell.

from __future__ import annotations

import argparse
import dataclasses
import ipaddress
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import uvicorn

from page_translator import __version__
from page_translator.bridge import TranslationBridge
from page_translator.settings import SettingsStore, get_settings, save_settings


class BatchRequest(BaseModel):
    engine: str = "bing"
    texts: List[str] = []
    targetLanguage: str = ""


class AIBatchRequest(BaseModel):
    texts: List[str] = []
    targetLanguage: str = ""
    endpoint: str = ""
    apiKey: str = ""
    requestType: str = "openai-chat"
    model: str = ""
    streaming: bool = False
    timeout: Optional[int] = None


class SettingsUpdate(BaseModel):
    values: Dict[str, Any]


def _is_loopback(host: str) -> bool:
    if not host:
        return False
    if host == "localhost":
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def _settings_payload(store: SettingsStore) -> Dict[str, Any]:
    data = dataclasses.asdict(get_settings(store))
    # Never echo the key back over HTTP.
    data["api_key"] = "[REDACTED]" if data.get("api_key") else ""
    return data


def create_app(bridge: TranslationBridge, store: SettingsStore) -> FastAPI:
    app = FastAPI(title="Page Translator API", version=__version__)

    @app.middleware("http")
    async def local_only_middleware(request: Request, call_next):
        client = request.client
        host = client.host if client else ""
        if not _is_loopback(host):
            return JSONResponse(status_code=403, content={"detail": "forbidden"})
        return await call_next(request)

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"ok": True}

    @app.post("/translate/batch")
    async def translate_batch(req: BatchRequest) -> Dict[str, Any]:
        return await bridge.translate_text_batch(req.model_dump())

    @app.post("/translate/ai")
    async def translate_ai(req: AIBatchRequest) -> Dict[str, Any]:
        return await bridge.translate_text_ai(req.model_dump())

    @app.get("/settings")
    def read_settings() -> Dict[str, Any]:
        return _settings_payload(store)

    @app.post("/settings")
    def write_settings(req: SettingsUpdate) -> Dict[str, Any]:
        try:
            save_settings(store, req.values)
        except (KeyError, ValueError) as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return _settings_payload(store)

    return app


def main() -> int:
    parser = argparse.ArgumentParser(description="Page Translator API Server")
    parser.add_argument("--settings", default=None, help="Settings YAML path")
    parser.add_argument("--port", type=int, default=48331)
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    store = SettingsStore.from_env(args.settings)
    app = create_app(TranslationBridge(), store)
    host = "127.0.0.1"
    uvicorn.run(app, host=host, port=args.port, log_level="warning")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
