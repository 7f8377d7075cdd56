"""Translate a saved HTML page end to end.

Usage:
  python -m page_translator.main --file page.html --url https://example.com/ \
      --output page.zh.html --engine bing --target zh-Hans
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any, Dict, List, Optional

from page_translator.document.soup import SoupDocument
from page_translator.orchestrator import PageHandle, TranslationOrchestrator
from page_translator.settings import DISPLAY_MODES, ENGINES, SettingsStore, save_settings

logger = logging.getLogger("page_translator.main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Page Translator")
    parser.add_argument("--file", required=True, help="Input HTML file")
    parser.add_argument("--url", default="http://localhost/", help="Page URL the file was saved from")
    parser.add_argument("--output", required=True, help="Output HTML file")
    parser.add_argument("--settings", default=None, help="Settings YAML path")
    parser.add_argument("--engine", choices=ENGINES, default=None)
    parser.add_argument("--target", default=None, help="Target language code")
    parser.add_argument("--mode", choices=DISPLAY_MODES, default=None)
    parser.add_argument("--no-stream", action="store_true", help="Disable streaming for AI engine")
    return parser


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    # A one-shot run has no live page to watch.
    overrides: Dict[str, Any] = {"dynamic_enabled": False}
    if args.engine:
        overrides["engine"] = args.engine
    if args.target:
        overrides["target_language"] = args.target
    if args.mode:
        overrides["display_mode"] = args.mode
    if args.no_stream:
        overrides["streaming"] = False
    return overrides


async def translate_file(
    html: str, url: str, orchestrator: TranslationOrchestrator
) -> tuple[str, Dict[str, Any]]:
    document = SoupDocument.from_html(html, url=url)
    page = PageHandle(page_id="cli", document=document, url=url)
    try:
        result = await orchestrator.translate_webview(page, force=True, notify=False)
    finally:
        orchestrator.stop()
    return document.serialize(), result


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    store = SettingsStore.from_env(args.settings)
    # CLI flags apply to this run only and are never written back.
    store.path = None
    save_settings(store, _overrides(args))

    with open(args.file, "r", encoding="utf-8") as f:
        html = f.read()

    orchestrator = TranslationOrchestrator(store)
    output, result = asyncio.run(translate_file(html, args.url, orchestrator))
    if not result.get("ok"):
        logger.error("Translation failed: %s", result.get("message") or result.get("skipped"))
        return 1

    with open(args.output, "w", encoding="utf-8") as f:
        f.write(output)
    logger.info("Translated %d text units", result.get("translated", 0))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
