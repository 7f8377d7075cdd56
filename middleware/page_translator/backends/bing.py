"""Bing translator client built on the anonymous web session."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode, urljoin, urlparse
import asyncio
import logging
import re
import threading
import time

import requests

from page_translator.errors import (
    ParseError,
    RateLimitError,
    SessionError,
    TransportError,
)
from page_translator.utils.request_meta import generate_request_id

logger = logging.getLogger("page_translator.backends.bing")

BING_TRANSLATOR_URL = "https://www.bing.com/translator"
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_TIMEOUT_SECONDS = 60
DEFAULT_TOKEN_INTERVAL_MS = 300000
MIN_SESSION_SECONDS = 60
REFRESH_MARGIN_SECONDS = 30
MAX_REDIRECTS = 6
_REDIRECT_CODES = {301, 302, 303, 307, 308}

_IG_PATTERN = re.compile(r'IG:"([^"]+)"')
_IID_PATTERN = re.compile(r'data-iid="([^"]+)"')
_ABUSE_PATTERN = re.compile(r"params_AbusePreventionHelper\s*=\s*\[([^\]]+)\]")


@dataclass
class BingSession:
    origin: str
    referer: str
    ig: str
    iid: str
    key: str
    token: str
    cookie_jar: Dict[str, str] = field(default_factory=dict)
    request_seq: int = 1
    expires_at: float = 0.0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def is_expired(self, now: Optional[float] = None) -> bool:
        return (time.time() if now is None else now) > self.expires_at

    def next_iid(self) -> str:
        with self._lock:
            seq = self.request_seq
            self.request_seq += 1
        return f"{self.iid}.{seq}"

    def cookie_header(self) -> str:
        return serialize_cookies(self.cookie_jar)


def serialize_cookies(jar: Dict[str, str]) -> str:
    return "; ".join(f"{name}={value}" for name, value in jar.items())


def merge_cookies(jar: Dict[str, str], resp: Any) -> None:
    cookies = getattr(resp, "cookies", None)
    if cookies is None:
        return
    if hasattr(cookies, "get_dict"):
        cookies = cookies.get_dict()
    try:
        items = dict(cookies).items()
    except (TypeError, ValueError):
        return
    for name, value in items:
        if name:
            jar[str(name)] = str(value)


def parse_bing_session(
    html: str,
    page_url: str,
    cookie_jar: Optional[Dict[str, str]] = None,
    now: Optional[float] = None,
) -> Optional[BingSession]:
    """Parse the translator landing page; None when any token is missing."""
    ig_match = _IG_PATTERN.search(html or "")
    iid_match = _IID_PATTERN.search(html or "")
    abuse_match = _ABUSE_PATTERN.search(html or "")
    if not ig_match or not iid_match or not abuse_match:
        return None

    parts = [part.strip().strip("\"'") for part in abuse_match.group(1).split(",")]
    if len(parts) < 2 or not parts[0] or not parts[1]:
        return None
    key, token = parts[0], parts[1]
    interval_ms = DEFAULT_TOKEN_INTERVAL_MS
    if len(parts) > 2:
        try:
            interval_ms = int(float(parts[2]))
        except ValueError:
            interval_ms = DEFAULT_TOKEN_INTERVAL_MS

    parsed = urlparse(page_url)
    origin = f"{parsed.scheme}://{parsed.netloc}"
    issued_at = time.time() if now is None else now
    lifetime = max(MIN_SESSION_SECONDS, interval_ms / 1000.0 - REFRESH_MARGIN_SECONDS)
    return BingSession(
        origin=origin,
        referer=page_url,
        ig=ig_match.group(1),
        iid=iid_match.group(1),
        key=key,
        token=token,
        cookie_jar=dict(cookie_jar or {}),
        expires_at=issued_at + lifetime,
    )


def extract_bing_translation(payload: Any) -> str:
    try:
        text = payload[0]["translations"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ParseError("Bing response missing translation") from exc
    if not isinstance(text, str) or not text:
        raise ParseError("Bing response has empty translation")
    return text


class BingSessionCache:
    """Process-wide session shared by all pages; rebuilt on expiry or after a 429."""

    def __init__(self, session: Optional[requests.Session] = None, clock=time.time):
        self._session = session or requests.Session()
        self._clock = clock
        self._lock = threading.Lock()
        self._current: Optional[BingSession] = None

    def get(self, force_refresh: bool = False) -> BingSession:
        with self._lock:
            current = self._current
            if current is not None and not force_refresh and not current.is_expired(self._clock()):
                return current
            self._current = None
            self._current = self._acquire()
            return self._current

    def invalidate(self) -> None:
        with self._lock:
            self._current = None

    def peek(self) -> Optional[BingSession]:
        return self._current

    def _acquire(self) -> BingSession:
        url = BING_TRANSLATOR_URL
        jar: Dict[str, str] = {}
        headers = {
            "User-Agent": USER_AGENT,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        }
        for _hop in range(MAX_REDIRECTS + 1):
            if jar:
                headers["Cookie"] = serialize_cookies(jar)
            try:
                resp = self._session.get(
                    url,
                    headers=dict(headers),
                    timeout=DEFAULT_TIMEOUT_SECONDS,
                    allow_redirects=False,
                )
            except requests.Timeout as exc:
                raise SessionError(
                    f"Bing session request timeout: {exc}", error_type="timeout", url=url
                ) from exc
            except requests.RequestException as exc:
                raise SessionError(
                    f"Bing session request failed: {exc}", error_type="network_error", url=url
                ) from exc

            merge_cookies(jar, resp)
            location = (getattr(resp, "headers", None) or {}).get("Location")
            if resp.status_code in _REDIRECT_CODES and location:
                url = urljoin(url, location)
                continue
            if resp.status_code < 200 or resp.status_code >= 300:
                raise SessionError(
                    f"Bing session HTTP {resp.status_code}",
                    status_code=resp.status_code,
                    url=url,
                    response_text=(resp.text or "").strip(),
                )
            session = parse_bing_session(resp.text or "", url, jar, now=self._clock())
            if session is None:
                raise SessionError("Bing session tokens not found in page", url=url)
            logger.info("Bing session acquired (expires in %.0fs)", session.expires_at - self._clock())
            return session
        raise SessionError(f"Bing session exceeded {MAX_REDIRECTS} redirects", url=url)


_default_cache: Optional[BingSessionCache] = None
_default_cache_lock = threading.Lock()


def default_session_cache() -> BingSessionCache:
    global _default_cache
    with _default_cache_lock:
        if _default_cache is None:
            _default_cache = BingSessionCache()
        return _default_cache


class BingTranslator:
    def __init__(
        self,
        cache: Optional[BingSessionCache] = None,
        session: Optional[requests.Session] = None,
        timeout: int = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.cache = cache or default_session_cache()
        self._session = session or requests.Session()
        self.timeout = timeout

    def _post(self, bing: BingSession, text: str, target_language: str) -> requests.Response:
        query = urlencode({"isVertical": "1", "IG": bing.ig, "IID": bing.next_iid()})
        url = f"{bing.origin}/ttranslatev3?{query}"
        headers = {
            "User-Agent": USER_AGENT,
            "Content-Type": "application/x-www-form-urlencoded",
            "Referer": bing.referer,
            "Origin": bing.origin,
            "Accept": "*/*",
        }
        cookie = bing.cookie_header()
        if cookie:
            headers["Cookie"] = cookie
        form = {
            "fromLang": "auto-detect",
            "text": text,
            "to": target_language,
            "token": bing.token,
            "key": bing.key,
        }
        try:
            resp = self._session.post(url, headers=headers, data=form, timeout=self.timeout)
        except requests.Timeout as exc:
            raise TransportError(
                f"Bing request timeout: {exc}", error_type="timeout", url=url
            ) from exc
        except requests.RequestException as exc:
            raise TransportError(
                f"Bing request failed: {exc}", error_type="network_error", url=url
            ) from exc
        merge_cookies(bing.cookie_jar, resp)
        return resp

    def translate_text(self, text: str, target_language: str, retry: bool = True) -> str:
        bing = self.cache.get()
        resp = self._post(bing, text, target_language)

        if resp.status_code == 429:
            self.cache.invalidate()
            if not retry:
                raise RateLimitError("Bing rate limited", status_code=429, url=bing.origin)
            logger.warning("Bing returned 429, refreshing session and retrying once")
            bing = self.cache.get(force_refresh=True)
            resp = self._post(bing, text, target_language)
            if resp.status_code == 429:
                self.cache.invalidate()
                raise RateLimitError(
                    "Bing rate limited after session refresh",
                    status_code=429,
                    url=bing.origin,
                )

        if resp.status_code < 200 or resp.status_code >= 300:
            body = (resp.text or "").strip()
            raise TransportError(
                f"Bing HTTP {resp.status_code}: {body[:200]}",
                status_code=resp.status_code,
                url=bing.origin,
                response_text=body,
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise ParseError(
                "Bing response is not JSON",
                error_type="invalid_json",
                status_code=resp.status_code,
                url=bing.origin,
                response_text=(resp.text or "").strip(),
            ) from exc
        return extract_bing_translation(payload)

    async def translate_texts(self, texts: List[str], target_language: str) -> List[str]:
        request_id = generate_request_id()
        logger.debug("[%s] Bing batch of %d items -> %s", request_id, len(texts), target_language)
        results: List[str] = []
        for text in texts:
            results.append(
                await asyncio.to_thread(self.translate_text, text, target_language)
            )
        return results
