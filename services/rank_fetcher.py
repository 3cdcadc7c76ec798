#!/usr/bin/env python3
"""Fetches the gmgn rank payload through an ordered list of fallback strategies."""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import aiohttp
from selenium.common.exceptions import WebDriverException

from constants import (
    BROWSER_USER_AGENT,
    DIRECT_FETCH_TIMEOUT,
    GMGN_HOME_URL,
    GMGN_ORIGIN,
    PAGE_SETTLE_SECONDS,
)
from services.browser_session import BrowserSession
from storage import write_fetch_snapshot

logger = logging.getLogger(__name__)


def _parse_json(text: Optional[str]) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


@dataclass
class FetchResult:
    """Outcome of one fetch attempt."""
    source: str
    ok: bool
    status: Optional[int] = None
    raw_text: Optional[str] = None
    json: Any = None
    error: Optional[str] = None
    content_type: Optional[str] = None

    @property
    def usable(self) -> bool:
        return self.json is not None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class BrowserFetchStrategy:
    """Primary path: POST from inside the live browser page."""

    name = "browser"

    def __init__(self, browser: BrowserSession, *, origin_url: str = GMGN_HOME_URL, settle_seconds: float = PAGE_SETTLE_SECONDS) -> None:
        self.browser = browser
        self.origin_url = origin_url
        self.settle_seconds = settle_seconds

    async def fetch(self, endpoint: str, body: Dict[str, Any]) -> FetchResult:
        try:
            await self.browser.navigate(self.origin_url)
        except WebDriverException as exc:
            logger.debug("Origin re-navigation failed, posting anyway: %s", exc)
        await asyncio.sleep(self.settle_seconds)

        try:
            result = await self.browser.post_json(endpoint, body)
        except WebDriverException as exc:
            return FetchResult(source=self.name, ok=False, error=str(exc))

        if not result.get("ok"):
            return FetchResult(source=self.name, ok=False, error=result.get("error") or "page fetch failed")

        raw_text = result.get("rawText")
        return FetchResult(
            source=self.name,
            ok=True,
            status=result.get("status"),
            raw_text=raw_text,
            json=_parse_json(raw_text),
            content_type=result.get("contentType"),
        )


class DirectHttpFetchStrategy:
    """Fallback path: plain aiohttp POST replaying the browser's cookies."""

    name = "direct"

    def __init__(
        self,
        session: aiohttp.ClientSession,
        cookie_source: Optional[Callable[[], Awaitable[str]]] = None,
        *,
        cookie_header: str = "",
        timeout: float = DIRECT_FETCH_TIMEOUT,
    ) -> None:
        self.session = session
        self.cookie_source = cookie_source
        self.cookie_header = cookie_header
        self.timeout = timeout

    async def _current_cookie_header(self) -> str:
        if self.cookie_source is None:
            return self.cookie_header
        try:
            self.cookie_header = await self.cookie_source()
        except Exception as exc:
            logger.warning("Cookie re-export failed, reusing last header: %s", exc)
        return self.cookie_header

    def _headers(self, cookie_header: str) -> Dict[str, str]:
        headers = {
            "User-Agent": BROWSER_USER_AGENT,
            "Accept": "application/json, text/plain, */*",
            "Content-Type": "application/json",
            "Referer": GMGN_HOME_URL,
            "Origin": GMGN_ORIGIN,
        }
        if cookie_header:
            headers["Cookie"] = cookie_header
        return headers

    async def fetch(self, endpoint: str, body: Dict[str, Any]) -> FetchResult:
        headers = self._headers(await self._current_cookie_header())
        try:
            async with self.session.post(
                endpoint,
                json=body,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                raw_text = await response.text()
                status = response.status
                content_type = response.headers.get("Content-Type", "")
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            return FetchResult(source=self.name, ok=False, error=str(exc) or type(exc).__name__)

        if not 200 <= status < 300:
            return FetchResult(
                source=self.name,
                ok=False,
                status=status,
                raw_text=raw_text,
                error=f"HTTP {status}",
                content_type=content_type,
            )
        return FetchResult(
            source=self.name,
            ok=True,
            status=status,
            raw_text=raw_text,
            json=_parse_json(raw_text),
            content_type=content_type,
        )


class DualPathFetcher:
    """Tries each strategy in order and returns the first result carrying parsed JSON."""

    def __init__(self, strategies: Sequence[Any], snapshot_path: Path | str | None = None) -> None:
        if not strategies:
            raise ValueError("DualPathFetcher needs at least one strategy")
        self.strategies = list(strategies)
        self.snapshot_path = Path(snapshot_path) if snapshot_path is not None else None
        self.last_attempts: List[FetchResult] = []

    async def fetch(self, endpoint: str, body: Dict[str, Any]) -> FetchResult:
        attempts: List[FetchResult] = []
        chosen: Optional[FetchResult] = None

        for strategy in self.strategies:
            name = getattr(strategy, "name", type(strategy).__name__)
            try:
                result = await strategy.fetch(endpoint, body)
            except Exception as exc:
                logger.error("Fetch strategy %s raised: %s", name, exc)
                result = FetchResult(source=name, ok=False, error=str(exc))
            attempts.append(result)

            if result.usable:
                chosen = result
                break
            logger.debug(
                "Fetch via %s returned nothing usable (status=%s, error=%s); trying next path.",
                name, result.status, result.error,
            )

        self.last_attempts = attempts
        if self.snapshot_path is not None:
            write_fetch_snapshot(self.snapshot_path, (attempt.to_dict() for attempt in attempts))
        return chosen or attempts[-1]
