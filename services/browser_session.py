#!/usr/bin/env python3
"""Selenium-driven browser session and the startup bot-challenge gate."""
from __future__ import annotations

import asyncio
import json
import logging
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from selenium import webdriver
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.chrome.options import Options as ChromeOptions
from selenium.webdriver.chrome.service import Service as ChromeService
from webdriver_manager.chrome import ChromeDriverManager

from constants import (
    ACCEPT_LANGUAGE,
    BROWSER_WINDOW_SIZE,
    CHALLENGE_DEFAULT_TIMEOUT,
    CHALLENGE_MARKERS,
    CHALLENGE_POLL_SECONDS,
    GMGN_HOME_URL,
    PAGE_LOAD_TIMEOUT,
    SCRIPT_TIMEOUT,
)

logger = logging.getLogger(__name__)

# Executed in page context; calls done() with the fetch outcome.
_PAGE_POST_SCRIPT = """
const [url, payload, done] = arguments;
fetch(url, {
  method: "POST",
  mode: "cors",
  credentials: "include",
  headers: { "accept": "application/json, text/plain, */*", "content-type": "application/json" },
  body: JSON.stringify(payload || {})
})
  .then(async (r) => done({
    ok: true,
    status: r.status,
    contentType: r.headers.get("content-type") || "",
    rawText: await r.text()
  }))
  .catch((err) => done({ ok: false, error: String(err) }));
"""

_PAGE_TEXT_SCRIPT = "return document.body ? (document.body.innerText || '') : '';"


class SessionGateError(RuntimeError):
    """The browser session could not get past the bot-challenge page."""


def cookies_to_header(cookies: Iterable[Dict[str, Any]]) -> str:
    return "; ".join(f"{c['name']}={c['value']}" for c in cookies if c.get("name"))


def page_shows_challenge(text: Optional[str]) -> bool:
    lowered = (text or "").lower()
    if not lowered:
        return True
    return any(marker in lowered for marker in CHALLENGE_MARKERS)


def _build_chrome_options(session_dir: Path, headless: bool, binary_path: Optional[str]) -> ChromeOptions:
    options = ChromeOptions()
    if headless:
        options.add_argument("--headless=new")
    options.add_argument("--no-sandbox")
    options.add_argument("--disable-setuid-sandbox")
    options.add_argument("--disable-dev-shm-usage")
    options.add_argument(f"--window-size={BROWSER_WINDOW_SIZE}")
    options.add_argument(f"--user-data-dir={session_dir.resolve()}")
    options.add_argument("--lang=en-US")
    options.add_argument('--disable-blink-features=AutomationControlled')
    options.add_experimental_option("excludeSwitches", ["enable-automation"])
    options.add_experimental_option('useAutomationExtension', False)
    options.add_experimental_option("prefs", {"intl.accept_languages": ACCEPT_LANGUAGE})
    if binary_path:
        options.binary_location = binary_path
    return options


class BrowserSession:
    """
    Async facade over a synchronous Chrome driver.

    Every driver call is pushed to the default executor so the event loop keeps
    running while pages load.
    """

    def __init__(self, driver: Any) -> None:
        self.driver = driver

    @classmethod
    def launch(cls, session_dir: Path | str, *, headless: bool, binary_path: Optional[str] = None) -> "BrowserSession":
        session_dir = Path(session_dir)
        session_dir.mkdir(parents=True, exist_ok=True)
        options = _build_chrome_options(session_dir, headless, binary_path)
        try:
            service = ChromeService(ChromeDriverManager().install())
            driver = webdriver.Chrome(service=service, options=options)
        except Exception as exc:
            logger.warning("ChromeDriverManager setup failed (%s); trying the system chromedriver.", exc)
            driver = webdriver.Chrome(options=options)
        driver.set_page_load_timeout(PAGE_LOAD_TIMEOUT)
        driver.set_script_timeout(SCRIPT_TIMEOUT)
        logger.debug("Chrome started (headless=%s, profile=%s).", headless, session_dir)
        return cls(driver)

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    async def navigate(self, url: str = GMGN_HOME_URL) -> None:
        await self._run(self.driver.get, url)

    async def page_text(self) -> str:
        return await self._run(self.driver.execute_script, _PAGE_TEXT_SCRIPT) or ""

    async def cookies(self) -> List[Dict[str, Any]]:
        return await self._run(self.driver.get_cookies) or []

    async def cookie_header(self) -> str:
        return cookies_to_header(await self.cookies())

    async def post_json(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POSTs ``payload`` from inside the page. Returns the raw script result dict."""
        # Driver arguments must be plain JSON types.
        body = json.loads(json.dumps(payload))
        return await self._run(self.driver.execute_async_script, _PAGE_POST_SCRIPT, url, body) or {}

    async def close(self) -> None:
        try:
            await self._run(self.driver.quit)
        except WebDriverException as exc:
            logger.warning("Error while closing browser: %s", exc)


class SessionGate:
    """Loads the landing page once and waits out a bot-challenge if one is shown."""

    def __init__(
        self,
        browser: BrowserSession,
        *,
        interactive: bool,
        timeout: float = CHALLENGE_DEFAULT_TIMEOUT,
        poll_seconds: float = CHALLENGE_POLL_SECONDS,
        origin_url: str = GMGN_HOME_URL,
    ) -> None:
        self.browser = browser
        self.interactive = interactive
        self.timeout = timeout
        self.poll_seconds = poll_seconds
        self.origin_url = origin_url

    async def _challenge_present(self) -> bool:
        try:
            return page_shows_challenge(await self.browser.page_text())
        except WebDriverException as exc:
            logger.debug("Could not read page text (%s); assuming challenge.", exc)
            return True

    async def establish(self) -> str:
        """Returns the exported cookie header, or raises SessionGateError."""
        try:
            await self.browser.navigate(self.origin_url)
        except WebDriverException as exc:
            logger.debug("Landing page navigation error ignored: %s", exc)

        if not await self._challenge_present():
            logger.debug("No bot-challenge interstitial detected.")
            return await self._export_cookies()

        if not self.interactive:
            raise SessionGateError(
                "Bot-challenge detected while running headless. "
                "Restart with HEADLESS=false and solve the challenge once."
            )

        print("Bot-challenge detected. Please solve it in the opened browser window.")
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        while loop.time() < deadline:
            if not await self._challenge_present():
                break
            print(".", end="", flush=True)
            await asyncio.sleep(self.poll_seconds)
        print("")

        if await self._challenge_present():
            raise SessionGateError(
                f"Timed out after {self.timeout:g}s with the challenge still blocking. "
                "Restart and solve it manually."
            )
        logger.info("Bot-challenge solved; continuing.")
        return await self._export_cookies()

    async def _export_cookies(self) -> str:
        header = await self.browser.cookie_header()
        logger.debug("Cookie header (clipped): %s", header[:300])
        return header
