#!/usr/bin/env python3
"""Discord-style webhook cards for matched tokens, delivered best-effort."""
from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

import aiohttp

from analysis.classifier import age_minutes, choose_count, holder_count
from constants import GMGN_TOKEN_URL, WEBHOOK_MAX_CONCURRENCY, WEBHOOK_TIMEOUT

logger = logging.getLogger(__name__)


def _whole_number(value: Any) -> str:
    try:
        number = float(value or 0)
    except (TypeError, ValueError):
        number = 0.0
    if math.isnan(number) or math.isinf(number):
        number = 0.0
    return f"{math.floor(number):,}"


def build_token_embed(token: Dict[str, Any], category: str = "", now: Optional[float] = None) -> Dict[str, Any]:
    """Builds the rich card for one token."""
    ca = token.get("address") or token.get("pool_address") or token.get("poolAddress") or "N/A"
    symbol = token.get("symbol") or token.get("name") or "N/A"
    name = token.get("name") or ""
    logo = token.get("logo") or token.get("icon")
    age = age_minutes(token, now)

    fields = [
        {
            "name": "Market",
            "value": f"MCAP: ${_whole_number(token.get('usd_market_cap') or token.get('market_cap'))}\n"
                     f"Liquidity: ${_whole_number(token.get('liquidity'))}",
            "inline": True,
        },
        {
            "name": "Stats",
            "value": f"Holders: {holder_count(token)}\n"
                     f"Buys: {choose_count(token, 'buys')} • Sells: {choose_count(token, 'sells')}\n"
                     f"Age: {age:.1f} min",
            "inline": True,
        },
        {
            "name": "Launchpad",
            "value": str(token.get("launchpad") or token.get("launchpad_platform") or "N/A"),
            "inline": True,
        },
        {
            "name": "Addresses",
            "value": f"CA: ```{ca}```\nQuote: `{token.get('quote_address') or 'N/A'}`",
            "inline": False,
        },
    ]

    title = f"{symbol} - {name}" if name else str(symbol)
    if category:
        title = f"{title} ({category})"

    embed: Dict[str, Any] = {
        "title": title,
        "url": f"{GMGN_TOKEN_URL}/{ca}",
        "fields": fields,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if logo:
        embed["thumbnail"] = {"url": logo}
    return embed


class WebhookDispatcher:
    """Posts one card to many endpoints; a failing endpoint never affects the others."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        max_concurrency: int = WEBHOOK_MAX_CONCURRENCY,
        timeout: float = WEBHOOK_TIMEOUT,
    ) -> None:
        self.session = session
        self.timeout = timeout
        self._semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def _post(self, url: str, payload: Dict[str, Any]) -> bool:
        async with self._semaphore:
            try:
                async with self.session.post(
                    url, json=payload, timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as response:
                    if 200 <= response.status < 300:
                        return True
                    body = await response.text()
                    logger.error("Webhook failed: HTTP %s from %s: %s", response.status, url, body[:200])
                    return False
            except Exception as exc:
                logger.error("Webhook failed for %s: %s", url, exc)
                return False

    async def dispatch(self, urls: Iterable[str], embed: Dict[str, Any]) -> int:
        """Returns the number of endpoints that accepted the card. Never raises."""
        urls = [url for url in urls if url]
        if not urls:
            return 0
        payload = {"content": None, "embeds": [embed]}
        results = await asyncio.gather(*(self._post(url, payload) for url in urls))
        return sum(1 for delivered in results if delivered)
