# monitor.py
import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from analysis.classifier import classify_buckets, extract_buckets
from analysis.models import ClassificationResult
from config import PollConfig
from constants import (
    CATEGORY_MIGRATED,
    CATEGORY_PUMP,
    RANK_ENDPOINT,
    RANK_REQUEST_BODY,
)
from services.rank_fetcher import DualPathFetcher
from services.webhook_dispatcher import WebhookDispatcher, build_token_embed
from storage import NotificationStateStore, token_key

logger = logging.getLogger(__name__)


class RankMonitor:
    """Runs fetch -> classify -> dedup -> notify -> persist on a fixed interval."""

    def __init__(
        self,
        config: PollConfig,
        fetcher: DualPathFetcher,
        store: NotificationStateStore,
        dispatcher: WebhookDispatcher,
        *,
        endpoint: str = RANK_ENDPOINT,
        request_body: Optional[Dict[str, Any]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.fetcher = fetcher
        self.store = store
        self.dispatcher = dispatcher
        self.endpoint = endpoint
        self.request_body = request_body if request_body is not None else RANK_REQUEST_BODY
        self.clock = clock
        self.cycles_run = 0
        self.last_error: Optional[str] = None

    async def start(self):
        """The main loop. Only process termination ends it."""
        while True:
            try:
                await self.run_cycle()
                self.last_error = None
            except Exception as e:
                logger.exception("Loop error: %s", e)
                self.last_error = str(e)
            await asyncio.sleep(self.config.interval)

    async def run_cycle(self) -> bool:
        """Runs one poll cycle. Returns False when no usable payload was fetched."""
        self.cycles_run += 1
        result = await self.fetcher.fetch(self.endpoint, self.request_body)
        if not result.usable:
            logger.warning(
                "Fetch failed or returned no JSON (source=%s, status=%s, error=%s). See %s",
                result.source, result.status, result.error, self.config.last_fetch_path,
            )
            return False

        now = self.clock()
        near_completion, completed = extract_buckets(result.json)
        pump_matches, migrated_matches = classify_buckets(
            near_completion, completed, self.config.thresholds, now
        )

        logger.info(
            "Fetched via %s: pump=%d completed=%d, matchedPump=%d matchedMigrated=%d",
            result.source, len(near_completion), len(completed), len(pump_matches), len(migrated_matches),
        )

        sent = 0
        sent += await self._notify_matches(pump_matches, CATEGORY_PUMP, now)
        sent += await self._notify_matches(migrated_matches, CATEGORY_MIGRATED, now)

        self.store.save()
        if sent:
            logger.debug("Cycle %d produced %d new notifications.", self.cycles_run, sent)
        return True

    async def _notify_matches(self, matches: List[ClassificationResult], category: str, now: float) -> int:
        urls = self.config.webhooks_for(category)
        notified = 0
        for match in matches:
            token_id = token_key(match.token)
            if not token_id:
                logger.debug("Skipping %s match %s with no address.", category, match.label)
                continue
            if not self.store.should_notify(token_id, category):
                continue

            logger.info("NEW %s -> %s", category.upper(), self._describe(match))
            if not urls:
                logger.debug("No %s webhooks configured; console only.", category)
            embed = build_token_embed(match.token, category, now)
            await self.dispatcher.dispatch(urls, embed)
            self.store.mark_notified(token_id, category)
            notified += 1
        return notified

    @staticmethod
    def _describe(match: ClassificationResult) -> str:
        parts = [match.label, f"mcap:{match.market_cap:.0f}"]
        if match.holders is not None:
            parts.append(f"holders:{match.holders}")
        parts.append(f"buys:{match.buys} sells:{match.sells}")
        if match.category == CATEGORY_PUMP:
            parts.append(f"age:{match.age_minutes:.1f}m")
        return " ".join(parts)
