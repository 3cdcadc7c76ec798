#!/usr/bin/env python3
import asyncio
import logging
import sys
import time

import aiohttp
from dotenv import load_dotenv
from selenium.common.exceptions import WebDriverException

import constants
from config import ConfigError, PollConfig, load_config
from monitor import RankMonitor
from services.browser_session import BrowserSession, SessionGate, SessionGateError
from services.rank_fetcher import BrowserFetchStrategy, DirectHttpFetchStrategy, DualPathFetcher
from services.webhook_dispatcher import WebhookDispatcher, build_token_embed
from storage import NotificationStateStore

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )
    # Selenium and urllib3 are very chatty at DEBUG.
    for noisy in ("selenium", "urllib3", "WDM"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _print_fatal(message: str) -> None:
    print(f"{constants.C_RED}{time.strftime(LOG_DATE_FORMAT)} {message}{constants.C_RESET}")


def _print_banner(config: PollConfig) -> None:
    t = config.thresholds
    print(f"{constants.C_BLUE}GMGN Pump & Completed Monitor{constants.C_RESET}")
    print(f"  HEADLESS={config.headless} POLL={config.interval}s DEBUG={config.verbose}")
    print("  Watching: near_completion -> pump, and completed -> migrated")
    print(f"  Filters: pump => mcap>={t.pump_min_market_cap:g}, buys>={t.pump_min_buys}, "
          f"sells>={t.pump_min_sells}, age<{t.pump_max_age_minutes:g}min")
    print(f"           completed => mcap>={t.migrated_min_market_cap:g}, holders>{t.migrated_min_holders_exclusive}, "
          f"buys>={t.migrated_min_buys}, sells>={t.migrated_min_sells}")
    print(f"  Webhooks: pump={len(config.webhook_urls_pump)} migrated={len(config.webhook_urls_migrated)}")
    print("-" * 61)


async def run_monitor(config: PollConfig) -> int:
    """BOOTSTRAPPING -> RUNNING, or -> FAILED with a non-zero exit code."""
    _print_banner(config)
    config.output_dir.mkdir(parents=True, exist_ok=True)
    store = NotificationStateStore(config.notified_path).load()

    loop = asyncio.get_running_loop()
    try:
        browser = await loop.run_in_executor(
            None,
            lambda: BrowserSession.launch(
                config.session_dir,
                headless=config.headless,
                binary_path=config.chrome_executable_path,
            ),
        )
    except WebDriverException as exc:
        _print_fatal(f"Could not start Chrome: {exc}")
        return 1

    try:
        gate = SessionGate(browser, interactive=not config.headless, timeout=config.challenge_timeout)
        try:
            cookie_header = await gate.establish()
        except SessionGateError as exc:
            _print_fatal(str(exc))
            return 1
        print(f"{constants.C_GREEN}Session ready; entering poll loop.{constants.C_RESET}")

        async with aiohttp.ClientSession() as session:
            fetcher = DualPathFetcher(
                [
                    BrowserFetchStrategy(browser),
                    DirectHttpFetchStrategy(session, browser.cookie_header, cookie_header=cookie_header),
                ],
                snapshot_path=config.last_fetch_path,
            )
            monitor = RankMonitor(config, fetcher, store, WebhookDispatcher(session))
            await monitor.start()
    finally:
        await browser.close()
    return 0


def _sample_token() -> dict:
    now = int(time.time())
    return {
        "address": "0x000000000000000000000000000000000000dEaD",
        "symbol": "TEST",
        "name": "Webhook Test",
        "usd_market_cap": 20000,
        "liquidity": 5000,
        "holder_count": 42,
        "buys_1m": 7,
        "sells_1m": 6,
        "created_timestamp": now - 300,
        "launchpad": "fourmeme",
        "quote_address": "0xbb4cdb9cbd36b01bd1cbaebf2de08d9173bc095c",
    }


async def send_test_webhook(config: PollConfig) -> int:
    if not config.webhook_urls_test:
        _print_fatal(f"{constants.WEBHOOK_URLS_TEST_ENV_VAR} is not set.")
        return 1
    embed = build_token_embed(_sample_token(), "test")
    async with aiohttp.ClientSession() as session:
        delivered = await WebhookDispatcher(session).dispatch(config.webhook_urls_test, embed)
    print(f"Test card delivered to {delivered}/{len(config.webhook_urls_test)} endpoints.")
    return 0 if delivered else 1


def main() -> None:
    """The main synchronous entry point for the application."""
    load_dotenv()
    try:
        config = load_config()
    except ConfigError as exc:
        _print_fatal(f"Configuration error: {exc}")
        sys.exit(1)

    configure_logging(config.verbose)

    try:
        if config.test_webhook:
            exit_code = asyncio.run(send_test_webhook(config))
        else:
            exit_code = asyncio.run(run_monitor(config))
    except KeyboardInterrupt:
        print("\nInterrupted; exiting.")
        exit_code = 0
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
