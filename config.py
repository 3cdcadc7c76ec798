#!/usr/bin/env python3
import os
import argparse
from pathlib import Path
from typing import Mapping, NamedTuple, Optional, Sequence

import constants
from analysis.models import ClassifierThresholds


class ConfigError(ValueError):
    """Raised when an environment value cannot be parsed."""


class PollConfig(NamedTuple):
    """Typed configuration object."""
    interval: int
    headless: bool
    verbose: bool
    webhook_urls_pump: list[str]
    webhook_urls_migrated: list[str]
    webhook_urls_test: list[str]
    chrome_executable_path: str | None
    challenge_timeout: int
    session_dir: Path
    output_dir: Path
    thresholds: ClassifierThresholds
    test_webhook: bool = False

    @property
    def last_fetch_path(self) -> Path:
        return self.output_dir / constants.LAST_FETCH_FILENAME

    @property
    def notified_path(self) -> Path:
        return self.output_dir / constants.NOTIFIED_FILENAME

    def webhooks_for(self, category: str) -> list[str]:
        if category == constants.CATEGORY_PUMP:
            return self.webhook_urls_pump
        if category == constants.CATEGORY_MIGRATED:
            return self.webhook_urls_migrated
        raise ValueError(f"Unknown category: {category}")


def _split_urls(raw: Optional[str]) -> list[str]:
    return [part.strip() for part in (raw or "").split(",") if part.strip()]


def _env_flag(environ: Mapping[str, str], name: str) -> bool:
    return environ.get(name, "").strip().lower() == "true"


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip(), 10)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def load_config(argv: Optional[Sequence[str]] = None, environ: Optional[Mapping[str, str]] = None) -> PollConfig:
    """
    Reads environment variables and command-line flags into a configuration object.
    Flags override their environment counterparts.
    """
    environ = os.environ if environ is None else environ

    parser = argparse.ArgumentParser(
        description="Poll gmgn.ai launchpad ranks and alert webhooks on pump / migrated tokens.",
        epilog="Example: HEADLESS=false WEBHOOK_URLS_PUMP=https://discord/... ./main.py --interval 12"
    )
    parser.add_argument('--interval', type=int, default=None, help=f'Seconds between poll cycles (default: ${constants.POLL_INTERVAL_ENV_VAR} or {constants.DEFAULT_POLL_INTERVAL}).')
    parser.add_argument('--headless', action='store_true', default=None, help=f'Run the browser unattended (default: ${constants.HEADLESS_ENV_VAR}).')
    parser.add_argument('--verbose', action='store_true', default=None, help=f'Enable debug logging (default: ${constants.DEBUG_ENV_VAR}).')
    parser.add_argument('--test-webhook', action='store_true', help=f'Send a sample card to ${constants.WEBHOOK_URLS_TEST_ENV_VAR} and exit.')
    args = parser.parse_args(argv)

    interval = args.interval if args.interval is not None else _env_int(
        environ, constants.POLL_INTERVAL_ENV_VAR, constants.DEFAULT_POLL_INTERVAL
    )
    if interval <= 0:
        raise ConfigError(f"--interval must be positive, got {interval}")

    headless = args.headless if args.headless is not None else _env_flag(environ, constants.HEADLESS_ENV_VAR)
    verbose = args.verbose if args.verbose is not None else _env_flag(environ, constants.DEBUG_ENV_VAR)

    return PollConfig(
        interval=interval,
        headless=headless,
        verbose=verbose,
        webhook_urls_pump=_split_urls(environ.get(constants.WEBHOOK_URLS_PUMP_ENV_VAR)),
        webhook_urls_migrated=_split_urls(environ.get(constants.WEBHOOK_URLS_MIGRATED_ENV_VAR)),
        webhook_urls_test=_split_urls(environ.get(constants.WEBHOOK_URLS_TEST_ENV_VAR)),
        chrome_executable_path=environ.get(constants.CHROME_EXECUTABLE_PATH_ENV_VAR) or None,
        challenge_timeout=_env_int(environ, constants.WAIT_CF_TIMEOUT_ENV_VAR, constants.CHALLENGE_DEFAULT_TIMEOUT),
        session_dir=Path(environ.get(constants.SESSION_DIR_ENV_VAR) or constants.DEFAULT_SESSION_DIR),
        output_dir=Path(environ.get(constants.OUTPUT_DIR_ENV_VAR) or constants.DEFAULT_OUTPUT_DIR),
        thresholds=ClassifierThresholds(),
        test_webhook=args.test_webhook,
    )
