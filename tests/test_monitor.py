import asyncio
import logging
import json
from pathlib import Path

import pytest

from analysis.models import ClassifierThresholds
from config import PollConfig
from monitor import RankMonitor
from services.rank_fetcher import DualPathFetcher, FetchResult
from storage import NotificationStateStore

NOW = 1_700_000_000


@pytest.fixture
def mock_config(tmp_path):
    return PollConfig(
        interval=12,
        headless=True,
        verbose=False,
        webhook_urls_pump=["https://hook/pump"],
        webhook_urls_migrated=["https://hook/migrated-a", "https://hook/migrated-b"],
        webhook_urls_test=[],
        chrome_executable_path=None,
        challenge_timeout=120,
        session_dir=tmp_path / "session",
        output_dir=tmp_path / "output",
        thresholds=ClassifierThresholds(),
    )


class QueueStrategy:
    """Returns queued results, one per fetch."""

    def __init__(self, name, results):
        self.name = name
        self._results = list(results)

    async def fetch(self, endpoint, body):
        return self._results.pop(0)


class RecordingDispatcher:
    def __init__(self):
        self.calls = []

    async def dispatch(self, urls, embed):
        self.calls.append((list(urls), embed))
        return len(urls)


def _pump_token(address="0xPUMP", **overrides):
    token = {
        "address": address,
        "symbol": "PMP",
        "name": "Pumper",
        "usd_market_cap": 20000,
        "buys_1m": 8,
        "sells_1m": 6,
        "created_timestamp": NOW - 300,
    }
    token.update(overrides)
    return token


def _migrated_token(address="0xMIG"):
    return {
        "address": address,
        "symbol": "MIG",
        "usd_market_cap": 90000,
        "holder_count": 150,
        "buys_1h": 45,
        "sells_1h": 40,
    }


def _ok(payload, source="browser"):
    return FetchResult(source=source, ok=True, status=200, raw_text=json.dumps(payload), json=payload)


def _payload(near=(), completed=()):
    return {"code": 0, "data": {"near_completion": list(near), "completed": list(completed)}}


def _monitor(config, results, store=None, dispatcher=None):
    fetcher = DualPathFetcher([QueueStrategy("browser", results)], snapshot_path=config.last_fetch_path)
    return RankMonitor(
        config,
        fetcher,
        store if store is not None else NotificationStateStore(config.notified_path),
        dispatcher or RecordingDispatcher(),
        clock=lambda: NOW,
    )


@pytest.mark.asyncio
async def test_cycle_notifies_each_category_once(mock_config):
    payload = _payload(near=[_pump_token()], completed=[_migrated_token()])
    dispatcher = RecordingDispatcher()
    monitor = _monitor(mock_config, [_ok(payload), _ok(payload)], dispatcher=dispatcher)

    assert await monitor.run_cycle() is True
    assert await monitor.run_cycle() is True

    assert len(dispatcher.calls) == 2
    pump_urls, pump_embed = dispatcher.calls[0]
    migrated_urls, migrated_embed = dispatcher.calls[1]
    assert pump_urls == ["https://hook/pump"]
    assert pump_embed["title"] == "PMP - Pumper (pump)"
    assert migrated_urls == ["https://hook/migrated-a", "https://hook/migrated-b"]
    assert migrated_embed["title"].endswith("(migrated)")


@pytest.mark.asyncio
async def test_state_is_persisted_after_cycle(mock_config):
    payload = _payload(near=[_pump_token()])
    monitor = _monitor(mock_config, [_ok(payload)])

    await monitor.run_cycle()

    saved = json.loads(Path(mock_config.notified_path).read_text())
    assert saved == {"0xPUMP": {"pump": True, "migrated": False}}
    reloaded = NotificationStateStore(mock_config.notified_path).load()
    assert reloaded.should_notify("0xPUMP", "pump") is False


@pytest.mark.asyncio
async def test_restart_does_not_refire(mock_config):
    payload = _payload(near=[_pump_token()])
    await _monitor(mock_config, [_ok(payload)]).run_cycle()

    dispatcher = RecordingDispatcher()
    restarted = _monitor(
        mock_config,
        [_ok(payload)],
        store=NotificationStateStore(mock_config.notified_path).load(),
        dispatcher=dispatcher,
    )
    await restarted.run_cycle()

    assert dispatcher.calls == []


@pytest.mark.asyncio
async def test_matched_token_without_identity_is_skipped(mock_config):
    anonymous = _pump_token()
    del anonymous["address"]
    dispatcher = RecordingDispatcher()
    store = NotificationStateStore(mock_config.notified_path)
    monitor = _monitor(mock_config, [_ok(_payload(near=[anonymous]))], store=store, dispatcher=dispatcher)

    assert await monitor.run_cycle() is True

    assert dispatcher.calls == []
    assert len(store) == 0


@pytest.mark.asyncio
async def test_pool_address_is_used_as_identity(mock_config):
    token = _pump_token()
    del token["address"]
    token["pool_address"] = "0xPOOL"
    store = NotificationStateStore()
    monitor = _monitor(mock_config, [_ok(_payload(near=[token]))], store=store)

    await monitor.run_cycle()

    assert store.should_notify("0xPOOL", "pump") is False


@pytest.mark.asyncio
async def test_fetch_failure_skips_cycle_without_touching_state(mock_config):
    failed = FetchResult(source="browser", ok=False, error="HTTP 403", status=403)
    dispatcher = RecordingDispatcher()
    monitor = _monitor(mock_config, [failed], dispatcher=dispatcher)

    assert await monitor.run_cycle() is False

    assert dispatcher.calls == []
    assert not Path(mock_config.notified_path).exists()
    assert Path(mock_config.last_fetch_path).exists()


@pytest.mark.asyncio
async def test_tokens_missing_thresholds_are_not_notified(mock_config):
    payload = _payload(
        near=[_pump_token(usd_market_cap=16899), _pump_token(address="0xOLD", created_timestamp=NOW - 900)],
        completed=[{"address": "0xLOW", "usd_market_cap": 60000, "holder_count": 69, "buys_1m": 30, "sells_1m": 30}],
    )
    dispatcher = RecordingDispatcher()
    monitor = _monitor(mock_config, [_ok(payload)], dispatcher=dispatcher)

    await monitor.run_cycle()

    assert dispatcher.calls == []


@pytest.mark.asyncio
async def test_notifications_follow_bucket_order(mock_config):
    payload = _payload(near=[_pump_token("0xA"), _pump_token("0xB"), _pump_token("0xC")])
    dispatcher = RecordingDispatcher()
    monitor = _monitor(mock_config, [_ok(payload)], dispatcher=dispatcher)

    await monitor.run_cycle()

    assert [embed["url"].rsplit("/", 1)[-1] for _, embed in dispatcher.calls] == ["0xA", "0xB", "0xC"]


class FlakyDispatcher(RecordingDispatcher):
    """Raises on the first dispatch, records afterwards."""

    async def dispatch(self, urls, embed):
        if not self.calls:
            self.calls.append(None)
            raise RuntimeError("webhook host unreachable")
        return await super().dispatch(urls, embed)


@pytest.mark.asyncio
async def test_poll_loop_survives_a_failed_cycle(mock_config, monkeypatch, caplog):
    payload = _payload(near=[_pump_token()])
    dispatcher = FlakyDispatcher()
    monitor = _monitor(mock_config, [_ok(payload), _ok(payload)], dispatcher=dispatcher)
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append((seconds, monitor.last_error))
        if len(sleeps) == 2:
            raise asyncio.CancelledError()

    monkeypatch.setattr("monitor.asyncio.sleep", fake_sleep)

    with pytest.raises(asyncio.CancelledError):
        await monitor.start()

    assert monitor.cycles_run == 2
    assert sleeps[0] == (mock_config.interval, "webhook host unreachable")
    assert sleeps[1] == (mock_config.interval, None)
    assert monitor.last_error is None
    assert "Loop error" in caplog.text
    # The failed notification was not latched, so the second cycle retried it.
    assert dispatcher.calls[1][0] == ["https://hook/pump"]
    assert NotificationStateStore(mock_config.notified_path).load().should_notify("0xPUMP", "pump") is False


@pytest.mark.asyncio
async def test_notification_log_lines_are_plain_text(mock_config, caplog):
    monitor = _monitor(mock_config, [_ok(_payload(near=[_pump_token()]))])

    with caplog.at_level(logging.INFO, logger="monitor"):
        await monitor.run_cycle()

    new_lines = [r.getMessage() for r in caplog.records if r.getMessage().startswith("NEW ")]
    assert new_lines and new_lines[0].startswith("NEW PUMP -> PMP")
    assert all("\x1b[" not in r.getMessage() for r in caplog.records)
