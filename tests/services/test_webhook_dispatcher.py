import aiohttp
import pytest

from services.webhook_dispatcher import WebhookDispatcher, build_token_embed

NOW = 1_700_000_000


class FakeResponse:
    def __init__(self, status):
        self.status = status

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def text(self):
        return "rate limited"


class FakeSession:
    def __init__(self, outcomes):
        self._outcomes = outcomes
        self.posted = []

    def post(self, url, json, timeout):
        self.posted.append((url, json))
        outcome = self._outcomes[url]
        if isinstance(outcome, Exception):
            raise outcome
        return FakeResponse(outcome)


def _token():
    return {
        "address": "0xCA",
        "symbol": "FROG",
        "name": "Frog Coin",
        "usd_market_cap": 61234.9,
        "liquidity": 12000.4,
        "holder_count": 88,
        "buys_1m": 31,
        "sells_1m": 33,
        "created_timestamp": NOW - 150,
        "launchpad": "fourmeme",
        "logo": "https://cdn.example/frog.png",
        "quote_address": "0xQUOTE",
    }


def test_embed_contains_card_sections():
    embed = build_token_embed(_token(), "migrated", now=NOW)

    assert embed["title"] == "FROG - Frog Coin (migrated)"
    assert embed["url"] == "https://gmgn.ai/token/0xCA"
    assert embed["thumbnail"] == {"url": "https://cdn.example/frog.png"}
    fields = {f["name"]: f["value"] for f in embed["fields"]}
    assert fields["Market"] == "MCAP: $61,234\nLiquidity: $12,000"
    assert fields["Stats"] == "Holders: 88\nBuys: 31 • Sells: 33\nAge: 2.5 min"
    assert fields["Launchpad"] == "fourmeme"
    assert "```0xCA```" in fields["Addresses"]
    assert "`0xQUOTE`" in fields["Addresses"]


def test_embed_handles_sparse_token():
    embed = build_token_embed({"pool_address": "0xPOOL"}, "pump", now=NOW)

    assert embed["title"] == "N/A (pump)"
    assert embed["url"].endswith("/0xPOOL")
    assert "thumbnail" not in embed
    fields = {f["name"]: f["value"] for f in embed["fields"]}
    assert "Age: inf min" in fields["Stats"]
    assert fields["Launchpad"] == "N/A"


@pytest.mark.asyncio
async def test_dispatch_isolates_endpoint_failures(caplog):
    session = FakeSession({
        "https://hook/ok": 204,
        "https://hook/rate-limited": 429,
        "https://hook/down": aiohttp.ClientConnectionError("refused"),
    })
    dispatcher = WebhookDispatcher(session)
    embed = build_token_embed(_token(), "pump", now=NOW)

    delivered = await dispatcher.dispatch(list(session._outcomes), embed)

    assert delivered == 1
    assert len(session.posted) == 3
    for _, body in session.posted:
        assert body == {"content": None, "embeds": [embed]}
    assert "HTTP 429" in caplog.text
    assert "refused" in caplog.text


@pytest.mark.asyncio
async def test_dispatch_with_no_endpoints_is_a_no_op():
    session = FakeSession({})
    assert await WebhookDispatcher(session).dispatch([], {"title": "x"}) == 0
    assert session.posted == []
