"""
Tests for Gamma payload parsing and quote enrichment.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from latency_arb.clients.clob_client import BookTop
from latency_arb.clients.gamma_client import GammaClient, parse_market, parse_outcome
from latency_arb.models import Direction

W = 1_700_000_100


def make_event(prices=("0.51", "0.49"), outcomes=("Up", "Down"), encoded=True, **market_fields):
    market = {
        "clobTokenIds": ["tok-up", "tok-down"],
        "outcomes": list(outcomes),
        "outcomePrices": list(prices),
        "bestBid": "0.50",
        "bestAsk": "0.52",
    }
    if encoded:
        market = {k: json.dumps(v) if isinstance(v, list) else v for k, v in market.items()}
    market.update(market_fields)
    return {"slug": f"btc-updown-5m-{W}", "markets": [market]}


class TestParseMarket:
    """Tests for parse_market."""

    def test_json_encoded_arrays(self):
        quote = parse_market(make_event(), W)

        assert quote.window_start == W
        assert quote.up_price == 0.51
        assert quote.down_price == 0.49
        assert quote.up_token_id == "tok-up"
        assert quote.down_token_id == "tok-down"
        assert quote.up_best_bid == 0.50
        assert quote.up_best_ask == 0.52
        assert quote.slug == f"btc-updown-5m-{W}"
        assert quote.accepting_orders is True

    def test_plain_lists(self):
        assert parse_market(make_event(encoded=False), W).up_price == 0.51

    def test_outcome_order_respected(self):
        quote = parse_market(make_event(prices=("0.40", "0.60"), outcomes=("Down", "Up")), W)
        assert quote.up_price == 0.60
        assert quote.up_token_id == "tok-down"

    def test_closed_market(self):
        assert parse_market(make_event(acceptingOrders=False), W).accepting_orders is False

    @pytest.mark.parametrize("event", [None, {}, {"markets": []}, {"markets": [{"clobTokenIds": "[]"}]}])
    def test_unusable_event(self, event):
        assert parse_market(event, W) is None


class TestParseOutcome:
    @pytest.mark.parametrize("prices,winner", [
        (("1", "0"), Direction.UP),
        (("0", "1"), Direction.DOWN),
        (("0.62", "0.38"), None),
    ])
    def test_winner(self, prices, winner):
        assert parse_outcome(make_event(prices=prices)) == winner

    def test_no_market(self):
        assert parse_outcome({"markets": []}) is None


class TestGammaClient:
    """Tests for GammaClient without network access."""

    def test_slug_for_window(self):
        assert GammaClient().slug_for(W) == f"btc-updown-5m-{W}"

    @pytest.mark.asyncio
    async def test_missing_event_is_no_quote(self):
        client = GammaClient()
        client.fetch_event = AsyncMock(return_value=None)
        assert await client.fetch_quote(W) is None

    @pytest.mark.asyncio
    async def test_quote_enriched_from_books(self):
        clob = MagicMock()
        clob.get_book_top = AsyncMock(side_effect=[
            BookTop(best_bid=0.50, best_ask=0.51, ask_depth=320.0),
            BookTop(best_bid=0.48, best_ask=0.50, ask_depth=150.0),
        ])
        client = GammaClient(clob=clob)
        client.fetch_event = AsyncMock(return_value=make_event())

        quote = await client.fetch_quote(W)

        assert quote.up_best_ask == 0.51
        assert quote.up_ask_depth == 320.0
        assert quote.down_best_bid == 0.48
        assert quote.down_ask_depth == 150.0

    @pytest.mark.asyncio
    async def test_outcome_via_event(self):
        client = GammaClient()
        client.fetch_event = AsyncMock(return_value=make_event(prices=("0", "1")))
        assert await client.fetch_outcome(W) == Direction.DOWN
