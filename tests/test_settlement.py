"""
Tests for trade settlement and post-mortems.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from latency_arb.config import Config
from latency_arb.database import TradeDatabase
from latency_arb.execution.settlement import (
    ARB_MARKET_KNEW,
    ARB_MID_WINDOW,
    ARB_REVERSAL,
    ARB_SMALL_MOVE,
    ARB_TOO_EARLY,
    Settler,
    categorize_loss,
    read_post_mortems,
)
from latency_arb.models import Direction, TradeRecord
from latency_arb.signals.controller import SignalController

W = 1_700_000_100
DUE = W + 300 + 60


def make_trade(window_start=W, direction=Direction.UP, **overrides):
    fields = dict(
        window_start=window_start,
        direction=direction,
        limit_price=0.52,
        shares=96,
        cost=49.92,
        confidence=0.808,
        fair_value=0.708,
        venue_price=0.50,
        entry_price=100_060,
        window_open_price=100_000,
        delta=60,
        seconds_into_window=200,
        market_slug=f"btc-updown-5m-{window_start}",
        token_id="token-up",
        order_id="order-1",
        status="pending",
        reasons=("Edge 20.8c",),
        placed_at=window_start + 200,
    )
    fields.update(overrides)
    return TradeRecord(**fields)


@pytest.fixture
def db(tmp_path):
    return TradeDatabase(tmp_path / "trades.db")


@pytest.fixture
def controller():
    controller = SignalController(Config())
    # Live trade already debited
    controller.state.bankroll.available_balance = 500 - 49.92
    return controller


@pytest.fixture
def outcomes():
    provider = MagicMock()
    provider.fetch_outcome = AsyncMock(return_value=Direction.UP)
    return provider


def make_settler(db, outcomes, controller, tmp_path, now=DUE):
    return Settler(
        db, outcomes, controller,
        post_mortem_path=tmp_path / "pm" / "post-mortems.jsonl",
        grace_seconds=60,
        clock=lambda: now
    )


class TestSettlement:
    """Tests for settle_pending."""

    @pytest.mark.asyncio
    async def test_win_books_payout(self, db, outcomes, controller, tmp_path):
        trade = make_trade()
        db.add_trade(trade)
        controller.state.pending_windows.add(W)
        settler = make_settler(db, outcomes, controller, tmp_path)

        settled = await settler.settle_pending()

        assert [t.id for t in settled] == [trade.id]
        bankroll = controller.state.bankroll
        assert settled[0].status == "win"
        assert settled[0].pnl == pytest.approx(46.08)
        assert bankroll.cumulative_pnl == pytest.approx(46.08)
        assert bankroll.available_balance == pytest.approx(546.08)
        assert bankroll.win_count == 1
        assert W not in controller.state.pending_windows
        assert db.get_trades(status="win")[0].settled_at == DUE
        assert not (tmp_path / "pm" / "post-mortems.jsonl").exists()

    @pytest.mark.asyncio
    async def test_loss_writes_post_mortem(self, db, outcomes, controller, tmp_path):
        outcomes.fetch_outcome.return_value = Direction.DOWN
        db.add_trade(make_trade())
        settler = make_settler(db, outcomes, controller, tmp_path)

        settled = await settler.settle_pending()

        bankroll = controller.state.bankroll
        assert settled[0].status == "loss"
        assert settled[0].pnl == pytest.approx(-49.92)
        assert bankroll.cumulative_pnl == pytest.approx(-49.92)
        assert bankroll.available_balance == pytest.approx(500 - 49.92)
        assert bankroll.loss_count == 1

        records = read_post_mortems(settler.post_mortem_path)
        assert len(records) == 1
        record = records[0]
        assert record["pattern"] == ARB_REVERSAL
        assert record["outcome"] == "DOWN"
        assert record["trade"]["direction"] == "UP"
        assert record["trade"]["reasons"] == ["Edge 20.8c"]
        assert record["total_pnl"] == pytest.approx(-49.92)
        assert record["record"] == "0W/1L"

    @pytest.mark.asyncio
    async def test_waits_for_grace_period(self, db, outcomes, controller, tmp_path):
        db.add_trade(make_trade())
        settler = make_settler(db, outcomes, controller, tmp_path, now=DUE - 1)

        assert await settler.settle_pending() == []
        outcomes.fetch_outcome.assert_not_awaited()
        assert len(db.get_pending_trades()) == 1

    @pytest.mark.asyncio
    async def test_unresolved_market_stays_pending(self, db, outcomes, controller, tmp_path):
        outcomes.fetch_outcome.return_value = None
        db.add_trade(make_trade())
        settler = make_settler(db, outcomes, controller, tmp_path)

        assert await settler.settle_pending() == []
        assert len(db.get_pending_trades()) == 1

    @pytest.mark.asyncio
    async def test_outcome_error_retried_next_pass(self, db, outcomes, controller, tmp_path):
        outcomes.fetch_outcome.side_effect = [RuntimeError("gamma down"), Direction.UP]
        db.add_trade(make_trade())
        settler = make_settler(db, outcomes, controller, tmp_path)

        assert await settler.settle_pending() == []
        assert len(await settler.settle_pending()) == 1

    @pytest.mark.asyncio
    async def test_settling_twice_is_a_no_op(self, db, outcomes, controller, tmp_path):
        db.add_trade(make_trade())
        settler = make_settler(db, outcomes, controller, tmp_path)

        await settler.settle_pending()
        pnl = controller.state.bankroll.cumulative_pnl
        assert await settler.settle_pending() == []

        assert controller.state.bankroll.cumulative_pnl == pnl
        assert outcomes.fetch_outcome.await_count == 1

    @pytest.mark.asyncio
    async def test_circuit_breaker_stops_pass(self, db, outcomes, controller, tmp_path):
        outcomes.fetch_outcome.return_value = Direction.DOWN
        controller.state.bankroll.cumulative_pnl = -80.0
        db.add_trade(make_trade(window_start=W - 300))
        db.add_trade(make_trade(window_start=W))
        settler = make_settler(db, outcomes, controller, tmp_path)

        settled = await settler.settle_pending()

        assert [t.window_start for t in settled] == [W - 300]
        assert controller.state.bankroll.paused is True
        assert controller.state.bankroll.cumulative_pnl == pytest.approx(-129.92)
        assert [t.window_start for t in db.get_pending_trades()] == [W]

    @pytest.mark.asyncio
    async def test_bankroll_persisted(self, db, outcomes, controller, tmp_path):
        db.add_trade(make_trade())
        await make_settler(db, outcomes, controller, tmp_path).settle_pending()

        saved = db.load_state("bankroll")
        assert saved["win_count"] == 1
        assert saved["cumulative_pnl"] == pytest.approx(46.08)

    @pytest.mark.asyncio
    async def test_dry_run_trades_not_settled(self, db, outcomes, controller, tmp_path):
        db.add_trade(make_trade(status="dry-run"))
        assert await make_settler(db, outcomes, controller, tmp_path).settle_pending() == []
        outcomes.fetch_outcome.assert_not_awaited()


class TestCategorizeLoss:
    """Tests for loss pattern bucketing."""

    @pytest.mark.parametrize("overrides,pattern", [
        ({"seconds_into_window": 60}, ARB_TOO_EARLY),
        ({"seconds_into_window": 150}, ARB_MID_WINDOW),
        ({"seconds_into_window": 220, "delta": 45}, ARB_SMALL_MOVE),
        ({"seconds_into_window": 220, "delta": -80, "venue_price": 0.54}, ARB_MARKET_KNEW),
        ({"seconds_into_window": 220, "delta": 80, "venue_price": 0.50}, ARB_REVERSAL),
    ])
    def test_patterns(self, overrides, pattern):
        assert categorize_loss(make_trade(**overrides)) == pattern


class TestReadPostMortems:
    def test_missing_file_is_empty(self, tmp_path):
        assert read_post_mortems(tmp_path / "none.jsonl") == []

    def test_newest_first_with_limit(self, tmp_path):
        path = tmp_path / "pm.jsonl"
        path.write_text("".join(json.dumps({"n": i}) + "\n" for i in range(5)))

        assert [r["n"] for r in read_post_mortems(path)] == [4, 3, 2, 1, 0]
        assert [r["n"] for r in read_post_mortems(path, limit=2)] == [4, 3]
