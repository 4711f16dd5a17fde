"""
Tests for the CLOB client wrapper.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from latency_arb.clients.clob_client import CLOBClient


@pytest.fixture
def client():
    clob = CLOBClient(api_key="k", api_secret="s", api_passphrase="p", private_key="0xabc")
    clob._client = MagicMock()
    return clob


class TestPlaceOrder:
    """Tests for place_order."""

    @pytest.mark.asyncio
    async def test_success(self, client):
        client._client.post_order.return_value = {"success": True, "orderID": "0x1", "status": "live"}

        result = await client.place_order("token-up", 96.0, 0.52)

        assert result.success is True
        assert result.order_id == "0x1"
        assert result.status == "live"
        order_args = client._client.create_order.call_args.args[0]
        assert order_args.token_id == "token-up"
        assert order_args.price == 0.52
        assert order_args.size == 96.0

    @pytest.mark.asyncio
    async def test_rejection_returned(self, client):
        client._client.post_order.return_value = {"success": False, "errorMsg": "not enough balance"}

        result = await client.place_order("token-up", 96.0, 0.52)

        assert result.success is False
        assert result.error == "not enough balance"

    @pytest.mark.asyncio
    async def test_exception_returned(self, client):
        client._client.create_order.side_effect = RuntimeError("signing failed")

        result = await client.place_order("token-up", 96.0, 0.52)

        assert result.success is False
        assert result.status == "FAILED"
        assert "signing failed" in result.error

    @pytest.mark.asyncio
    async def test_requires_initialize(self):
        clob = CLOBClient(api_key="k", api_secret="s", api_passphrase="p", private_key="0xabc")
        with pytest.raises(RuntimeError):
            await clob.place_order("token-up", 1.0, 0.5)


class TestBookTop:
    @pytest.mark.asyncio
    async def test_best_levels_and_depth(self, client):
        level = lambda price, size: SimpleNamespace(price=str(price), size=str(size))
        client._client.get_order_book.return_value = SimpleNamespace(
            bids=[level(0.48, 100), level(0.50, 40)],
            asks=[level(0.53, 200), level(0.52, 120)],
        )

        top = await client.get_book_top("token-up")

        assert top.best_bid == 0.50
        assert top.best_ask == 0.52
        assert top.ask_depth == 320.0

    @pytest.mark.asyncio
    async def test_empty_book(self, client):
        client._client.get_order_book.return_value = SimpleNamespace(bids=[], asks=[])
        top = await client.get_book_top("token-up")
        assert top.best_bid is None
        assert top.best_ask is None
        assert top.ask_depth == 0

    @pytest.mark.asyncio
    async def test_failure_is_none(self, client):
        client._client.get_order_book.side_effect = ConnectionError("down")
        assert await client.get_book_top("token-up") is None
