"""
Tests for the CLOB order client wrapper.
"""

from unittest.mock import MagicMock, patch

import pytest
from py_clob_client.clob_types import OrderType

from latency_arb.clients.clob_client import CLOBClient, OrderExecutionError, OrderSide


@pytest.fixture
def mock_py_client():
    """Patch py-clob-client's ClobClient constructor."""
    with patch("latency_arb.clients.clob_client.ClobClient") as cls:
        instance = MagicMock()
        instance.create_or_derive_api_creds.return_value = "creds"
        instance.create_order.return_value = "signed-order"
        instance.post_order.return_value = {"success": True, "orderID": "0xabc", "status": "matched"}
        cls.return_value = instance
        yield cls


class TestInitialize:

    @pytest.mark.asyncio
    async def test_derives_api_credentials(self, mock_py_client):
        client = CLOBClient(private_key="0xkey", funder_address="0xfunder", signature_type=1)

        await client.initialize()

        assert client.is_initialized
        mock_py_client.assert_called_once_with(
            "https://clob.polymarket.com",
            key="0xkey",
            chain_id=137,
            signature_type=1,
            funder="0xfunder"
        )
        mock_py_client.return_value.set_api_creds.assert_called_once_with("creds")

    @pytest.mark.asyncio
    async def test_requires_private_key(self):
        with pytest.raises(OrderExecutionError):
            await CLOBClient(private_key="").initialize()


class TestPlaceOrder:

    @pytest.mark.asyncio
    async def test_places_fok_order(self, mock_py_client):
        client = CLOBClient(private_key="0xkey")
        await client.initialize()

        result = await client.place_order("yes-token", OrderSide.BUY, 0.6, 16.5)

        assert result.order_id == "0xabc"
        assert result.status == "matched"
        instance = mock_py_client.return_value
        order_args = instance.create_order.call_args.args[0]
        assert order_args.token_id == "yes-token"
        assert order_args.price == 0.6
        assert order_args.size == 16.5
        assert order_args.side == "BUY"
        instance.post_order.assert_called_once_with("signed-order", orderType=OrderType.FOK)

    @pytest.mark.asyncio
    async def test_not_initialized(self):
        with pytest.raises(OrderExecutionError):
            await CLOBClient(private_key="0xkey").place_order("t", OrderSide.BUY, 0.5, 1)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("price,size", [(0.0, 10.0), (0.5, 0.0), (-0.1, 1.0)])
    async def test_invalid_price_or_size(self, mock_py_client, price, size):
        client = CLOBClient(private_key="0xkey")
        await client.initialize()

        with pytest.raises(OrderExecutionError):
            await client.place_order("t", OrderSide.BUY, price, size)
        mock_py_client.return_value.create_order.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        None,
        {"errorMsg": "not enough balance / allowance"},
        {"success": False},
        {"success": True},
    ])
    async def test_rejections_raise(self, mock_py_client, response):
        mock_py_client.return_value.post_order.return_value = response
        client = CLOBClient(private_key="0xkey")
        await client.initialize()

        with pytest.raises(OrderExecutionError):
            await client.place_order("t", OrderSide.SELL, 0.5, 10)

    @pytest.mark.asyncio
    async def test_library_errors_wrapped(self, mock_py_client):
        mock_py_client.return_value.post_order.side_effect = RuntimeError("FOK order not filled")
        client = CLOBClient(private_key="0xkey")
        await client.initialize()

        with pytest.raises(OrderExecutionError, match="FOK order not filled"):
            await client.place_order("t", OrderSide.BUY, 0.5, 10)
