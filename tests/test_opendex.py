"""
Tests for OpenDEX order derivation, creation and removal
"""

import asyncio
from dataclasses import replace
from decimal import Decimal
from unittest.mock import AsyncMock, Mock

import aiohttp
import pytest

from arby.config import parse_config
from arby.errors import OpenDexError
from arby.models import AssetBalances, OrderSide, TradeInfo
from arby.opendex import (
    BUY_ORDER_ID,
    SELL_ORDER_ID,
    XudClient,
    create_opendex_orders,
    fetch_opendex_assets,
    from_satoshis,
    opendex_assets,
    remove_opendex_orders,
    retry_recoverable,
    to_satoshis,
    trade_info_to_opendex_orders,
)
from tests.helpers import FakeXudClient, opendex_assets_of


def scenario_info(opendex):
    return TradeInfo(
        price=Decimal(100),
        margin=Decimal("0.02"),
        opendex=opendex,
        centralized=AssetBalances(base=Decimal(10), quote=Decimal(1000)),
    )


def test_satoshi_conversion():
    assert to_satoshis(Decimal("0.00012345")) == 12345
    assert to_satoshis(Decimal("0.000000019")) == 1
    assert from_satoshis("150000000") == Decimal("1.5")
    assert from_satoshis(None) == Decimal(0)


def test_orders_from_trade_info():
    orders = trade_info_to_opendex_orders(scenario_info(opendex_assets_of(1, 980)), "BTC/DAI")
    sell, buy = orders[OrderSide.SELL], orders[OrderSide.BUY]

    assert sell.price == Decimal(102)
    assert sell.quantity == Decimal(1)
    assert sell.order_id == SELL_ORDER_ID

    assert buy.price == Decimal(98)
    assert buy.quantity == Decimal(10)
    assert buy.order_id == BUY_ORDER_ID
    assert buy.pair_id == sell.pair_id == "BTC/DAI"


@pytest.mark.asyncio
async def test_scenario_a_places_both_orders(ctx, xud):
    done = await create_opendex_orders(ctx, xud, scenario_info(opendex_assets_of(1, 1000)))

    assert done is True
    sides = {order.side: order for order in xud.placed}
    assert sides[OrderSide.SELL].price == Decimal(102)
    assert sides[OrderSide.SELL].quantity == Decimal(1)
    assert sides[OrderSide.BUY].price == Decimal(98)


@pytest.mark.asyncio
async def test_scenario_b_dust_balance_places_nothing(ctx, xud):
    info = scenario_info(opendex_assets_of("0.00001", 0))
    done = await create_opendex_orders(ctx, xud, info)

    assert done is True
    assert xud.placed == []


@pytest.mark.asyncio
async def test_stale_orders_removed_before_placing(ctx):
    client = FakeXudClient(open_orders=[
        {"pair_id": "BTC/DAI", "local_id": SELL_ORDER_ID},
        {"pair_id": "BTC/DAI", "local_id": BUY_ORDER_ID},
    ])
    await create_opendex_orders(ctx, client, scenario_info(opendex_assets_of(1, 1000)))

    assert client.removed == [SELL_ORDER_ID, BUY_ORDER_ID]
    assert len(client.placed) == 2


@pytest.mark.asyncio
async def test_remove_only_touches_configured_pair(ctx):
    client = FakeXudClient(open_orders=[
        {"pair_id": "BTC/DAI", "local_id": "a"},
        {"pair_id": "ETH/BTC", "local_id": "b"},
    ])
    await remove_opendex_orders(ctx, client)
    assert client.removed == ["a"]


@pytest.mark.asyncio
async def test_remove_with_nothing_open(ctx, xud):
    await remove_opendex_orders(ctx, xud)
    assert xud.removed == []


@pytest.mark.asyncio
async def test_fetch_opendex_assets(ctx):
    client = XudClient("localhost", 8080, "/tmp/tls.cert")
    client.get_balance = AsyncMock(side_effect=[Decimal(2), Decimal(3000)])
    client.trading_limits = AsyncMock(side_effect=[
        {"max_sell": Decimal("1.5"), "max_buy": Decimal(0)},
        {"max_sell": Decimal(0), "max_buy": Decimal(2500)},
    ])

    assets = await fetch_opendex_assets(ctx, client)

    assert assets.balances == AssetBalances(base=Decimal(2), quote=Decimal(3000))
    assert assets.max_sell == Decimal("1.5")
    assert assets.max_buy == Decimal(2500)


class TestXudClientParsing:

    @pytest.mark.asyncio
    async def test_balance_in_satoshis(self):
        client = XudClient("localhost", 8080, "/tmp/tls.cert")
        client._request = AsyncMock(return_value={
            "balances": {"BTC": {"channel_balance": "25000000", "total_balance": "30000000"}}
        })
        assert await client.get_balance("BTC") == Decimal("0.25")

    @pytest.mark.asyncio
    async def test_list_orders_merges_sides(self):
        client = XudClient("localhost", 8080, "/tmp/tls.cert")
        client._request = AsyncMock(return_value={
            "orders": {"BTC/DAI": {"buy_orders": [{"local_id": "b"}], "sell_orders": [{"local_id": "s"}]}}
        })
        orders = await client.list_orders("BTC/DAI")
        assert [o["local_id"] for o in orders] == ["b", "s"]

    @pytest.mark.asyncio
    async def test_place_order_payload(self):
        client = XudClient("localhost", 8080, "/tmp/tls.cert")
        client._request = AsyncMock(return_value={})
        orders = trade_info_to_opendex_orders(scenario_info(opendex_assets_of(1, 1000)), "BTC/DAI")
        await client.place_order(orders[OrderSide.SELL])

        method, path, payload = client._request.await_args.args
        assert (method, path) == ("POST", "placeordersync")
        assert payload["side"] == "SELL"
        assert payload["quantity"] == "100000000"
        assert payload["order_id"] == SELL_ORDER_ID

    @pytest.mark.asyncio
    async def test_reads_send_query_params(self):
        client = XudClient("localhost", 8080, "/tmp/tls.cert")
        client._request = AsyncMock(return_value={})
        await client.get_balance("BTC")
        assert client._request.await_args.args == ("GET", "balance")
        assert client._request.await_args.kwargs["params"] == {"currency": "BTC"}

        await client.list_orders("BTC/DAI")
        assert client._request.await_args.kwargs["params"] == {"pair_id": "BTC/DAI", "owner": "OWN"}


class TestXudClientErrors:

    def test_unavailable_node_is_recoverable(self):
        assert XudClient._response_error("GET", "balance", 503, "Service Unavailable", None).recoverable
        error = XudClient._response_error("GET", "balance", 500, "Error", {"code": 14, "message": "xud is starting"})
        assert error.recoverable
        assert "xud is starting" in str(error)

    def test_bad_request_is_not_recoverable(self):
        error = XudClient._response_error("POST", "placeordersync", 400, "Bad Request", {"code": 3})
        assert not error.recoverable

    @pytest.mark.asyncio
    async def test_connection_refused_is_recoverable(self):
        session = Mock()
        session.request = Mock(side_effect=aiohttp.ClientConnectionError("refused"))
        client = XudClient("localhost", 8080, "/tmp/tls.cert", session=session)

        with pytest.raises(OpenDexError) as excinfo:
            await client.get_balance("BTC")
        assert excinfo.value.recoverable


def eth_btc_ctx(ctx, raw_config):
    raw_config.update(BASEASSET="ETH", QUOTEASSET="BTC")
    return replace(ctx, config=parse_config(raw_config, environ={}))


@pytest.mark.asyncio
async def test_buy_below_base_minimum_not_placed(ctx, raw_config):
    # 0.0002 BTC clears the BTC minimum but only buys ~0.004 ETH
    ctx = eth_btc_ctx(ctx, raw_config)
    client = FakeXudClient()
    info = TradeInfo(
        price=Decimal("0.05"),
        margin=Decimal("0.02"),
        opendex=opendex_assets_of(0, "0.0002"),
        centralized=AssetBalances(base=Decimal(10), quote=Decimal(1)),
    )
    await create_opendex_orders(ctx, client, info)
    assert client.placed == []


@pytest.mark.asyncio
async def test_buy_at_or_below_zero_price_not_placed(ctx, xud):
    info = TradeInfo(
        price=Decimal(100),
        margin=Decimal("1.5"),
        opendex=opendex_assets_of(1, 1000),
        centralized=AssetBalances(base=Decimal(10), quote=Decimal(1000)),
    )
    await create_opendex_orders(ctx, xud, info)
    assert [order.side for order in xud.placed] == [OrderSide.SELL]


@pytest.mark.asyncio
async def test_fetch_failure_cancels_pending_calls(ctx):
    cancelled = []

    async def failing(currency):
        raise OpenDexError("balance unavailable")

    async def blocked(currency):
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            cancelled.append(currency)
            raise

    client = XudClient("localhost", 8080, "/tmp/tls.cert")
    client.get_balance = failing
    client.trading_limits = blocked

    with pytest.raises(OpenDexError, match="balance unavailable"):
        await fetch_opendex_assets(ctx, client)
    assert sorted(cancelled) == ["BTC", "DAI"]


class TestRetryRecoverable:

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        call = AsyncMock(side_effect=[
            OpenDexError("unavailable", recoverable=True),
            OpenDexError("unavailable", recoverable=True),
            "ok",
        ])
        logger = Mock()
        assert await retry_recoverable(call, logger, delay=0) == "ok"
        assert call.await_count == 3
        assert logger.warning.call_count == 2

    @pytest.mark.asyncio
    async def test_other_errors_propagate_at_once(self):
        call = AsyncMock(side_effect=OpenDexError("order rejected"))
        with pytest.raises(OpenDexError, match="order rejected"):
            await retry_recoverable(call, Mock(), delay=0)
        assert call.await_count == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_last_attempt(self):
        call = AsyncMock(side_effect=OpenDexError("unavailable", recoverable=True))
        with pytest.raises(OpenDexError):
            await retry_recoverable(call, Mock(), attempts=3, delay=0)
        assert call.await_count == 3


@pytest.mark.asyncio
async def test_orders_placed_after_transient_failure(ctx):
    client = FakeXudClient(list_failures=[OpenDexError("unavailable", recoverable=True)])
    done = await create_opendex_orders(ctx, client, scenario_info(opendex_assets_of(1, 1000)), retry_delay=0)

    assert done is True
    assert {order.side for order in client.placed} == {OrderSide.BUY, OrderSide.SELL}


@pytest.mark.asyncio
async def test_rejected_order_ends_the_attempt(ctx):
    client = FakeXudClient(list_failures=[OpenDexError("pair not found")])
    with pytest.raises(OpenDexError, match="pair not found"):
        await create_opendex_orders(ctx, client, scenario_info(opendex_assets_of(1, 1000)), retry_delay=0)
    assert client.placed == []


@pytest.mark.asyncio
async def test_assets_stream_survives_transient_failure(ctx):
    calls = []

    async def get_balance(currency):
        calls.append(currency)
        if len(calls) == 1:
            raise OpenDexError("unavailable", recoverable=True)
        return {"BTC": Decimal(2), "DAI": Decimal(3000)}[currency]

    client = XudClient("localhost", 8080, "/tmp/tls.cert")
    client.get_balance = get_balance
    client.trading_limits = AsyncMock(return_value={"max_sell": Decimal(1), "max_buy": Decimal(500)})

    stream = opendex_assets(ctx, client, interval=0, retry_delay=0)
    assets = await stream.__anext__()
    await stream.aclose()

    assert assets.balances == AssetBalances(base=Decimal(2), quote=Decimal(3000))
    assert assets.max_buy == Decimal(500)
