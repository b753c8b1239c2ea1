from decimal import Decimal

from arby.models import AssetBalances, OpenDexAssets


def opendex_assets_of(base, quote, max_sell=None, max_buy=None) -> OpenDexAssets:
    base, quote = Decimal(str(base)), Decimal(str(quote))
    return OpenDexAssets(
        balances=AssetBalances(base=base, quote=quote),
        max_sell=base if max_sell is None else Decimal(str(max_sell)),
        max_buy=quote if max_buy is None else Decimal(str(max_buy)),
    )


class FakeXudClient:
    """
    In-memory stand-in for XudClient. `list_failures` are raised, one per
    call, by list_orders before it starts answering.
    """

    def __init__(self, open_orders=None, list_failures=None):
        self.open_orders = list(open_orders or [])
        self.list_failures = list(list_failures or [])
        self.placed = []
        self.removed = []
        self.closed = False

    async def list_orders(self, pair_id):
        if self.list_failures:
            raise self.list_failures.pop(0)
        return [o for o in self.open_orders if o["pair_id"] == pair_id]

    async def remove_order(self, order_id):
        self.removed.append(order_id)
        self.open_orders = [o for o in self.open_orders if o["local_id"] != order_id]

    async def place_order(self, order):
        self.placed.append(order)
        self.open_orders.append({"pair_id": order.pair_id, "local_id": order.order_id})
        return {}

    async def close(self):
        self.closed = True
