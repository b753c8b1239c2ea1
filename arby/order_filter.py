# arby/order_filter.py
from decimal import Decimal
from types import MappingProxyType
from typing import Callable

# Venues reject or ignore anything smaller than this.
MINIMUM_ORDER_SIZE = MappingProxyType({
    "BTC": Decimal("0.0001"),
    "ETH": Decimal("0.005"),
    "DAI": Decimal("1"),
})


def should_create_order(asset: str) -> Callable[[Decimal], bool]:
    """
    Returns a predicate telling whether a quantity of `asset` is worth an order.
    The asset must be in MINIMUM_ORDER_SIZE (config validation enforces this).
    """
    minimum = MINIMUM_ORDER_SIZE[asset]

    def _predicate(quantity: Decimal) -> bool:
        return quantity >= minimum

    return _predicate
