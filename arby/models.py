# arby/models.py
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional


class OrderSide(Enum):
    BUY = "buy"
    SELL = "sell"


class TradingOutcome(Enum):
    """
    How the Trading phase of a run ended.
    """
    COMPLETED = "COMPLETED"
    SHUTDOWN = "SHUTDOWN"
    FAILED = "FAILED"


@dataclass(slots=True, frozen=True)
class AssetBalances:
    base: Decimal
    quote: Decimal


@dataclass(slots=True, frozen=True)
class OpenDexAssets:
    """
    Snapshot of what the OpenDEX node can trade right now.
    max_sell is in base units, max_buy is in quote units.
    """
    balances: AssetBalances
    max_sell: Decimal
    max_buy: Decimal


@dataclass(slots=True, frozen=True)
class TradeInfo:
    """
    Per-tick sizing decision built from both venues' balances and the CEX price.
    Recomputed on every combined emission and never stored.
    """
    price: Decimal
    margin: Decimal
    opendex: OpenDexAssets
    centralized: AssetBalances

    @property
    def sell_price(self) -> Decimal:
        return self.price * (1 + self.margin)

    @property
    def buy_price(self) -> Decimal:
        return self.price * (1 - self.margin)

    @property
    def base_quantity(self) -> Decimal:
        """Base we can sell on OpenDEX and still buy back on the CEX."""
        if self.price <= 0:
            return Decimal(0)
        cex_can_buy = self.centralized.quote / self.price
        return max(Decimal(0), min(self.opendex.max_sell, cex_can_buy))

    @property
    def quote_quantity(self) -> Decimal:
        """Quote we can spend on OpenDEX and still sell the base back on the CEX."""
        cex_can_sell = self.centralized.base * self.price
        return max(Decimal(0), min(self.opendex.max_buy, cex_can_sell))


@dataclass(slots=True, frozen=True)
class OpenDexOrder:
    side: OrderSide
    price: Decimal
    quantity: Decimal  # base units
    pair_id: str
    order_id: str


@dataclass(slots=True, frozen=True)
class TradingResult:
    outcome: TradingOutcome
    error: Optional[BaseException] = None

    @property
    def failed(self) -> bool:
        return self.outcome is TradingOutcome.FAILED
