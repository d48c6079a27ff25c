"""Portfolio and market snapshots captured by the trading engine"""

import time
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class PortfolioSnapshot:
    """
    Account state at one point in time

    Replaced wholesale after every cycle or executed order, never mutated.
    """

    balances: Dict[str, float]  # currency symbol -> available amount
    pending_order_count: int = 0
    open_orders: List[Dict[str, Any]] = field(default_factory=list)
    exchange_info: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        # Snapshot holds its own copies of the caller's containers
        object.__setattr__(self, "balances", dict(self.balances))
        object.__setattr__(self, "open_orders", [dict(o) if isinstance(o, dict) else o for o in self.open_orders])
        object.__setattr__(self, "exchange_info", dict(self.exchange_info))

        for currency, amount in self.balances.items():
            if amount < 0:
                raise ValueError(f"balance for {currency} must be >= 0, got {amount}")
        if self.pending_order_count < 0:
            raise ValueError(f"pending_order_count must be >= 0, got {self.pending_order_count}")

    def __str__(self) -> str:
        return f"Portfolio({len(self.balances)} currencies, {self.pending_order_count} pending orders)"

    def balance_of(self, currency: str) -> float:
        return float(self.balances.get(currency, 0.0) or 0.0)

    def total_value(self) -> float:
        """Raw sum of all balances; currencies are not converted."""
        return sum(float(v or 0.0) for v in self.balances.values())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Ticker:
    """Latest quote for one trading pair"""

    symbol: str
    last_price: Optional[float] = None
    bid: Optional[float] = None
    ask: Optional[float] = None
    change: Optional[float] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MarketSnapshot:
    """Tickers for the symbols the engine watches, recreated every cycle"""

    tickers: List[Ticker]
    symbols: List[str]
    description: str = ""
    timestamp: float = field(default_factory=time.time)

    def __str__(self) -> str:
        return f"Market({len(self.tickers)}/{len(self.symbols)} tickers)"

    def ticker_for(self, symbol: str) -> Optional[Ticker]:
        for ticker in self.tickers:
            if ticker.symbol == symbol:
                return ticker
        return None

    def price_for(self, symbol: str) -> Optional[float]:
        ticker = self.ticker_for(symbol)
        return ticker.last_price if ticker else None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
