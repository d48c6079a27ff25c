"""Order model submitted to the exchange"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Order:
    """
    Concrete order derived from a Decision

    Validated by the risk manager before submission. Pairs are
    "BASE/QUOTE" strings, e.g. "BTC/USD".
    """

    pair: str
    side: str  # 'BUY' or 'SELL'
    order_type: str  # 'MARKET' or 'LIMIT'
    quantity: float
    price: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None

    def __str__(self) -> str:
        price = f" @ {self.price}" if self.price else ""
        return f"{self.side} {self.quantity} {self.pair} {self.order_type}{price}"

    @property
    def base_currency(self) -> str:
        return self.pair.split("/")[0] if "/" in self.pair else ""

    @property
    def quote_currency(self) -> str:
        return self.pair.split("/", 1)[1] if "/" in self.pair else ""

    def to_payload(self, stop_type: str = "GTC") -> Dict[str, str]:
        """Form fields for the exchange place-order endpoint."""
        payload = {
            "pair": self.pair,
            "side": self.side,
            "type": self.order_type,
            "quantity": str(self.quantity),
            "stop_type": stop_type,
        }
        if self.order_type == "LIMIT" and self.price:
            payload["price"] = str(self.price)
        return payload

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class OrderResult:
    """Exchange reply to an order placement"""

    success: bool
    order_id: Optional[str] = None
    error_message: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)
