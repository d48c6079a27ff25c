"""Canonical trading decision produced once per cycle"""

import math
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional


class Action:
    """Allowed decision actions"""

    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"

    ALL = (BUY, SELL, HOLD)
    TRADING = (BUY, SELL)


ORDER_TYPES = ("MARKET", "LIMIT")


@dataclass(frozen=True)
class Decision:
    """
    Normalized BUY/SELL/HOLD instruction

    Built by the decision normalizer from an untrusted proposal and treated as
    a value afterwards. BUY/SELL always carry a symbol and a positive quantity;
    HOLD always carries quantity 0.
    """

    action: str
    symbol: Optional[str]
    quantity: float
    confidence: float
    reasoning: str = ""
    price: Optional[float] = None  # Optional limit/reference price from the proposal
    order_type: str = "MARKET"

    def __post_init__(self):
        if self.action not in Action.ALL:
            raise ValueError(f"action must be one of {Action.ALL}, got {self.action!r}")
        if not (0.0 <= self.confidence <= 1.0):
            raise ValueError(f"confidence must be between 0 and 1, got {self.confidence}")
        if self.order_type not in ORDER_TYPES:
            raise ValueError(f"order_type must be one of {ORDER_TYPES}, got {self.order_type!r}")

        if self.action in Action.TRADING:
            if not self.symbol:
                raise ValueError(f"{self.action} decision requires a symbol")
            if not math.isfinite(self.quantity) or self.quantity <= 0:
                raise ValueError(f"{self.action} decision requires quantity > 0, got {self.quantity}")
        elif self.quantity != 0:
            raise ValueError(f"HOLD decision must have quantity 0, got {self.quantity}")

    def __str__(self) -> str:
        if self.action == Action.HOLD:
            return f"HOLD (confidence: {self.confidence:.0%})"
        return f"{self.action} {self.quantity} {self.symbol} (confidence: {self.confidence:.0%})"

    @property
    def is_hold(self) -> bool:
        return self.action == Action.HOLD

    @classmethod
    def hold(cls, reasoning: str, confidence: float = 0.0, symbol: Optional[str] = None) -> "Decision":
        return cls(action=Action.HOLD, symbol=symbol, quantity=0.0, confidence=confidence, reasoning=reasoning)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
