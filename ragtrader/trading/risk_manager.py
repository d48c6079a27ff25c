"""
Risk management: order validation, position sizing, stop-loss/take-profit levels

All functions are pure. Portfolio value is the naive sum of every balance
amount across currencies (no conversion), floored at 1.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple, Union

from ragtrader.models import Order, PortfolioSnapshot
from ragtrader.utils.errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_RISK_PERCENT = 0.02


@dataclass(frozen=True)
class OrderValidation:
    valid: bool
    reason: str = ""


@dataclass(frozen=True)
class RiskParams:
    risk_per_trade: float = 0.02
    max_position_size: float = 0.1


@dataclass(frozen=True)
class PositionSize:
    quantity: float
    risk_amount: Optional[float] = None
    adjusted_risk: Optional[float] = None
    max_quantity: Optional[float] = None
    reason: str = ""


@dataclass(frozen=True)
class StopLossCheck:
    should_stop: bool
    reason: str = ""


OrderLike = Union[Order, Mapping[str, Any]]
BalancesLike = Union[PortfolioSnapshot, Mapping[str, Any]]


def _field(order: OrderLike, name: str, alias: Optional[str] = None) -> Any:
    if isinstance(order, Mapping):
        value = order.get(name)
        if value is None and alias:
            value = order.get(alias)
        return value
    return getattr(order, name, None)


def _number(value: Any) -> Optional[float]:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


def _balances(portfolio: BalancesLike) -> Mapping[str, Any]:
    if isinstance(portfolio, PortfolioSnapshot):
        return portfolio.balances
    if isinstance(portfolio, Mapping) and isinstance(portfolio.get("balances"), Mapping):
        return portfolio["balances"]
    return portfolio or {}


def _sum_balances(balances: Mapping[str, Any]) -> float:
    return sum(_number(v) or 0.0 for v in balances.values())


def parse_pair(pair: str) -> Tuple[str, str]:
    """
    Split "BASE/QUOTE" into its currencies

    Raises:
        ValidationError: If the pair has no "/" separator or an empty side
    """
    if not isinstance(pair, str) or "/" not in pair:
        raise ValidationError("Currency pair must look like BASE/QUOTE", field="pair", value=pair)
    base, quote = pair.split("/", 1)
    if not base or not quote:
        raise ValidationError("Currency pair must look like BASE/QUOTE", field="pair", value=pair)
    return base, quote


def calculate_portfolio_value(portfolio: BalancesLike) -> float:
    """Naive sum of all balances, or 1 when that sum is 0."""
    return _sum_balances(_balances(portfolio)) or 1.0


def _order_value(order: OrderLike) -> float:
    quantity = _number(_field(order, "quantity")) or 0.0
    price = _number(_field(order, "price"))
    return quantity * (price if price else 1.0)


def check_position_size(order: OrderLike, portfolio: BalancesLike, max_position_size: float) -> OrderValidation:
    ratio = _order_value(order) / calculate_portfolio_value(portfolio)
    if ratio > max_position_size:
        return OrderValidation(False, f"Position size {ratio:.4f} exceeds maximum {max_position_size}")
    return OrderValidation(True)


def validate_order(order: OrderLike, portfolio: BalancesLike, max_position_size: float = 0.1) -> OrderValidation:
    """
    Check an order against required fields, balances and the position-size limit

    Never raises; every rejection is returned as ``valid=False`` with a reason.
    """
    pair = _field(order, "pair")
    side = _field(order, "side")
    order_type = _field(order, "order_type", alias="type")
    quantity = _number(_field(order, "quantity"))
    price = _number(_field(order, "price"))

    if not pair or not side or quantity is None or _field(order, "quantity") in (None, ""):
        return OrderValidation(False, "Missing required order fields")

    if quantity <= 0:
        return OrderValidation(False, "Quantity must be positive")

    if order_type == "LIMIT" and (price is None or price <= 0):
        return OrderValidation(False, "LIMIT orders require a valid price")

    try:
        base, quote = parse_pair(pair)
    except ValidationError as e:
        return OrderValidation(False, str(e))

    balances = _balances(portfolio)

    if side == "BUY":
        required = quantity * (price if price else 1.0)
        available = _number(balances.get(quote)) or 0.0
        if required > available:
            return OrderValidation(
                False, f"Insufficient {quote} balance. Required: {required}, Available: {available}"
            )
    elif side == "SELL":
        available = _number(balances.get(base)) or 0.0
        if quantity > available:
            return OrderValidation(
                False, f"Insufficient {base} balance. Required: {quantity}, Available: {available}"
            )

    size_check = check_position_size(order, portfolio, max_position_size)
    if not size_check.valid:
        return size_check

    return OrderValidation(True, "Order validated successfully")


def calculate_position_size(
    signal: Mapping[str, Any],
    balances: BalancesLike,
    risk_params: Optional[RiskParams] = None,
) -> PositionSize:
    """
    Size a position from signal confidence and account balance

    quantity = min(total * risk_per_trade * confidence, total * max_position_size) / price
    Returns quantity 0 with a reason when the signal has no usable price.
    """
    params = risk_params or RiskParams()
    confidence = _number(signal.get("confidence", 0.5))
    if confidence is None:
        confidence = 0.5
    price = _number(signal.get("price"))

    if not price:
        logger.warning(f"Cannot calculate position size without price: {dict(signal)}")
        return PositionSize(quantity=0.0, reason="Price not available")

    adjusted_risk = params.risk_per_trade * confidence
    total_balance = _sum_balances(_balances(balances))
    risk_amount = total_balance * adjusted_risk

    quantity = risk_amount / price
    max_quantity = (total_balance * params.max_position_size) / price
    quantity = min(quantity, max_quantity)

    return PositionSize(
        quantity=max(0.0, quantity),
        risk_amount=risk_amount,
        adjusted_risk=adjusted_risk,
        max_quantity=max_quantity,
    )


def calculate_stop_loss(entry_price: float, side: str, risk_percent: float = DEFAULT_RISK_PERCENT) -> float:
    if side == "BUY":
        return entry_price * (1 - risk_percent)
    if side == "SELL":
        return entry_price * (1 + risk_percent)
    return entry_price


def calculate_take_profit(entry_price: float, side: str, reward_ratio: float = 2) -> float:
    if side == "BUY":
        return entry_price * (1 + DEFAULT_RISK_PERCENT * reward_ratio)
    if side == "SELL":
        return entry_price * (1 - DEFAULT_RISK_PERCENT * reward_ratio)
    return entry_price


def check_stop_loss(order: OrderLike, current_price: float) -> StopLossCheck:
    side = _field(order, "side")
    stop_loss = _number(_field(order, "stop_loss", alias="stopLoss"))

    if not stop_loss:
        return StopLossCheck(False, "No stop loss set")

    if side == "BUY" and current_price <= stop_loss:
        return StopLossCheck(True, f"Price {current_price} hit stop loss {stop_loss}")

    if side == "SELL" and current_price >= stop_loss:
        return StopLossCheck(True, f"Price {current_price} hit stop loss {stop_loss}")

    return StopLossCheck(False)
