"""
Decision normalization: turn an untrusted model proposal into a Decision

The proposal may sit one level down under a ``decision`` key; that single
level is unwrapped and nothing deeper is searched. Normalization is
all-or-nothing: it returns a valid Decision or raises DecisionFormatError.
"""

import math
from typing import Any, Mapping, Optional

from ragtrader.models import Action, Decision
from ragtrader.models.decision import ORDER_TYPES
from ragtrader.utils.errors import DecisionFormatError
from ragtrader.utils.response_parser import ResponseParser


def _finite(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _first_present(candidate: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = candidate.get(key)
        if value is not None:
            return value
    return None


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def parse_decision_reply(reply: Any) -> Mapping[str, Any]:
    """
    Turn a raw analysis reply into a mapping

    Text may be bare JSON or JSON inside a fenced code block.

    Raises:
        DecisionFormatError: If the reply is not, or does not parse to, a JSON object
    """
    if isinstance(reply, Mapping):
        return reply
    parsed = ResponseParser.extract_object(reply)
    if parsed is None:
        preview = reply[:200] if isinstance(reply, str) else type(reply).__name__
        raise DecisionFormatError("decision reply is not a JSON object", field="reply", value=preview)
    return parsed


def normalize_decision(proposal: Any) -> Decision:
    """
    Validate and coerce a proposal into a canonical Decision

    Args:
        proposal: Mapping with ``action``, ``symbol``/``ticker``,
            ``quantity``/``size``/``amount``, ``confidence``, ``reasoning``
            (or ``explanation``), and optionally ``price`` and ``order_type``

    Raises:
        DecisionFormatError: On a non-mapping payload, a missing or
            unsupported action, a BUY/SELL without symbol or positive
            quantity, or an order_type other than MARKET/LIMIT
    """
    if not isinstance(proposal, Mapping):
        raise DecisionFormatError("decision payload must be an object", value=type(proposal).__name__)

    nested = proposal.get("decision")
    candidate = nested if isinstance(nested, Mapping) else proposal

    action = _text(candidate.get("action")).upper()
    if not action:
        raise DecisionFormatError("missing action", field="action")
    if action not in Action.ALL:
        raise DecisionFormatError("unsupported action", field="action", value=action)

    confidence = _finite(candidate.get("confidence"))
    confidence = 0.0 if confidence is None else max(0.0, min(1.0, confidence))

    reasoning = _first_present(candidate, "reasoning", "explanation")
    reasoning = "" if reasoning is None else str(reasoning)

    if action == Action.HOLD:
        symbol = _text(candidate.get("symbol")) or None
        return Decision(
            action=action,
            symbol=symbol,
            quantity=0.0,
            confidence=confidence,
            reasoning=reasoning,
        )

    symbol = _text(candidate.get("symbol") or candidate.get("ticker"))
    if not symbol:
        raise DecisionFormatError(f"{action} decision requires a symbol", field="symbol")

    raw_quantity = _first_present(candidate, "quantity", "size", "amount")
    quantity = _finite(raw_quantity) if isinstance(raw_quantity, (int, float, str)) else None
    if quantity is None or quantity <= 0:
        raise DecisionFormatError(
            f"{action} decision requires a positive quantity", field="quantity", value=raw_quantity
        )

    price = _finite(candidate.get("price"))
    if price is not None and price <= 0:
        price = None

    # An unpriced LIMIT passes through; the risk check rejects it before submission
    order_type = _text(candidate.get("order_type") or candidate.get("type")).upper() or "MARKET"
    if order_type not in ORDER_TYPES:
        raise DecisionFormatError("unsupported order_type", field="order_type", value=order_type)

    return Decision(
        action=action,
        symbol=symbol,
        quantity=quantity,
        confidence=confidence,
        reasoning=reasoning,
        price=price,
        order_type=order_type,
    )
