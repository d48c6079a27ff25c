"""Roostoo exchange client: signed spot-trading requests"""

import hashlib
import hmac
import logging
import time
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from ragtrader.models import Order, OrderResult, Ticker
from ragtrader.utils.errors import CollaboratorError, ConfigurationError
from ragtrader.utils.logging_utils import log_trade

from .base_client import BaseAPIClient

logger = logging.getLogger(__name__)


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class RoostooClient(BaseAPIClient):
    """
    Client for the Roostoo mock exchange API

    Public endpoints are plain GETs. Account endpoints are form-encoded POSTs
    signed with HMAC-SHA256 over the sorted query string, which always
    carries a millisecond ``timestamp``.
    """

    def __init__(
        self,
        api_key: Optional[str],
        secret_key: Optional[str],
        base_url: str = "https://mock-api.roostoo.com",
        timeout: int = 30,
        max_retries: int = 3,
    ):
        super().__init__(
            service_name="roostoo",
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
        )
        self.secret_key = secret_key

    @classmethod
    def from_config(cls, exchange_config) -> "RoostooClient":
        return cls(
            api_key=exchange_config.api_key,
            secret_key=exchange_config.secret_key,
            base_url=exchange_config.base_url,
            timeout=exchange_config.timeout,
            max_retries=exchange_config.max_retries,
        )

    # ========================================================================
    # SIGNING
    # ========================================================================

    @staticmethod
    def _timestamp() -> str:
        return str(int(time.time() * 1000))

    def sign(self, payload: Dict[str, Any]) -> Dict[str, str]:
        """
        Add a timestamp to ``payload`` and build the signed request parts

        Returns:
            Dict with ``body`` (the signed query string) and ``signature``
        """
        if not self.api_key or not self.secret_key:
            raise ConfigurationError("Roostoo API key and secret key are required for signed requests", "exchange")

        final_payload = {**payload, "timestamp": self._timestamp()}
        query_string = urlencode(sorted((k, str(v)) for k, v in final_payload.items()))
        signature = hmac.new(
            self.secret_key.encode("utf-8"),
            query_string.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return {"body": query_string, "signature": signature}

    async def _signed_post(self, path: str, payload: Dict[str, Any], operation_name: str) -> Dict[str, Any]:
        signed = self.sign(payload)
        headers = {
            "RST-API-KEY": self.api_key,
            "MSG-SIGNATURE": signed["signature"],
            "Content-Type": "application/x-www-form-urlencoded",
        }
        data = await self._request_json("POST", path, operation_name, data=signed["body"], headers=headers)
        if not isinstance(data, dict):
            raise CollaboratorError(self.service_name, operation_name, message="unexpected response shape")
        return data

    # ========================================================================
    # PUBLIC ENDPOINTS
    # ========================================================================

    async def get_server_time(self) -> Dict[str, Any]:
        return await self._request_json("GET", "/server_time", "Get server time")

    async def get_exchange_info(self) -> Dict[str, Any]:
        return await self._request_json("GET", "/v3/exchange_info", "Get exchange info")

    async def get_market_ticker(self, pair: str) -> Ticker:
        """
        Fetch the latest quote for one pair

        Raises:
            CollaboratorError: If the request fails or the pair is not quoted
        """
        data = await self._request_json(
            "GET",
            "/v3/ticker",
            f"Get ticker {pair}",
            params={"pair": pair, "timestamp": self._timestamp()},
        )
        if not isinstance(data, dict) or data.get("Success") is False:
            err = data.get("ErrMsg", "") if isinstance(data, dict) else ""
            raise CollaboratorError(self.service_name, f"Get ticker {pair}", message=err or "request rejected")

        quote = (data.get("Data") or {}).get(pair)
        if not isinstance(quote, dict):
            raise CollaboratorError(self.service_name, f"Get ticker {pair}", message="pair not quoted")

        return Ticker(
            symbol=pair,
            last_price=_to_float(quote.get("LastPrice")),
            bid=_to_float(quote.get("MaxBid")),
            ask=_to_float(quote.get("MinAsk")),
            change=_to_float(quote.get("Change")),
            raw=quote,
        )

    # ========================================================================
    # ACCOUNT ENDPOINTS
    # ========================================================================

    async def get_balance(self) -> Dict[str, float]:
        """
        Available balance per currency

        Wallet entries given as ``{"Free": x, "Lock": y}`` are reduced to the
        free amount.
        """
        data = await self._signed_post("/v3/balance", {}, "Get balance")
        if data.get("Success") is False:
            raise CollaboratorError(self.service_name, "Get balance", message=data.get("ErrMsg", ""))

        wallet = data.get("Balance") or data.get("Wallet") or data.get("SpotWallet") or {}
        balances: Dict[str, float] = {}
        for currency, entry in wallet.items():
            amount = entry.get("Free") if isinstance(entry, dict) else entry
            value = _to_float(amount)
            if value is None:
                logger.warning(f"[roostoo] Ignoring unreadable balance for {currency}: {entry!r}")
                continue
            balances[currency] = max(0.0, value)
        return balances

    async def get_pending_order_count(self) -> int:
        data = await self._signed_post("/v3/pending_order_count", {}, "Get pending order count")
        try:
            return int(data.get("TotalPending", data.get("PendingOrderCount", 0)) or 0)
        except (TypeError, ValueError):
            return 0

    async def query_order(
        self,
        order_id: Optional[str] = None,
        pair: Optional[str] = None,
        pending_only: Optional[bool] = None,
        offset: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Matching orders; an empty list when the exchange reports no match."""
        payload: Dict[str, Any] = {}
        if order_id:
            payload["order_id"] = str(order_id)
        else:
            if pair:
                payload["pair"] = pair
            if pending_only is not None:
                payload["pending_only"] = "TRUE" if pending_only else "FALSE"
        if offset:
            payload["offset"] = str(offset)
        if limit:
            payload["limit"] = str(limit)

        data = await self._signed_post("/v3/query_order", payload, "Query order")
        if data.get("Success") is False:
            logger.debug(f"[roostoo] Query order returned no match: {data.get('ErrMsg', '')}")
            return []
        return list(data.get("OrderMatched") or [])

    async def place_order(self, order: Order) -> OrderResult:
        """
        Submit an order

        A rejected order is returned as ``OrderResult(success=False)``; only
        transport and HTTP failures raise.
        """
        if order.order_type == "LIMIT" and not order.price:
            raise ValueError("LIMIT orders require a price")

        data = await self._signed_post("/v3/place_order", order.to_payload(), f"Place order {order.pair}")
        success = bool(data.get("Success"))
        order_id = (data.get("OrderDetail") or {}).get("OrderID")
        result = OrderResult(
            success=success,
            order_id=str(order_id) if order_id is not None else None,
            error_message=None if success else (data.get("ErrMsg") or "Unknown error"),
            raw=data,
        )
        if success:
            log_trade(logger, f"📝 Order placed: {order} (id: {result.order_id})")
        else:
            logger.warning(f"[roostoo] Order rejected: {order} - {result.error_message}")
        return result

    async def cancel_order(self, order_id: Optional[str] = None, pair: Optional[str] = None) -> Dict[str, Any]:
        """Cancel one order, all orders on a pair, or every pending order."""
        payload: Dict[str, Any] = {}
        if order_id:
            payload["order_id"] = str(order_id)
        elif pair:
            payload["pair"] = pair

        data = await self._signed_post("/v3/cancel_order", payload, "Cancel order")
        log_trade(logger, f"🛑 Cancel request ({order_id or pair or 'all pending'}): {data.get('CanceledList', data)}")
        return data
