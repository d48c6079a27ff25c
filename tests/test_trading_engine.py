import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from ragtrader.config import TradingConfig
from ragtrader.models import Decision, MarketSnapshot, OrderResult, PortfolioSnapshot, Ticker
from ragtrader.trading.decision_normalizer import normalize_decision
from ragtrader.trading.engine import EngineState, TradingEngine
from ragtrader.utils.errors import CollaboratorError


PRICES = {"BTC/USD": 50_000.0, "ETH/USD": 3_000.0}


def _exchange():
    exchange = MagicMock()
    exchange.get_server_time = AsyncMock(return_value={"ServerTime": 1700000000000})
    exchange.get_balance = AsyncMock(return_value={"USD": 10_000.0, "BTC": 1.0})
    exchange.get_pending_order_count = AsyncMock(return_value=0)
    exchange.get_exchange_info = AsyncMock(return_value={"IsRunning": True})
    exchange.query_order = AsyncMock(return_value=[])

    async def ticker(pair):
        return Ticker(symbol=pair, last_price=PRICES[pair])

    exchange.get_market_ticker = AsyncMock(side_effect=ticker)
    exchange.place_order = AsyncMock(return_value=OrderResult(success=True, order_id="42"))
    return exchange


def _orchestrator(decision=None):
    decision = decision or Decision.hold("Sideways market", confidence=0.6)
    orchestrator = MagicMock()
    orchestrator.execute_workflow = AsyncMock(
        return_value=SimpleNamespace(decision=decision, decision_degraded=False)
    )
    return orchestrator


def _engine(decision=None, exchange=None, **config):
    config.setdefault("interval_seconds", 3600)
    trading_config = TradingConfig(**config)
    return TradingEngine(exchange or _exchange(), _orchestrator(decision), trading_config)


def _buy(quantity=0.01, symbol="BTC/USD"):
    return Decision(action="BUY", symbol=symbol, quantity=quantity, confidence=0.8, reasoning="breakout")


@pytest.mark.asyncio
async def test_start_twice_keeps_single_timer():
    engine = _engine()

    await engine.start()
    timer = engine._timer_task
    await engine.start()

    assert engine.state == EngineState.RUNNING
    assert engine._timer_task is timer
    assert engine.exchange.get_server_time.await_count == 1

    await engine.stop()
    await engine.wait_for_cycles()
    assert engine.state == EngineState.STOPPED
    assert engine.cycle_count == 1
    assert timer.done()


@pytest.mark.asyncio
async def test_start_failure_leaves_engine_stopped():
    exchange = _exchange()
    exchange.get_server_time.side_effect = CollaboratorError("roostoo", "Get server time", 503)
    engine = _engine(exchange=exchange)

    with pytest.raises(CollaboratorError):
        await engine.start()

    assert engine.state == EngineState.STOPPED
    assert engine._timer_task is None
    assert engine.last_error.startswith("Initialization failed")


@pytest.mark.asyncio
async def test_stop_during_initialization_wins():
    engine = _engine()

    async def stop_midway():
        await engine.stop()
        return {}

    engine.exchange.get_server_time.side_effect = stop_midway

    await engine.start()

    assert engine.state == EngineState.STOPPED
    assert engine._timer_task is None
    assert engine.cycle_count == 0


@pytest.mark.asyncio
async def test_stop_when_stopped_is_noop(caplog):
    engine = _engine()

    await engine.stop()

    assert engine.state == EngineState.STOPPED
    assert "not running" in caplog.text


@pytest.mark.asyncio
async def test_timer_fires_repeated_cycles():
    engine = _engine(interval_seconds=0.01)

    await engine.start()
    await asyncio.sleep(0.1)
    await engine.stop()
    await engine.wait_for_cycles()

    assert engine.cycle_count >= 2


@pytest.mark.asyncio
async def test_overlapping_cycle_is_skipped():
    engine = _engine()

    async with engine._cycle_guard:
        assert engine.cycle_in_progress is True
        result = await engine.run_trading_cycle()

    assert result is None
    assert engine.cycle_count == 0
    engine.orchestrator.execute_workflow.assert_not_awaited()


@pytest.mark.asyncio
async def test_hold_cycle_does_not_place_orders():
    engine = _engine()

    report = await engine.run_trading_cycle()

    assert report.cycle == 1
    assert report.decision.is_hold
    assert report.executed is False
    assert report.execution.reason == "HOLD decision"
    engine.exchange.place_order.assert_not_awaited()
    assert engine.last_decision == report.decision
    assert engine.last_cycle_at == report.finished_at

    context = engine.orchestrator.execute_workflow.await_args.args[0]
    assert context["symbols"] == ["BTC/USD", "ETH/USD"]
    assert context["market_data"]["description"] == "Market data for BTC/USD, ETH/USD"
    assert context["portfolio"].balances == {"USD": 10_000.0, "BTC": 1.0}


@pytest.mark.asyncio
async def test_buy_cycle_executes_with_protective_levels():
    engine = _engine(decision=_buy())

    report = await engine.run_trading_cycle()

    assert report.executed is True
    assert report.execution.order_id == "42"
    order = engine.exchange.place_order.await_args.args[0]
    assert order.pair == "BTC/USD"
    assert order.side == "BUY"
    assert order.quantity == 0.01
    assert order.stop_loss == pytest.approx(49_000)
    assert order.take_profit == pytest.approx(52_000)
    # Portfolio refreshed after the fill
    assert engine.exchange.get_balance.await_count == 2


@pytest.mark.asyncio
async def test_cycle_failure_still_counts_and_records_error():
    exchange = _exchange()
    exchange.get_balance.side_effect = CollaboratorError("roostoo", "Get balance", 500)
    engine = _engine(exchange=exchange)

    with pytest.raises(CollaboratorError):
        await engine.run_trading_cycle()

    assert engine.cycle_count == 1
    assert engine.last_error.startswith("Cycle #1 failed")
    assert engine.cycle_in_progress is False


@pytest.mark.asyncio
async def test_failed_ticker_is_left_out():
    exchange = _exchange()

    async def ticker(pair):
        if pair == "ETH/USD":
            raise CollaboratorError("roostoo", "Get ticker", 500)
        return Ticker(symbol=pair, last_price=PRICES[pair])

    exchange.get_market_ticker.side_effect = ticker
    engine = _engine(exchange=exchange)

    market = await engine.fetch_market_data()

    assert [t.symbol for t in market.tickers] == ["BTC/USD"]
    assert market.symbols == ["BTC/USD", "ETH/USD"]
    assert market.price_for("BTC/USD") == 50_000.0


@pytest.mark.asyncio
async def test_fetch_portfolio_queries_pending_orders():
    engine = _engine()
    engine.exchange.query_order.return_value = [{"OrderID": 7}]
    engine.exchange.get_pending_order_count.return_value = 1

    portfolio = await engine.fetch_portfolio()

    engine.exchange.query_order.assert_awaited_once_with(pending_only=True)
    assert portfolio.pending_order_count == 1
    assert portfolio.open_orders == [{"OrderID": 7}]
    assert portfolio.exchange_info == {"IsRunning": True}


@pytest.mark.asyncio
async def test_execute_rejects_order_failing_validation():
    engine = _engine()
    engine.portfolio = PortfolioSnapshot(balances={"USD": 100.0, "BTC": 1.0})
    decision = Decision(action="SELL", symbol="BTC/USD", quantity=5, confidence=0.7)

    result = await engine.execute_decision(decision)

    assert result.executed is False
    assert "Insufficient BTC balance" in result.reason
    engine.exchange.place_order.assert_not_awaited()


@pytest.mark.asyncio
async def test_execute_in_dry_run_does_not_submit():
    engine = _engine(dry_run=True)
    engine.portfolio = PortfolioSnapshot(balances={"USD": 10_000.0})

    result = await engine.execute_decision(_buy())

    assert result.executed is False
    assert result.dry_run is True
    assert result.order.pair == "BTC/USD"
    engine.exchange.place_order.assert_not_awaited()


@pytest.mark.asyncio
async def test_execute_reports_exchange_errors():
    engine = _engine()
    engine.portfolio = PortfolioSnapshot(balances={"USD": 10_000.0})
    engine.exchange.place_order.side_effect = CollaboratorError("roostoo", "Place order", 500, "boom")

    raised = await engine.execute_decision(_buy())

    engine.exchange.place_order.side_effect = None
    engine.exchange.place_order.return_value = OrderResult(success=False, error_message="insufficient margin")
    rejected = await engine.execute_decision(_buy())

    assert raised.executed is False
    assert "boom" in raised.reason
    assert rejected.executed is False
    assert rejected.reason == "insufficient margin"


def test_build_order_without_any_price_has_no_levels():
    engine = _engine()
    market = MarketSnapshot(tickers=[], symbols=["BTC/USD"])

    order = engine.build_order(_buy(), market)

    assert order.stop_loss is None
    assert order.take_profit is None


def test_build_order_prefers_decision_price():
    engine = _engine(risk_per_trade=0.05)
    decision = Decision(
        action="SELL", symbol="BTC/USD", quantity=1, confidence=0.5, price=100.0, order_type="LIMIT"
    )
    market = MarketSnapshot(tickers=[Ticker(symbol="BTC/USD", last_price=50_000.0)], symbols=["BTC/USD"])

    order = engine.build_order(decision, market)

    assert order.price == 100.0
    assert order.stop_loss == pytest.approx(105.0)
    assert order.take_profit == pytest.approx(96.0)


def test_status_snapshot():
    engine = _engine()

    status = engine.get_status().to_dict()

    assert status["cycle_count"] == 0
    assert status["is_running"] is False
    assert status["state"] == "stopped"
    assert status["last_decision"] is None


@pytest.mark.asyncio
async def test_unpriced_limit_decision_is_never_submitted():
    decision = normalize_decision({"action": "BUY", "symbol": "BTC/USD", "quantity": 1, "order_type": "LIMIT"})
    engine = _engine()
    engine.portfolio = PortfolioSnapshot(balances={"USD": 1_000.0})

    result = await engine.execute_decision(decision)

    assert result.executed is False
    assert result.reason == "LIMIT orders require a valid price"
    engine.exchange.place_order.assert_not_awaited()
